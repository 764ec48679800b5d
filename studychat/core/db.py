import os
import base64
import logging
from typing import Optional

from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import get_database_url
from . import models  # noqa: F401  registers tables on SQLModel.metadata

# ------------------------------------------------------------------------------
# Logging
# ------------------------------------------------------------------------------
logger = logging.getLogger(__name__)

# ------------------------------------------------------------------------------
# Encryption Key Handling
# ------------------------------------------------------------------------------
_aes_key: Optional[bytes] = None


def get_encryption_key() -> bytes:
    """Get encryption key from environment with validation"""
    global _aes_key
    if _aes_key is not None:
        return _aes_key
    try:
        key_b64 = os.environ.get("CHAT_DB_KEY")
        if not key_b64:
            raise ValueError("CHAT_DB_KEY environment variable is not set")

        key = base64.urlsafe_b64decode(key_b64)
        if len(key) not in [16, 24, 32]:
            raise ValueError("Invalid AES key length")

        _aes_key = key
        return key
    except Exception as e:
        logger.error(f"Failed to load encryption key: {e}")
        raise


def encrypt(plaintext: str) -> bytes:
    """Encrypt plaintext with AES-GCM"""
    try:
        if not plaintext:
            return b""
        aesgcm = AESGCM(get_encryption_key())
        nonce = os.urandom(12)
        ciphertext = aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return nonce + ciphertext
    except Exception as e:
        logger.error(f"Encryption failed: {e}")
        raise


def decrypt(cipherbytes: bytes) -> str:
    """Decrypt ciphertext with AES-GCM"""
    try:
        if not cipherbytes:
            return ""
        if len(cipherbytes) < 12:
            raise ValueError("Invalid ciphertext length")
        aesgcm = AESGCM(get_encryption_key())
        nonce, ciphertext = cipherbytes[:12], cipherbytes[12:]
        return aesgcm.decrypt(nonce, ciphertext, None).decode("utf-8")
    except Exception as e:
        logger.error(f"Decryption failed: {e}")
        return "[Decryption error - message corrupted]"

# ------------------------------------------------------------------------------
# Database Setup
# ------------------------------------------------------------------------------
_engine: Optional[AsyncEngine] = None
_db_initialized = False


def get_engine() -> AsyncEngine:
    """Get or create database engine"""
    global _engine
    if _engine is None:
        url = get_database_url()
        options = {"echo": False, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            options["pool_recycle"] = 3600
        _engine = create_async_engine(url, **options)
    return _engine


async def init_db():
    """Initialize database once"""
    global _db_initialized
    if _db_initialized:
        return
    try:
        engine = get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        _db_initialized = True
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


async def dispose_engine():
    """Dispose the engine and forget cached state"""
    global _engine, _db_initialized, _aes_key
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _db_initialized = False
    _aes_key = None
