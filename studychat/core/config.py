import os
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------------------
# Defaults
# ------------------------------------------------------------------------------
DEFAULT_MODEL_NAME = "gemini-2.0-flash"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///studychat.db"
DEFAULT_STORAGE_BUCKET = "study-materials"

REQUIRED_KEYS = ("CHAT_DB_KEY", "GEMINI_API_KEY")


def get_model_name() -> str:
    return os.environ.get("AI_AGENT") or DEFAULT_MODEL_NAME


def get_gemini_api_key() -> str:
    """Get Gemini API key from environment with validation"""
    api_key = os.environ.get("GEMINI_API_KEY")
    if not api_key:
        raise ValueError("GEMINI_API_KEY environment variable is not set")
    if not api_key.startswith("AIza"):
        raise ValueError("Invalid GEMINI_API_KEY format")
    return api_key


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL


def get_supabase_credentials() -> Optional[tuple]:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_SERVICE_KEY")
    if url and key:
        return url, key
    return None


def get_storage_bucket() -> str:
    return os.environ.get("STORAGE_BUCKET") or DEFAULT_STORAGE_BUCKET


def setup_environment():
    """Validate required environment variables"""
    missing = [key for key in REQUIRED_KEYS if not os.environ.get(key)]
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        raise ValueError(f"{', '.join(missing)} required but not found in environment variables")
    if not os.environ.get("ENVIRONMENT"):
        logger.warning("ENVIRONMENT is not set, falling back to production environment")
    if get_supabase_credentials() is None:
        logger.warning("Supabase credentials missing; file resources will rely on cached content")


def setup_logging():
    """Setup logging configuration based on the environment"""
    environment = os.environ.get("ENVIRONMENT")
    if environment == "prod":
        logging.basicConfig(level=logging.WARNING)
    elif environment == "release":
        logging.basicConfig(level=logging.INFO)
    elif environment == "debug":
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)
