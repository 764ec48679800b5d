import os
import uuid
import logging
import mimetypes
from datetime import datetime
from typing import Optional, List, Tuple, Dict, Any, Iterable

from sqlalchemy import delete
from sqlmodel import select, col
from sqlmodel.ext.asyncio.session import AsyncSession

from .models import ChatSession, ChatMessage, StudyResource, ROLES, utcnow
from .db import get_engine, init_db, encrypt, decrypt
from .errors import ValidationError

logger = logging.getLogger(__name__)


async def _open_session() -> AsyncSession:
    await init_db()
    return AsyncSession(get_engine(), expire_on_commit=False)

# ------------------------------------------------------------------------------
# Chat sessions
# ------------------------------------------------------------------------------
async def create_session(user_id: str, title: str) -> ChatSession:
    """Create a new chat session for a user"""
    if not user_id:
        raise ValidationError("user_id is required")
    chat_session = ChatSession(user_id=user_id, title=title.strip() or "New chat")
    try:
        async with await _open_session() as session:
            session.add(chat_session)
            await session.commit()
        logger.info(f"Created new session: {chat_session.title} ({chat_session.id})")
        return chat_session
    except Exception as e:
        logger.error(f"Failed to create session: {e}")
        raise


async def get_session_by_id(session_id: str) -> Optional[ChatSession]:
    if not session_id:
        return None
    async with await _open_session() as session:
        return await session.get(ChatSession, session_id)


async def list_sessions(user_id: str) -> List[ChatSession]:
    """Sessions of a user, most recently active first"""
    async with await _open_session() as session:
        result = await session.execute(
            select(ChatSession)
            .where(ChatSession.user_id == user_id)
            .order_by(col(ChatSession.last_message_at).desc())
        )
        return list(result.scalars().all())


async def rename_session(session_id: str, title: str) -> bool:
    if not title or not title.strip():
        raise ValidationError("title is required")
    async with await _open_session() as session:
        chat_session = await session.get(ChatSession, session_id)
        if not chat_session:
            return False
        chat_session.title = title.strip()
        session.add(chat_session)
        await session.commit()
    return True


async def touch_session(session_id: str, at: Optional[datetime] = None):
    """Bump the last-activity time of a session"""
    async with await _open_session() as session:
        chat_session = await session.get(ChatSession, session_id)
        if not chat_session:
            raise ValidationError(f"Session {session_id} does not exist")
        chat_session.last_message_at = at or utcnow()
        session.add(chat_session)
        await session.commit()


async def delete_session(session_id: str) -> bool:
    """Delete a chat session and all its messages"""
    if not session_id:
        raise ValidationError("session_id is required")
    try:
        async with await _open_session() as session:
            await session.execute(delete(ChatMessage).where(ChatMessage.session_id == session_id))
            result = await session.execute(delete(ChatSession).where(ChatSession.id == session_id))
            await session.commit()
        if result.rowcount:
            logger.info(f"Deleted session {session_id}")
            return True
        logger.warning(f"Session {session_id} not found for deletion")
        return False
    except Exception as e:
        logger.error(f"Failed to delete session {session_id}: {e}")
        raise

# ------------------------------------------------------------------------------
# Messages
# ------------------------------------------------------------------------------
async def save_message(
    session_id: str,
    role: str,
    content: str,
    meta: Optional[Dict[str, Any]] = None,
) -> ChatMessage:
    """Save a message to the database"""
    if not session_id or not role or not content:
        raise ValidationError("session_id, role, and content are required")
    if role not in ROLES:
        raise ValidationError("role must be 'user' or 'assistant'")
    message = ChatMessage(session_id=session_id, role=role, content=encrypt(content), meta=meta or {})
    try:
        async with await _open_session() as session:
            if not await session.get(ChatSession, session_id):
                raise ValidationError(f"Session {session_id} does not exist")
            session.add(message)
            await session.commit()
        logger.info(f"Saved {role} message to session {session_id}")
        return message
    except ValidationError:
        raise
    except Exception as e:
        logger.error(f"Failed to save message: {e}")
        raise


async def _select_messages(session_id: str, exclude_ids: Iterable[int] = ()) -> List[ChatMessage]:
    statement = (
        select(ChatMessage)
        .where(ChatMessage.session_id == session_id)
        .order_by(col(ChatMessage.created_at), col(ChatMessage.id))
    )
    excluded = [i for i in exclude_ids if i is not None]
    if excluded:
        statement = statement.where(col(ChatMessage.id).not_in(excluded))
    async with await _open_session() as session:
        result = await session.execute(statement)
        return list(result.scalars().all())


async def load_history(session_id: str, exclude_ids: Iterable[int] = ()) -> List[Tuple[str, str]]:
    """Load chat history for a session as (role, content) pairs"""
    if not session_id:
        return []
    messages = await _select_messages(session_id, exclude_ids)
    return [(msg.role, decrypt(msg.content)) for msg in messages]


async def load_messages(session_id: str) -> List[Dict[str, Any]]:
    """Load full message records, metadata included"""
    if not session_id:
        return []
    messages = await _select_messages(session_id)
    return [
        {
            "id": msg.id,
            "role": msg.role,
            "content": decrypt(msg.content),
            "created_at": msg.created_at,
            "meta": dict(msg.meta or {}),
        }
        for msg in messages
    ]

# ------------------------------------------------------------------------------
# Study resources
# ------------------------------------------------------------------------------
async def _add_resource(resource: StudyResource) -> StudyResource:
    async with await _open_session() as session:
        session.add(resource)
        await session.commit()
    logger.info(f"Saved {resource.resource_type} resource {resource.title} ({resource.id})")
    return resource


async def create_link_resource(user_id: str, title: str, url: str) -> StudyResource:
    if not user_id or not url:
        raise ValidationError("user_id and url are required")
    return await _add_resource(
        StudyResource(user_id=user_id, title=title or url, resource_type="link", url=url)
    )


async def create_file_resource(
    user_id: str,
    filename: str,
    data: bytes,
    storage,
    title: Optional[str] = None,
    mime_type: Optional[str] = None,
) -> StudyResource:
    """Upload file bytes to the blob store and register the resource"""
    if not user_id or not filename:
        raise ValidationError("user_id and filename are required")
    if not data:
        raise ValidationError(f"{filename} is empty")
    mime_type = mime_type or mimetypes.guess_type(filename)[0]
    path = f"{user_id}/{uuid.uuid4().hex}-{os.path.basename(filename)}"
    await storage.upload(path, data, mime_type)
    return await _add_resource(
        StudyResource(
            user_id=user_id,
            title=title or filename,
            resource_type="file",
            file_path=path,
            mime_type=mime_type,
        )
    )


async def get_resources_by_ids(
    resource_ids: Iterable[str],
    user_id: Optional[str] = None,
) -> List[StudyResource]:
    """Fetch resources, keeping the order of the requested ids"""
    ordered_ids = list(dict.fromkeys(i for i in resource_ids if i))
    if not ordered_ids:
        return []
    statement = select(StudyResource).where(col(StudyResource.id).in_(ordered_ids))
    if user_id:
        statement = statement.where(StudyResource.user_id == user_id)
    async with await _open_session() as session:
        result = await session.execute(statement)
        found = {resource.id: resource for resource in result.scalars().all()}
    missing = [i for i in ordered_ids if i not in found]
    if missing:
        logger.warning(f"No resources found with ids: {', '.join(missing)}")
    return [found[i] for i in ordered_ids if i in found]


async def list_resources(user_id: str) -> List[StudyResource]:
    async with await _open_session() as session:
        result = await session.execute(
            select(StudyResource)
            .where(StudyResource.user_id == user_id)
            .order_by(col(StudyResource.created_at).desc())
        )
        return list(result.scalars().all())


async def cache_resource_content(resource_id: str, content: str):
    async with await _open_session() as session:
        resource = await session.get(StudyResource, resource_id)
        if not resource:
            return
        resource.content = content
        session.add(resource)
        await session.commit()


async def delete_resource(resource_id: str, storage) -> bool:
    """Delete a resource, removing its stored file first"""
    async with await _open_session() as session:
        resource = await session.get(StudyResource, resource_id)
        if not resource:
            logger.warning(f"Resource {resource_id} not found for deletion")
            return False
        if resource.resource_type == "file" and resource.file_path:
            await storage.remove(resource.file_path)
        await session.delete(resource)
        await session.commit()
    logger.info(f"Deleted resource {resource_id}")
    return True
