import logging
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple

from . import crud
from .context import build_context_block, build_system_message
from .errors import ValidationError
from .gemini_api import GeminiCompletion, generate_session_title
from .models import ChatSession, StudyResource
from .rate_limit import RateLimiter
from .resources import resolve_resources
from .storage import get_storage

logger = logging.getLogger(__name__)


@dataclass
class ChatResponse:
    message: str
    related_resources: List[StudyResource] = field(default_factory=list)
    fallback: bool = False
    message_id: Optional[int] = None


def find_related_resources(
    reply: str,
    resources: List[StudyResource],
    selected_ids: Optional[List[str]] = None,
) -> List[StudyResource]:
    """Resources named in the reply plus the ones explicitly selected"""
    selected = set(selected_ids or [])
    lowered = reply.lower()
    return [
        resource for resource in resources
        if resource.id in selected or (resource.title and resource.title.lower() in lowered)
    ]


class ChatService:
    """Send user turns through retrieval, completion and persistence"""

    def __init__(self, completion=None, storage=None, rate_limiter: Optional[RateLimiter] = None):
        self.completion = completion or GeminiCompletion()
        self.storage = storage or get_storage()
        self.rate_limiter = rate_limiter or RateLimiter()

    async def _get_owned_session(self, session_id: str) -> ChatSession:
        chat_session = await crud.get_session_by_id(session_id)
        if chat_session is None:
            raise ValidationError(f"Session {session_id} does not exist")
        if not chat_session.user_id:
            raise ValidationError("No user_id associated with this chat session")
        return chat_session

    async def send_message(
        self,
        content: str,
        session_id: str,
        resource_ids: Optional[List[str]] = None,
    ) -> ChatResponse:
        if not content or not content.strip():
            raise ValidationError("Please provide a question or message.")
        chat_session = await self._get_owned_session(session_id)

        await self.rate_limiter.acquire()
        return await self._run_turn(chat_session, content, resource_ids)

    async def _run_turn(
        self,
        chat_session: ChatSession,
        content: str,
        resource_ids: Optional[List[str]],
    ) -> ChatResponse:
        session_id = chat_session.id
        resource_ids = list(dict.fromkeys(resource_ids or []))

        user_message = await crud.save_message(
            session_id, "user", content, {"resource_ids": resource_ids} if resource_ids else None
        )

        context = ""
        if resource_ids:
            resolved = await resolve_resources(resource_ids, self.storage, chat_session.user_id)
            context = build_context_block(resolved)
            logger.info(f"Built context of {len(context)} characters from {len(resolved)} resources")

        history = await crud.load_history(session_id, exclude_ids=[user_message.id])
        result = await self.completion.complete(build_system_message(context), history, content)

        meta: Dict[str, Any] = result.metadata()
        meta["reply_to"] = user_message.id
        if resource_ids:
            meta["resource_ids"] = resource_ids
        assistant_message = await crud.save_message(session_id, "assistant", result.text, meta)

        try:
            await crud.touch_session(session_id, assistant_message.created_at)
        except Exception as e:
            logger.error(f"Failed to update last activity for session {session_id}: {e}")

        owned = await crud.list_resources(chat_session.user_id)
        return ChatResponse(
            message=result.text,
            related_resources=find_related_resources(result.text, owned, resource_ids),
            fallback=result.fallback,
            message_id=assistant_message.id,
        )

    async def start_session(
        self,
        user_id: str,
        content: str,
        resource_ids: Optional[List[str]] = None,
    ) -> Tuple[ChatSession, ChatResponse]:
        """Create a session from its first message and send that message"""
        if not content or not content.strip():
            raise ValidationError("Please provide a question or message.")
        if not user_id:
            raise ValidationError("user_id is required")

        await self.rate_limiter.acquire()
        chat_session = await crud.create_session(user_id, await generate_session_title(content))
        try:
            response = await self._run_turn(chat_session, content, resource_ids)
        except Exception:
            logger.error(f"First turn failed, removing session {chat_session.id}")
            try:
                await crud.delete_session(chat_session.id)
            except Exception as e:
                logger.error(f"Failed to remove session {chat_session.id}: {e}")
            raise
        return chat_session, response

    async def create_session(self, user_id: str, title: str) -> ChatSession:
        return await crud.create_session(user_id, title)

    async def get_session(self, session_id: str) -> Dict[str, Any]:
        chat_session = await self._get_owned_session(session_id)
        return {
            "id": chat_session.id,
            "user_id": chat_session.user_id,
            "title": chat_session.title,
            "created_at": chat_session.created_at,
            "last_message_at": chat_session.last_message_at,
            "messages": await crud.load_messages(session_id),
        }

    async def list_sessions(self, user_id: str) -> List[ChatSession]:
        return await crud.list_sessions(user_id)

    async def rename_session(self, session_id: str, title: str) -> bool:
        return await crud.rename_session(session_id, title)

    async def delete_session(self, session_id: str) -> bool:
        return await crud.delete_session(session_id)

    async def upload_file(self, user_id: str, filename: str, data: bytes, title: Optional[str] = None) -> StudyResource:
        return await crud.create_file_resource(user_id, filename, data, self.storage, title=title)

    async def add_link(self, user_id: str, title: str, url: str) -> StudyResource:
        return await crud.create_link_resource(user_id, title, url)

    async def list_resources(self, user_id: str) -> List[StudyResource]:
        return await crud.list_resources(user_id)

    async def delete_resource(self, resource_id: str) -> bool:
        return await crud.delete_resource(resource_id, self.storage)

    async def close(self):
        """Release the completion client"""
        close = getattr(self.completion, "close", None)
        if close is not None:
            await close()
