import enum
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, List, Tuple, Dict, Any
from google import genai
from google.genai import types
from google.genai.errors import APIError, ServerError

from .config import get_gemini_api_key, get_model_name

# Configure logging
logger = logging.getLogger(__name__)

TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 1500


class ProviderErrorKind(str, enum.Enum):
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    UNAUTHORIZED = "unauthorized"
    UNKNOWN = "unknown"


QUOTA_MESSAGE = "🚫 API quota exceeded. Please try again later."
FALLBACK_MESSAGES = {
    ProviderErrorKind.RATE_LIMITED: "⏳ The assistant is receiving too many requests right now. Please wait a moment and try again.",
    ProviderErrorKind.TRANSIENT: "🔧 The AI service is temporarily unavailable. Please try again in a few moments.",
    ProviderErrorKind.UNAUTHORIZED: "🔑 The assistant is not configured correctly. Please contact support.",
    ProviderErrorKind.UNKNOWN: "Sorry, I encountered an error processing your request.",
}

TRANSIENT_CODES = {500, 502, 503, 504}
UNAUTHORIZED_CODES = {401, 403}


@dataclass
class CompletionResult:
    text: str
    model: str
    fallback: bool = False
    error: Optional[str] = None
    error_kind: Optional[ProviderErrorKind] = None

    def metadata(self) -> Dict[str, Any]:
        meta: Dict[str, Any] = {"model": self.model}
        if self.fallback:
            meta.update(fallback=True, error=self.error, error_kind=self.error_kind.value)
        return meta


class EmptyResponseError(Exception):
    def __init__(self, model: str):
        super().__init__(f"Empty response from {model}")


def classify_provider_error(error: BaseException) -> ProviderErrorKind:
    """Map a provider failure onto the closed set of error kinds"""
    if isinstance(error, APIError):
        if error.code == 429:
            return ProviderErrorKind.RATE_LIMITED
        if error.code in UNAUTHORIZED_CODES:
            return ProviderErrorKind.UNAUTHORIZED
        if error.code in TRANSIENT_CODES or isinstance(error, ServerError):
            return ProviderErrorKind.TRANSIENT
        return ProviderErrorKind.UNKNOWN
    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return ProviderErrorKind.TRANSIENT
    if isinstance(error, ValueError) and "GEMINI_API_KEY" in str(error):
        return ProviderErrorKind.UNAUTHORIZED
    return ProviderErrorKind.UNKNOWN


def fallback_message(kind: ProviderErrorKind, error: BaseException) -> str:
    if kind is ProviderErrorKind.RATE_LIMITED and "quota" in str(error).lower():
        return QUOTA_MESSAGE
    return FALLBACK_MESSAGES[kind]


def build_contents(history: List[Tuple[str, str]], message: str) -> List[types.Content]:
    contents = [
        types.Content(role="model" if role == "assistant" else "user", parts=[types.Part(text=text)])
        for role, text in history
    ]
    contents.append(types.Content(role="user", parts=[types.Part(text=message)]))
    return contents


class GeminiCompletion:
    """Chat completions against the Gemini API with graceful fallbacks"""

    def __init__(
        self,
        client: Optional[genai.Client] = None,
        model: Optional[str] = None,
        temperature: float = TEMPERATURE,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
    ):
        self._client = client
        self.model = model or get_model_name()
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    def get_client(self) -> genai.Client:
        """Get or create the Gemini client"""
        if self._client is None:
            try:
                self._client = genai.Client(api_key=get_gemini_api_key())
                logger.info("Gemini client initialized successfully")
            except Exception as e:
                logger.error(f"Failed to initialize Gemini client: {e}")
                raise
        return self._client

    async def complete(
        self,
        system_message: str,
        history: List[Tuple[str, str]],
        message: str,
    ) -> CompletionResult:
        """Generate a reply; provider failures come back as a fallback result"""
        config = types.GenerateContentConfig(
            system_instruction=system_message,
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )
        logger.info(f"Generating response with {len(history)} prior messages, prompt length {len(message)}")
        try:
            client = self.get_client()
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=build_contents(history, message),
                config=config,
            )
            text = (response.text or "") if response else ""
            if not text.strip():
                raise EmptyResponseError(self.model)
        except Exception as e:
            kind = classify_provider_error(e)
            logger.error(f"Gemini {kind.value} error: {e}")
            return CompletionResult(
                text=fallback_message(kind, e),
                model=self.model,
                fallback=True,
                error=str(e),
                error_kind=kind,
            )

        logger.info(f"Generated response of {len(text)} characters")
        return CompletionResult(text=text, model=self.model)

    async def close(self):
        """Cleanup the Gemini client"""
        if self._client is not None:
            aio = getattr(self._client, "aio", None)
            if aio is not None and hasattr(aio, "aclose"):
                await aio.aclose()
            self._client = None
            logger.info("Gemini client cleaned up")


async def generate_session_title(prompt: str) -> str:
    words = prompt.split()
    if len(words) <= 5:
        return " ".join(words)
    return " ".join(words[:5]) + "..."
