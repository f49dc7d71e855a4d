"""
AI Provider Abstract Interface

Provides a unified interface for interchangeable AI backends
(OpenAI Chat Completions / OpenAI threads / local Ollama).
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from ..schemas.ai import (
    AIModel,
    AIOptions,
    AIResponse,
    ChatMessage,
    ConversationContext,
    RichTranslation,
    UnifiedResponse,
)


class ProviderType(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"


class ContextMode(str, Enum):
    MANUAL = "manual"    # We send the conversation history on every call
    MANAGED = "managed"  # The provider keeps history server-side (threads)


# ===== Errors =====

class AIError(Exception):
    """Base class for AI layer errors"""


class ProviderNotFound(AIError, LookupError):
    """Unknown provider id on switch"""

    def __init__(self, provider_id: str):
        super().__init__(f"AI provider not found: {provider_id}")
        self.provider_id = provider_id


class NotInitialized(AIError, RuntimeError):
    """Operation invoked before a provider was initialized"""

    def __init__(self, message: str = "AI not initialized. Call initialize() first."):
        super().__init__(message)


class ProviderUnavailable(AIError, RuntimeError):
    """Provider could not be initialized (missing credentials, unreachable server)"""


class UpstreamCallFailure(AIError, RuntimeError):
    """Network / auth / rate-limit failure from the model API. Never retried here."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DecodeFailure(AIError, ValueError):
    """Model output could not be decoded as a JSON object (absorbed by the protocol)"""


class SummarizationFailure(AIError):
    """Summarization or merge call failed (absorbed by the context manager)"""


# ===== Provider contracts =====

class AIProvider(ABC):
    """AI Provider Abstract Base Class"""

    id: str
    name: str
    type: ProviderType
    context_mode: ContextMode = ContextMode.MANUAL
    models: List[AIModel] = []
    deprecated: bool = False  # Hidden from provider listings
    supports_json_mode: bool = False  # Backend can constrain output to a JSON object

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the provider; raise ProviderUnavailable if it cannot be used"""
        pass

    @abstractmethod
    async def generate(
        self,
        context: ConversationContext,
        message: str,
        options: AIOptions,
    ) -> AIResponse:
        """
        Conversational generation (opening messages, replies).
        May return spoken audio when options.wantAudioOutput is set.
        """
        pass

    @abstractmethod
    async def generate_text(
        self,
        context: ConversationContext,
        message: str,
        options: AIOptions,
    ) -> AIResponse:
        """Text-only generation (summaries, suggestions); never requests audio"""
        pass

    @abstractmethod
    async def respond(
        self,
        context: ConversationContext,
        user_message: str,
        options: AIOptions,
    ) -> UnifiedResponse:
        """
        Reply to the learner AND assess their message in one call.

        Must always return a structurally complete UnifiedResponse when the
        upstream call itself succeeded, whatever the model wrote.
        """
        pass

    @abstractmethod
    async def rich_translate(
        self,
        text: str,
        learning_language: str,
        mother_language: str,
        options: AIOptions,
    ) -> RichTranslation:
        """Translation with definition, usage examples and type classification"""
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if provider is available"""
        pass

    def supports_model(self, model_id: str) -> bool:
        return any(m.id == model_id for m in self.models)


class ManagedHistoryProvider(AIProvider):
    """Providers that own conversation history server-side"""

    context_mode: ContextMode = ContextMode.MANAGED

    @abstractmethod
    async def create_thread(self) -> str:
        """Create a new server-side thread, return its id"""
        pass

    @abstractmethod
    async def get_thread_messages(self, thread_id: str) -> List[ChatMessage]:
        """Return the thread's messages, oldest first"""
        pass
