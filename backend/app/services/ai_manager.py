"""
AI Session Manager

Holds exactly one active provider plus its tunable config and mediates
every call into it. Instances are request-scoped (see api/v1/deps.py):
each request carries its own provider identity, so concurrent requests
never observe each other's provider switch.
"""
import logging
from typing import List, Optional

from .ai_base import (
    AIProvider,
    ManagedHistoryProvider,
    NotInitialized,
    ProviderNotFound,
    ProviderType,
)
from .ai_registry import get_ai_provider, get_default_ai_provider
from ..config import settings
from ..schemas.ai import (
    AIModel,
    AIOptions,
    AIProviderConfig,
    AIResponse,
    ChatMessage,
    ConversationContext,
    RichTranslation,
    UnifiedResponse,
)

logger = logging.getLogger("uvicorn.error")

# Per-operation defaults; explicit call-site options still win
RESPOND_DEFAULTS = {"temperature": 0.3, "maxTokens": 4000}
RICH_TRANSLATE_DEFAULTS = {"temperature": 0.3, "maxTokens": 500}


def default_provider_config() -> AIProviderConfig:
    return AIProviderConfig(
        providerId=settings.default_ai_provider,
        model=settings.default_ai_model,
        temperature=settings.default_temperature,
        maxTokens=settings.default_max_tokens,
    )


class AIManager:
    """AI Session Manager"""

    def __init__(self, config: Optional[AIProviderConfig] = None):
        self._provider: Optional[AIProvider] = None
        self.config = config or default_provider_config()

    @property
    def current_provider(self) -> Optional[AIProvider]:
        return self._provider

    async def initialize(self, provider_id: Optional[str] = None) -> None:
        """
        Resolve and initialize a provider, falling back to the default one
        when provider_id is missing or unknown.
        """
        provider = get_ai_provider(provider_id)
        if provider is None:
            if provider_id:
                logger.warning("[AIManager] Unknown provider %s, using default", provider_id)
            provider = get_default_ai_provider()
        await provider.initialize()
        self._adopt(provider)

    async def switch_provider(self, provider_id: str) -> None:
        """
        Switch to another provider. No fallback: unknown ids raise
        ProviderNotFound and leave the current provider and config untouched.
        """
        provider = get_ai_provider(provider_id)
        if provider is None:
            raise ProviderNotFound(provider_id)
        await provider.initialize()
        self._adopt(provider)

    def _adopt(self, provider: AIProvider) -> None:
        self._provider = provider
        self.config.providerId = provider.id
        # Cloud backends accept many models the static list cannot enumerate
        if provider.type == ProviderType.LOCAL and provider.models and not provider.supports_model(self.config.model):
            logger.info(
                "[AIManager] Model %s not available on %s, using %s",
                self.config.model, provider.id, provider.models[0].id,
            )
            self.config.model = provider.models[0].id
        logger.info("[AIManager] Active provider=%s model=%s", provider.id, self.config.model)

    def set_model(self, model_id: str) -> None:
        self.config.model = model_id

    def set_temperature(self, temperature: float) -> None:
        self.config.temperature = max(0.0, min(2.0, temperature))

    def set_max_tokens(self, max_tokens: int) -> None:
        self.config.maxTokens = max_tokens

    def get_config(self) -> AIProviderConfig:
        return self.config.model_copy()

    def get_models(self) -> List[AIModel]:
        return list(self._provider.models) if self._provider else []

    def _require_provider(self) -> AIProvider:
        if self._provider is None:
            raise NotInitialized()
        return self._provider

    def _merge_options(self, options: Optional[AIOptions], **operation_defaults) -> AIOptions:
        """call-site option > per-operation default > stored config"""
        merged = {
            "model": self.config.model,
            "temperature": self.config.temperature,
            "maxTokens": self.config.maxTokens,
        }
        merged.update(operation_defaults)
        explicit = options.model_dump(exclude_none=True) if options else {}
        if not explicit.get("model"):
            explicit.pop("model", None)
        merged.update(explicit)
        return AIOptions(**merged)

    async def generate(
        self,
        context: ConversationContext,
        message: str,
        options: Optional[AIOptions] = None,
    ) -> AIResponse:
        provider = self._require_provider()
        return await provider.generate(context, message, self._merge_options(options))

    async def generate_text(
        self,
        context: ConversationContext,
        message: str,
        options: Optional[AIOptions] = None,
    ) -> AIResponse:
        provider = self._require_provider()
        merged = self._merge_options(options)
        merged.wantAudioOutput = None
        return await provider.generate_text(context, message, merged)

    async def respond(
        self,
        context: ConversationContext,
        user_message: str,
        options: Optional[AIOptions] = None,
    ) -> UnifiedResponse:
        provider = self._require_provider()
        return await provider.respond(context, user_message, self._merge_options(options, **RESPOND_DEFAULTS))

    async def rich_translate(
        self,
        text: str,
        learning_language: str,
        mother_language: str,
        options: Optional[AIOptions] = None,
    ) -> RichTranslation:
        provider = self._require_provider()
        return await provider.rich_translate(
            text,
            learning_language,
            mother_language,
            self._merge_options(options, **RICH_TRANSLATE_DEFAULTS),
        )

    async def create_thread(self) -> Optional[str]:
        """Create a server-side thread when the active provider manages history"""
        provider = self._provider
        if isinstance(provider, ManagedHistoryProvider):
            return await provider.create_thread()
        return None

    async def get_thread_messages(self, thread_id: str) -> List[ChatMessage]:
        provider = self._provider
        if isinstance(provider, ManagedHistoryProvider):
            return await provider.get_thread_messages(thread_id)
        return []
