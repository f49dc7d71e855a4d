"""
AI Provider Registry

Lookup table of interchangeable AI backends. Consulted by AIManager only
when a provider is initialized or switched.
"""
import logging
from typing import Dict, List, Optional

from .ai_base import AIProvider
from .ai_ollama import ollama_provider
from .ai_openai_chat import openai_assistant_provider, openai_chat_provider
from ..config import settings

logger = logging.getLogger("uvicorn.error")


AI_PROVIDERS: Dict[str, AIProvider] = {
    openai_chat_provider.id: openai_chat_provider,
    openai_assistant_provider.id: openai_assistant_provider,
    ollama_provider.id: ollama_provider,
}


def get_ai_provider(provider_id: Optional[str]) -> Optional[AIProvider]:
    """Get provider by id, None if unknown"""
    if not provider_id:
        return None
    return AI_PROVIDERS.get(provider_id)


def get_default_ai_provider() -> AIProvider:
    """
    Get the default provider

    Uses DEFAULT_AI_PROVIDER from .env; falls back to the OpenAI chat
    provider when that id is not registered.
    """
    provider = AI_PROVIDERS.get(settings.default_ai_provider)
    if provider is None:
        logger.warning(
            "[AI] DEFAULT_AI_PROVIDER=%s is not registered, using %s",
            settings.default_ai_provider, openai_chat_provider.id,
        )
        return openai_chat_provider
    return provider


def list_ai_providers(include_deprecated: bool = False) -> List[AIProvider]:
    return [p for p in AI_PROVIDERS.values() if include_deprecated or not p.deprecated]
