"""
Services Module

Provides the AI layer of the tutor:
- AI providers (OpenAI Chat Completions, OpenAI threads, local Ollama)
- Session manager (one active provider + config per request)
- Context manager (sliding window + rolling summary)
- Unified reply + analysis protocol and rich translation
"""

# AI provider interface
from .ai_base import (
    AIError,
    AIProvider,
    ContextMode,
    DecodeFailure,
    ManagedHistoryProvider,
    NotInitialized,
    ProviderNotFound,
    ProviderType,
    ProviderUnavailable,
    SummarizationFailure,
    UpstreamCallFailure,
)
from .ai_registry import (
    AI_PROVIDERS,
    get_ai_provider,
    get_default_ai_provider,
    list_ai_providers,
)
from .ai_manager import AIManager

# Context compaction
from .context_manager import ContextManager
from .message_store import MessageStore, TortoiseMessageStore

# Audio normalization (ffmpeg)
from .audio_convert import normalize_audio

__all__ = [
    # Providers
    "AIError",
    "AIProvider",
    "ContextMode",
    "DecodeFailure",
    "ManagedHistoryProvider",
    "NotInitialized",
    "ProviderNotFound",
    "ProviderType",
    "ProviderUnavailable",
    "SummarizationFailure",
    "UpstreamCallFailure",
    "AI_PROVIDERS",
    "get_ai_provider",
    "get_default_ai_provider",
    "list_ai_providers",
    "AIManager",
    # Context
    "ContextManager",
    "MessageStore",
    "TortoiseMessageStore",
    # Audio
    "normalize_audio",
]
