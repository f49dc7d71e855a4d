# app/api/v1/deps.py
import logging
from typing import Optional

from fastapi import HTTPException, status

from app.services.ai_base import (
    AIError,
    NotInitialized,
    ProviderNotFound,
    ProviderType,
    ProviderUnavailable,
    UpstreamCallFailure,
)
from app.services.ai_manager import AIManager
from app.services.context_manager import ContextManager
from app.services.message_store import MessageStore, TortoiseMessageStore

logger = logging.getLogger("uvicorn.error")


def ai_error_to_http(e: AIError) -> HTTPException:
    """
    Map an AI layer error to the HTTP error returned to the client.

    - ProviderNotFound (400): PROVIDER_NOT_FOUND
    - NotInitialized (503): AI_NOT_INITIALIZED
    - ProviderUnavailable (503): AI_UNAVAILABLE
    - UpstreamCallFailure (502): UPSTREAM_FAILED
    """
    if isinstance(e, ProviderNotFound):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="PROVIDER_NOT_FOUND")
    if isinstance(e, NotInitialized):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="AI_NOT_INITIALIZED")
    if isinstance(e, ProviderUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="AI_UNAVAILABLE")
    if isinstance(e, UpstreamCallFailure):
        logger.error("[API] Upstream model call failed (status=%s): %s", e.status_code, e)
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="UPSTREAM_FAILED")
    logger.error("[API] Unhandled AI error: %s", e)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="AI_ERROR")


async def build_ai_manager(provider_id: Optional[str] = None, model: Optional[str] = None) -> AIManager:
    """
    Create a request-scoped AIManager with the given provider active.

    Unknown or missing provider ids fall back to the default provider.
    The model is applied after the provider is adopted. Local providers
    only take models from their own list; cloud providers take any id.

    Raises:
        HTTPException: mapped from the AI layer error (see ai_error_to_http)
    """
    manager = AIManager()
    try:
        await manager.initialize(provider_id)
    except AIError as e:
        raise ai_error_to_http(e) from e
    if model and (manager.current_provider.type == ProviderType.CLOUD or manager.current_provider.supports_model(model)):
        manager.set_model(model)
    return manager


def get_message_store() -> MessageStore:
    """FastAPI dependency returning the message store"""
    return TortoiseMessageStore()


def build_context_manager(manager: AIManager, store: Optional[MessageStore] = None) -> ContextManager:
    return ContextManager(store or get_message_store(), manager)
