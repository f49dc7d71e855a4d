from fastapi import APIRouter, Query

from app.config import settings
from app.services.ai_registry import list_ai_providers

router = APIRouter(prefix="/providers", tags=["providers"])

@router.get("", response_model=dict)
async def list_providers(check: bool = Query(False, description="Probe each provider's availability")):
    """
    List selectable AI providers (deprecated ones are hidden) with their models.

    With check=true each provider's is_available() is called; for local
    providers this contacts the local server.
    """
    items = []
    for p in list_ai_providers():
        item = {
            "id": p.id,
            "name": p.name,
            "type": p.type.value,
            "contextMode": p.context_mode.value,
            "supportsJsonMode": p.supports_json_mode,
            "models": [m.model_dump() for m in p.models],
        }
        if check:
            item["available"] = await p.is_available()
        items.append(item)
    return {"success": True, "data": {"items": items, "default": settings.default_ai_provider}}
