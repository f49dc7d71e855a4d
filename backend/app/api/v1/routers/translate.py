from fastapi import APIRouter
from pydantic import BaseModel, Field

from app.api.v1.deps import ai_error_to_http, build_ai_manager
from app.services.ai_base import AIError

router = APIRouter(prefix="/translate", tags=["translate"])

class TranslateIn(BaseModel):
    text: str = Field(min_length=1, max_length=500)
    learningLanguage: str = "en"
    motherLanguage: str = "en"
    aiProvider: str | None = None
    model: str | None = None

@router.post("", response_model=dict)
async def rich_translate(body: TranslateIn):
    """
    Translate a selected word or phrase with definition, examples and classification.

    Malformed model output still yields a translation (the original text with
    type "word" and neutral formality).

    Raises:
        HTTPException (502): UPSTREAM_FAILED
        HTTPException (503): AI_UNAVAILABLE
    """
    manager = await build_ai_manager(body.aiProvider, body.model)
    try:
        result = await manager.rich_translate(
            body.text.strip(),
            body.learningLanguage,
            body.motherLanguage,
        )
    except AIError as e:
        raise ai_error_to_http(e) from e
    return {"success": True, "data": result.model_dump()}
