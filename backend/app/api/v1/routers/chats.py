import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from tortoise.exceptions import IntegrityError

from app.api.v1.deps import ai_error_to_http, build_ai_manager, build_context_manager, get_message_store
from app.models.chat import Chat
from app.models.chat_summary import ChatSummary
from app.models.message import Message
from app.schemas.ai import AIOptions, ConversationContext
from app.services.ai_base import AIError
from app.services.ai_manager import AIManager
from app.services.audio_convert import normalize_audio
from app.services.context_manager import format_transcript
from app.services.message_store import MessageStore
from app.services.prompts import (
    CONVERSATION_TOPICS,
    ROLEPLAY_SCENARIOS,
    ProficiencyLevel,
    build_system_prompt,
    get_opening_prompt,
    get_roleplay_scenarios,
    get_suggestion_prompt,
    get_topics,
    resolve_level,
    resolve_topic_type,
)
from app.services.response_protocol import parse_suggestions

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/chats", tags=["chats"])

SUGGESTION_HISTORY_TURNS = 6

# ===== Schemas =====
class CreateChatIn(BaseModel):
    title: str | None = None
    topicType: str = "general"  # general | roleplay | topic
    topicKey: str | None = None
    level: str = "intermediate"
    language: str = "en"
    motherLanguage: str = "en"
    aiProvider: str | None = None
    model: str | None = None
    wantAudioOutput: bool | None = None
    voice: str | None = None

class UpdateChatIn(BaseModel):
    title: str | None = None
    level: str | None = None
    aiProvider: str | None = None
    model: str | None = None

class ContextSettingsIn(BaseModel):
    recentWindowSize: int | None = Field(default=None, ge=1)
    summarizeAfterMessages: int | None = Field(default=None, ge=1)
    textModel: str | None = None
    disableSummarization: bool | None = None

class SendMessageIn(BaseModel):
    text: str | None = None
    audioBase64: str | None = None
    audioFormat: str | None = None  # wav | mp3 | webm | ogg | m4a
    draftTranscription: str | None = None  # On-device recognizer output
    motherLanguage: str | None = None
    model: str | None = None
    contextSettings: ContextSettingsIn | None = None

class SuggestionsIn(BaseModel):
    count: int = Field(default=3, ge=1, le=10)
    model: str | None = None

# ===== Helpers =====
def _iso(ts) -> str | None:
    if ts is None:
        return None
    return ts.isoformat() + "Z" if ts.tzinfo is None else ts.isoformat()

def _chat_out(c: Chat) -> dict:
    return {
        "id": str(c.id),
        "title": c.title,
        "topicType": c.topic_type,
        "topicKey": c.topic_key,
        "level": c.level,
        "language": c.language,
        "motherLanguage": c.mother_language,
        "threadId": c.thread_id,
        "aiProvider": c.ai_provider,
        "aiModel": c.ai_model,
        "createdAt": _iso(c.created_at),
        "updatedAt": _iso(c.updated_at),
    }

def _message_out(m: Message) -> dict:
    return {
        "id": str(m.id),
        "seq": m.seq,
        "role": m.role,
        "content": m.content,
        "audioFormat": m.audio_format,
        "analysis": m.analysis,
        "createdAt": _iso(m.created_at),
    }

async def _get_chat_or_404(chat_id: str) -> Chat:
    try:
        uuid.UUID(chat_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="NOT_FOUND")
    c = await Chat.get_or_none(id=chat_id)
    if not c:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="NOT_FOUND")
    return c

async def _next_seq(chat: Chat) -> int:
    last = await Message.filter(chat_id=chat.id).order_by("-seq").first()
    return (last.seq if last else 0) + 1

def _system_prompt(chat: Chat) -> str:
    return build_system_prompt(chat.topic_type, chat.topic_key, chat.language, chat.level)

def _default_title(topic_type: str, topic_key: str | None) -> str:
    if topic_type == "roleplay" and topic_key in ROLEPLAY_SCENARIOS:
        return ROLEPLAY_SCENARIOS[topic_key]["name"]
    if topic_type == "topic" and topic_key in CONVERSATION_TOPICS:
        return CONVERSATION_TOPICS[topic_key]["name"]
    return "New conversation"

# ===== Routes =====
@router.get("/topics", response_model=dict)
async def list_topics():
    """
    Roleplay scenarios, conversation topics and proficiency levels a chat can be created with.
    """
    return {
        "success": True,
        "data": {
            "roleplay": get_roleplay_scenarios(),
            "topics": get_topics(),
            "levels": [level.value for level in ProficiencyLevel],
        },
    }

@router.get("", response_model=dict)
async def list_chats(
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
):
    """
    Get paginated list of chats, most recently active first.

    Returns:
        dict: {"success": True, "data": {"items", "offset", "limit", "total"}}
    """
    total = await Chat.all().count()
    rows = await Chat.all().order_by("-updated_at").offset(offset).limit(limit)
    return {
        "success": True,
        "data": {"items": [_chat_out(c) for c in rows], "offset": offset, "limit": limit, "total": total},
    }

@router.post("", response_model=dict)
async def create_chat(body: CreateChatIn):
    """
    Create a chat and its opening tutor message.

    The chat is only stored once the opening message was generated, so a
    failed model call leaves nothing behind.

    Raises:
        HTTPException (502): UPSTREAM_FAILED when the opening message call fails
        HTTPException (503): AI_UNAVAILABLE when the provider cannot be used
    """
    manager = await build_ai_manager(body.aiProvider, body.model)
    topic_type = resolve_topic_type(body.topicType).value
    level = resolve_level(body.level).value
    chat_id = uuid.uuid4()
    system_prompt = build_system_prompt(topic_type, body.topicKey, body.language, level)

    try:
        thread_id = await manager.create_thread()
        context = ConversationContext(chatId=str(chat_id), threadId=thread_id, systemPrompt=system_prompt)
        opening = await manager.generate(
            context,
            get_opening_prompt(topic_type),
            AIOptions(wantAudioOutput=body.wantAudioOutput, voice=body.voice),
        )
    except AIError as e:
        raise ai_error_to_http(e) from e

    config = manager.get_config()
    title = body.title.strip()[:128] if body.title and body.title.strip() else _default_title(topic_type, body.topicKey)
    chat = await Chat.create(
        id=chat_id,
        title=title,
        topic_type=topic_type,
        topic_key=body.topicKey,
        level=level,
        language=body.language,
        mother_language=body.motherLanguage,
        thread_id=thread_id,
        ai_provider=config.providerId,
        ai_model=config.model,
    )
    msg = await Message.create(chat=chat, seq=1, role="assistant", content=opening.content)

    logger.info("[Chat API] Created chat %s (%s/%s) with %s", chat.id, topic_type, body.topicKey, config.providerId)
    opening_out = _message_out(msg)
    opening_out["audioBase64"] = opening.audioBase64
    return {"success": True, "data": {"chat": _chat_out(chat), "openingMessage": opening_out}}

@router.get("/{chat_id}", response_model=dict)
async def get_chat_detail(chat_id: str):
    """
    Get a chat with all its messages (ordered by seq) and its rolling summary.

    Raises:
        HTTPException (404): If chat not found
    """
    c = await _get_chat_or_404(chat_id)
    msgs = await Message.filter(chat_id=c.id).order_by("seq", "created_at")
    summary = await ChatSummary.get_or_none(chat_id=c.id)
    return {
        "success": True,
        "data": {
            "chat": _chat_out(c),
            "messages": [_message_out(m) for m in msgs],
            "summary": {
                "content": summary.content,
                "lastMessageIndex": summary.last_message_index,
            } if summary else None,
        },
    }

@router.patch("/{chat_id}", response_model=dict)
async def update_chat(chat_id: str, body: UpdateChatIn):
    """
    Rename a chat, change its level or move it to another provider / model.

    Raises:
        HTTPException (400): PROVIDER_NOT_FOUND for an unknown provider id
        HTTPException (404): If chat not found
        HTTPException (503): AI_UNAVAILABLE if the new provider cannot be used
    """
    c = await _get_chat_or_404(chat_id)
    if body.title is not None:
        c.title = body.title.strip()[:128]
    if body.level is not None:
        c.level = resolve_level(body.level).value
    if body.aiProvider is not None:
        manager = AIManager()
        manager.set_model(body.model or c.ai_model or manager.config.model)
        try:
            await manager.switch_provider(body.aiProvider)
        except AIError as e:
            raise ai_error_to_http(e) from e
        config = manager.get_config()
        c.ai_provider = config.providerId
        c.ai_model = config.model
    elif body.model:
        c.ai_model = body.model
    await c.save()
    return {"success": True, "data": _chat_out(c)}

@router.delete("/{chat_id}", response_model=dict)
async def delete_chat(chat_id: str):
    """
    Delete a chat with its messages and summary.

    Raises:
        HTTPException (404): If chat not found
    """
    c = await _get_chat_or_404(chat_id)
    # Delete children first, then the chat (foreign key cascades, but manual is clearer)
    await Message.filter(chat_id=c.id).delete()
    await ChatSummary.filter(chat_id=c.id).delete()
    await c.delete()
    return {"success": True, "data": {"id": chat_id, "deleted": True}}

@router.post("/{chat_id}/messages", response_model=dict)
async def send_message(chat_id: str, body: SendMessageIn, store: MessageStore = Depends(get_message_store)):
    """
    One tutor turn: reply to the learner and analyze their message.

    Flow:
    1. Build the bounded context from the turns so far
    2. Store the learner turn (draft text or "[audio]" placeholder)
    3. Single respond() call: reply + analysis (+ pronunciation for audio)
    4. Replace the learner turn with the grounded transcription + analysis
    5. Store the tutor reply

    Raises:
        HTTPException (400): EMPTY_MESSAGE / AUDIO_UNUSABLE
        HTTPException (404): If chat not found
        HTTPException (409): CONCURRENT_TURN
        HTTPException (502): UPSTREAM_FAILED
        HTTPException (503): AI_UNAVAILABLE
    """
    c = await _get_chat_or_404(chat_id)
    text = (body.text or "").strip()
    draft = (body.draftTranscription or "").strip() or None
    if not text and not draft and not body.audioBase64:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="EMPTY_MESSAGE")

    manager = await build_ai_manager(c.ai_provider, body.model or c.ai_model)
    contexts = build_context_manager(manager, store)
    if body.contextSettings:
        contexts.set_settings(**body.contextSettings.model_dump(exclude_none=True))

    audio_base64, audio_format = await normalize_audio(body.audioBase64, body.audioFormat)
    if body.audioBase64 and not audio_base64 and not text and not draft:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="AUDIO_UNUSABLE")

    context = await contexts.build_context(str(c.id), _system_prompt(c), c.thread_id)

    try:
        user_msg = await Message.create(
            chat=c,
            seq=await _next_seq(c),
            role="user",
            content=draft or text or "[audio]",
            audio_format=audio_format,
        )
    except IntegrityError as e:
        logger.warning("[Chat API] chat=%s seq taken by a concurrent turn: %s", c.id, e)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="CONCURRENT_TURN") from e

    try:
        response = await manager.respond(
            context,
            draft or text,
            AIOptions(
                motherLanguage=body.motherLanguage or c.mother_language,
                learningLanguage=c.language,
                level=c.level,
                audioBase64=audio_base64,
                audioFormat=audio_format,
                draftTranscription=draft if audio_base64 else None,
            ),
        )
    except AIError as e:
        # The turn never completed; a retry re-sends it
        await user_msg.delete()
        raise ai_error_to_http(e) from e

    pronunciation = response.analysis.pronunciation
    final_content = (pronunciation.transcribedText if pronunciation else "") or draft or text or "[audio]"
    user_msg.content = final_content
    user_msg.analysis = response.analysis.model_dump()
    await user_msg.save()

    try:
        ai_msg = await Message.create(chat=c, seq=user_msg.seq + 1, role="assistant", content=response.reply)
    except IntegrityError as e:
        logger.warning("[Chat API] chat=%s reply seq taken by a concurrent turn: %s", c.id, e)
        await user_msg.delete()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="CONCURRENT_TURN") from e
    await c.save()  # bump updated_at

    logger.info(
        "[Chat API] chat=%s turn=%d audio=%s grammar=%d",
        c.id, user_msg.seq, bool(audio_base64), response.analysis.grammarScore,
    )
    return {
        "success": True,
        "data": {
            "userMessage": _message_out(user_msg),
            "aiMessage": _message_out(ai_msg),
            "usage": response.usage.model_dump() if response.usage else None,
        },
    }

@router.post("/{chat_id}/suggestions", response_model=dict)
async def suggest_replies(chat_id: str, body: SuggestionsIn, store: MessageStore = Depends(get_message_store)):
    """
    Suggest natural replies the learner could send next.

    Undecodable model output yields an empty list rather than an error.

    Raises:
        HTTPException (404): If chat not found
        HTTPException (502): UPSTREAM_FAILED
    """
    c = await _get_chat_or_404(chat_id)
    manager = await build_ai_manager(c.ai_provider, body.model or c.ai_model)
    contexts = build_context_manager(manager, store)
    context = await contexts.build_context(str(c.id), _system_prompt(c), c.thread_id)

    recent = format_transcript(context.messages[-SUGGESTION_HISTORY_TURNS:])
    prompt = (
        f"{get_suggestion_prompt(body.count, c.language, c.level)}\n\n"
        f"Recent conversation:\n{recent}\n\n"
        f"Generate {body.count} natural reply suggestions for the learner:"
    )
    try:
        response = await manager.generate_text(context, prompt)
    except AIError as e:
        raise ai_error_to_http(e) from e

    return {"success": True, "data": {"suggestions": parse_suggestions(response.content)[:body.count]}}
