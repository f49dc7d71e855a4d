"""
Unified Response Protocol

Turns raw model output into structurally complete results:
1. Conversation context text for the reply + analysis call
2. JSON repair pass (model text is not reliably valid JSON)
3. Strict decoding with a second attempt on the unrepaired text
4. Normalization into UnifiedResponse / RichTranslation with safe defaults

Decoding never raises to the caller: a DecodeFailure is absorbed into a
neutral default result.
"""
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from .ai_base import DecodeFailure
from ..schemas.ai import (
    Analysis,
    ConversationContext,
    GrammarError,
    Mispronunciation,
    PronunciationAnalysis,
    RichTranslation,
    UnifiedResponse,
    Usage,
)

logger = logging.getLogger("uvicorn.error")

DEFAULT_GRAMMAR_SCORE = 70
DEFAULT_VOCABULARY_SCORE = 70
DEFAULT_RELEVANCE_SCORE = 80  # Benefit of the doubt
DEFAULT_PRONUNCIATION_SCORE = 70

RECENT_TURNS_IN_PROMPT = 10

PARSE_FAILURE_FEEDBACK = "Unable to parse the tutor's assessment for this message. Please try again."

TRANSLATION_TYPES = ("word", "phrase", "idiom", "collocation", "expression")
FORMALITY_LEVELS = ("formal", "neutral", "informal", "slang")

# "heardAs": "word" (with a slight mispronunciation),  ->  "heardAs": "word" ,
_PARENTHETICAL_AFTER_STRING = re.compile(r'(?<!\\)"(\s*)\(([^)]*)\)(\s*[,}\]])')
# "heardAs": "word" with a slight error,  ->  "heardAs": "word",
_DANGLING_WORDS_AFTER_STRING = re.compile(
    r'(?<!\\)"(\s+)(?:with|and|but|or|the|a|slight|some|minor|major|very|quite|nearly|almost)'
    r'(?:\s[^,}"]*)?(\s*[,}\]])',
    re.IGNORECASE,
)
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# ===== Prompt context =====

def format_conversation_context(
    context: ConversationContext,
    recent_limit: int = RECENT_TURNS_IN_PROMPT,
) -> str:
    """Summary (if any) followed by the last recent_limit turns as plain text"""
    recent = context.messages[-recent_limit:] if recent_limit else context.messages
    lines = "\n".join(f"{m.role}: {m.content}" for m in recent)
    prefix = f"EARLIER CONVERSATION SUMMARY:\n{context.summary}\n\n" if context.summary else ""
    return f"{prefix}RECENT CONVERSATION:\n{lines}"


def build_text_turn(conversation: str, user_message: str) -> str:
    return f"{conversation}\n\nMESSAGE TO RESPOND TO AND ANALYZE:\n{user_message}"


def build_audio_turn(conversation: str, draft_transcription: Optional[str]) -> str:
    if draft_transcription:
        return (
            f"{conversation}\n\n"
            f'VERIFIED TRANSCRIPTION (use this EXACTLY as transcribedText): "{draft_transcription}"\n\n'
            "Listen to the audio ONLY for pronunciation analysis. The transcription above is correct - "
            "do NOT change it. Respond as a tutor to what the learner said, and analyze their message."
        )
    return (
        f"{conversation}\n\n"
        "Listen to the audio, transcribe it literally, respond as a tutor, and analyze the learner's message. "
        "JSON only. List ALL mispronounced words."
    )


def audio_grounding_instruction(draft_transcription: Optional[str]) -> str:
    """Extra system instruction for audio-grounded turns"""
    if draft_transcription:
        return (
            f'CRITICAL: The transcribedText field MUST be EXACTLY: "{draft_transcription}". '
            "Do NOT modify, rephrase, or reinterpret it."
        )
    return "CRITICAL: The mispronunciations array MUST contain ALL mispronounced words. Do NOT truncate it."


# ===== Repair + decode =====

def extract_json_object(content: str) -> str:
    """Strip code fences and any prose around the outermost {...} block"""
    text = _CODE_FENCE.sub("", (content or "").strip())
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        return text
    return text[start:end + 1]


def sanitize_model_json(content: str) -> str:
    """
    Best-effort repair of common model JSON defects.

    Removes parenthetical commentary and dangling connector words placed
    after a closing string quote but before the next delimiter.
    """
    sanitized = _PARENTHETICAL_AFTER_STRING.sub(r'"\1\3', content)
    sanitized = _DANGLING_WORDS_AFTER_STRING.sub(r'"\1\2', sanitized)
    return sanitized


def decode_model_json(content: str) -> Dict[str, Any]:
    """
    Decode strictly; only text that fails to decode as-is gets repaired and
    decoded again. Well-formed output therefore reaches the caller untouched.

    Raises DecodeFailure when neither decodes to a JSON object.
    """
    extracted = extract_json_object(content)
    last_error: Optional[Exception] = None
    for candidate in (extracted, sanitize_model_json(extracted)):
        try:
            parsed = json.loads(candidate)
        except ValueError as e:
            last_error = e
            continue
        if isinstance(parsed, dict):
            return parsed
        last_error = DecodeFailure(f"expected a JSON object, got {type(parsed).__name__}")
    raise DecodeFailure(f"Model output is not valid JSON: {last_error}")


# ===== Normalization helpers =====

def coerce_score(value: Any, default: int) -> int:
    """Integer score clamped to 0-100; anything non-numeric takes the default"""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return default
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    return max(0, min(100, int(round(value))))


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [_text(item) for item in value if item is not None and not isinstance(item, (dict, list))]


def _grammar_errors(value: Any) -> List[GrammarError]:
    if not isinstance(value, list):
        return []
    return [
        GrammarError(
            original=_text(item.get("original")),
            correction=_text(item.get("correction")),
            explanation=_text(item.get("explanation")),
        )
        for item in value
        if isinstance(item, dict)
    ]


def _mispronunciations(value: Any) -> List[Mispronunciation]:
    if not isinstance(value, list):
        return []
    return [
        Mispronunciation(
            word=_text(item.get("word")),
            heardAs=_text(item.get("heardAs")),
            correctPronunciation=_text(item.get("correctPronunciation")),
        )
        for item in value
        if isinstance(item, dict)
    ]


def resolve_transcription(model_value: Any, draft_transcription: Optional[str]) -> str:
    """Model-proposed text if present, else the client draft, else empty"""
    if isinstance(model_value, str) and model_value.strip():
        return model_value
    return draft_transcription or ""


def parse_usage(raw: Any) -> Optional[Usage]:
    """OpenAI-style usage block -> Usage"""
    if not isinstance(raw, dict):
        return None
    prompt_tokens = int(raw.get("prompt_tokens") or 0)
    completion_tokens = int(raw.get("completion_tokens") or 0)
    total = raw.get("total_tokens")
    return Usage(
        promptTokens=prompt_tokens,
        completionTokens=completion_tokens,
        totalTokens=int(total) if total is not None else prompt_tokens + completion_tokens,
    )


# ===== Unified response =====

def default_unified_response(
    has_audio: bool,
    draft_transcription: Optional[str] = None,
    feedback: str = PARSE_FAILURE_FEEDBACK,
) -> UnifiedResponse:
    analysis = Analysis(
        grammarScore=DEFAULT_GRAMMAR_SCORE,
        vocabularyScore=DEFAULT_VOCABULARY_SCORE,
        relevanceScore=DEFAULT_RELEVANCE_SCORE,
        overallFeedback=feedback,
    )
    if has_audio:
        analysis.pronunciation = PronunciationAnalysis(
            pronunciationScore=DEFAULT_PRONUNCIATION_SCORE,
            transcribedText=draft_transcription or "",
        )
    return UnifiedResponse(reply="", analysis=analysis)


def parse_unified_response(
    content: str,
    has_audio: bool,
    draft_transcription: Optional[str] = None,
) -> UnifiedResponse:
    """
    Decode a reply + analysis payload.

    Parameters:
        content: Raw model message content
        has_audio: Whether the turn was audio-grounded (adds pronunciation)
        draft_transcription: Client-side transcription used as override floor

    Returns:
        UnifiedResponse, always complete. On undecodable output: empty reply
        and default scores.
    """
    try:
        parsed = decode_model_json(content)
    except DecodeFailure as e:
        logger.error("[Respond] JSON parse failed: %s", e)
        logger.error("[Respond] Content was: %s", content)
        return default_unified_response(has_audio, draft_transcription)

    raw = parsed.get("analysis")
    if not isinstance(raw, dict):
        raw = parsed  # Some models flatten the analysis into the top level

    analysis = Analysis(
        grammarScore=coerce_score(raw.get("grammarScore"), DEFAULT_GRAMMAR_SCORE),
        grammarErrors=_grammar_errors(raw.get("grammarErrors")),
        vocabularyScore=coerce_score(raw.get("vocabularyScore"), DEFAULT_VOCABULARY_SCORE),
        vocabularySuggestions=_string_list(raw.get("vocabularySuggestions")),
        relevanceScore=coerce_score(raw.get("relevanceScore"), DEFAULT_RELEVANCE_SCORE),
        relevanceFeedback=_text(raw["relevanceFeedback"]) if raw.get("relevanceFeedback") is not None else None,
        overallFeedback=_text(raw.get("overallFeedback")) or "Good effort!",
        alternativePhrasings=_string_list(raw.get("alternativePhrasings")),
    )

    if has_audio:
        pron = raw.get("pronunciation")
        if not isinstance(pron, dict):
            pron = raw  # Prompted layout keeps pronunciation fields flat
        analysis.pronunciation = PronunciationAnalysis(
            pronunciationScore=coerce_score(pron.get("pronunciationScore"), DEFAULT_PRONUNCIATION_SCORE),
            transcribedText=resolve_transcription(
                pron.get("transcribedText", raw.get("transcribedText")),
                draft_transcription,
            ),
            mispronunciations=_mispronunciations(pron.get("mispronunciations")),
            pronunciationFeedback=_text(pron.get("pronunciationFeedback")),
        )

    return UnifiedResponse(reply=_text(parsed.get("reply")), analysis=analysis)


# ===== Rich translation =====

def default_rich_translation(text: str) -> RichTranslation:
    return RichTranslation(
        translation=text,
        type="word",
        definition="",
        usageExamples=[],
        formality="neutral",
    )


def parse_rich_translation(content: str, text: str) -> RichTranslation:
    try:
        parsed = decode_model_json(content)
    except DecodeFailure as e:
        logger.error("[RichTranslate] JSON parse failed: %s", e)
        return default_rich_translation(text)

    translation = _text(parsed.get("translation")) or text
    kind = parsed.get("type")
    formality = parsed.get("formality")
    examples = next(
        (parsed[key] for key in ("usageExamples", "usage_examples", "examples") if isinstance(parsed.get(key), list)),
        [],
    )
    return RichTranslation(
        translation=translation,
        type=kind if kind in TRANSLATION_TYPES else "word",
        definition=_text(parsed.get("definition")) or _text(parsed.get("translation")),
        usageExamples=_string_list(examples),
        notes=_text(parsed.get("notes")) or None,
        formality=formality if formality in FORMALITY_LEVELS else "neutral",
    )


# ===== Suggestions =====

def parse_suggestions(content: str) -> List[str]:
    try:
        parsed = decode_model_json(content)
    except DecodeFailure as e:
        logger.error("[Suggest] JSON parse failed: %s", e)
        return []
    return [s for s in _string_list(parsed.get("suggestions")) if s.strip()]
