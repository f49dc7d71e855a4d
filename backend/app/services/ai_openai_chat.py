"""
OpenAI Chat Completions Provider

We manage conversation history ourselves and send it on every call.
Audio-grounded turns go through an audio-capable model (input_audio parts);
text turns use JSON mode so the output is constrained to a JSON object.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from .ai_base import (
    AIProvider,
    ContextMode,
    ManagedHistoryProvider,
    ProviderType,
    ProviderUnavailable,
    UpstreamCallFailure,
)
from .prompts import get_rich_translation_prompt, get_unified_response_prompt
from .response_protocol import (
    audio_grounding_instruction,
    build_audio_turn,
    build_text_turn,
    format_conversation_context,
    parse_rich_translation,
    parse_unified_response,
    parse_usage,
)
from ..config import settings
from ..schemas.ai import (
    AIModel,
    AIOptions,
    AIResponse,
    ChatMessage,
    ConversationContext,
    RichTranslation,
    UnifiedResponse,
)

logger = logging.getLogger("uvicorn.error")

DEFAULT_VOICE = "alloy"


def build_chat_messages(context: ConversationContext, message: str) -> List[Dict[str, Any]]:
    """System prompt, rolling summary, recent turns, then the new user message"""
    messages: List[Dict[str, Any]] = [{"role": "system", "content": context.systemPrompt}]
    if context.summary:
        messages.append({
            "role": "system",
            "content": f"CONVERSATION SUMMARY (earlier messages):\n{context.summary}",
        })
    messages.extend({"role": m.role, "content": m.content} for m in context.messages)
    messages.append({"role": "user", "content": message})
    return messages


class OpenAIChatProvider(AIProvider):
    """OpenAI Chat Completions API Service"""

    id = "openai-chat"
    name = "OpenAI (Chat)"
    type = ProviderType.CLOUD
    context_mode = ContextMode.MANUAL
    supports_json_mode = True

    models = [
        AIModel(id="gpt-4o-mini", name="GPT-4o Mini", contextWindow=128000, description="Fast and affordable"),
        AIModel(id="gpt-4o", name="GPT-4o", contextWindow=128000, description="Most capable"),
        AIModel(id="gpt-4o-audio-preview", name="GPT-4o Audio", contextWindow=128000, description="Audio in / audio out"),
        AIModel(id="gpt-4-turbo", name="GPT-4 Turbo", contextWindow=128000, description="High performance"),
        AIModel(id="gpt-3.5-turbo", name="GPT-3.5 Turbo", contextWindow=16385, description="Legacy, fast"),
    ]

    def __init__(self):
        self.api_key = settings.openai_api_key
        self.api_base = settings.openai_api_base.rstrip("/")
        self.timeout = settings.openai_timeout

    async def initialize(self) -> None:
        # Re-read so a key added after import is picked up
        self.api_key = settings.openai_api_key
        if not self.api_key:
            raise ProviderUnavailable(
                "OpenAI API key not configured. Please set OPENAI_API_KEY in .env"
            )

    async def is_available(self) -> bool:
        """Check if API key is configured"""
        return bool(settings.openai_api_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Send one request to the OpenAI API.

        Raises:
            UpstreamCallFailure: on transport errors and non-2xx responses
        """
        if not self.api_key:
            raise ProviderUnavailable(f"{self.name}: API key not configured")

        url = f"{self.api_base}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                if method == "GET":
                    resp = await client.get(url, headers=self._headers())
                else:
                    resp = await client.post(url, headers=self._headers(), json=payload)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise UpstreamCallFailure(f"OpenAI request failed with status {status_code}", status_code=status_code) from e
        except httpx.HTTPError as e:
            raise UpstreamCallFailure(f"OpenAI request failed: {e}") from e

    async def _chat_completion(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/chat/completions", payload)

    @staticmethod
    def _first_message(result: Dict[str, Any]) -> Dict[str, Any]:
        choices = result.get("choices") or []
        if not choices:
            raise UpstreamCallFailure("OpenAI response contained no choices")
        return choices[0].get("message") or {}

    @staticmethod
    def _sampling(payload: Dict[str, Any], options: AIOptions) -> Dict[str, Any]:
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.maxTokens is not None:
            payload["max_tokens"] = options.maxTokens
        return payload

    async def generate(self, context: ConversationContext, message: str, options: AIOptions) -> AIResponse:
        want_audio = bool(options.wantAudioOutput)
        model = options.model or (settings.openai_audio_model if want_audio else settings.openai_text_model)
        payload = self._sampling({
            "model": model,
            "messages": build_chat_messages(context, message),
        }, options)
        if want_audio:
            payload["modalities"] = ["text", "audio"]
            payload["audio"] = {"voice": options.voice or DEFAULT_VOICE, "format": "wav"}

        result = await self._chat_completion(payload)
        msg = self._first_message(result)
        audio = msg.get("audio") or {}
        # With audio output the text lives in the audio transcript
        content = msg.get("content") or audio.get("transcript") or ""
        return AIResponse(
            content=content,
            audioBase64=audio.get("data"),
            usage=parse_usage(result.get("usage")),
        )

    async def generate_text(self, context: ConversationContext, message: str, options: AIOptions) -> AIResponse:
        payload = self._sampling({
            "model": options.model or settings.openai_text_model,
            "messages": build_chat_messages(context, message),
        }, options)
        result = await self._chat_completion(payload)
        msg = self._first_message(result)
        return AIResponse(content=msg.get("content") or "", usage=parse_usage(result.get("usage")))

    async def respond(self, context: ConversationContext, user_message: str, options: AIOptions) -> UnifiedResponse:
        has_audio = bool(options.audioBase64 and options.audioFormat)
        draft = options.draftTranscription
        unified_prompt = get_unified_response_prompt(
            options.motherLanguage, options.learningLanguage, options.level, has_audio=has_audio
        )
        system_prompt = f"{context.systemPrompt}\n\n{unified_prompt}" if context.systemPrompt else unified_prompt
        conversation = format_conversation_context(context)

        if has_audio:
            model = options.model or settings.openai_audio_model
            logger.info("[OpenAI Respond] Audio mode, model=%s, draft=%s", model, bool(draft))
            payload = {
                "model": model,
                "messages": [
                    {
                        "role": "system",
                        "content": (
                            f"{system_prompt}\n\nCRITICAL: Respond ONLY with valid JSON. "
                            f"Start with {{ and end with }}. Nothing else.\n{audio_grounding_instruction(draft)}"
                        ),
                    },
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": build_audio_turn(conversation, draft)},
                            {"type": "input_audio", "input_audio": {"data": options.audioBase64, "format": options.audioFormat}},
                        ],
                    },
                ],
            }
        else:
            model = options.model or settings.openai_text_model
            logger.info("[OpenAI Respond] Text mode, model=%s", model)
            payload = {
                "model": model,
                "messages": [
                    {"role": "system", "content": f"{system_prompt}\n\nRespond ONLY with valid JSON."},
                    {"role": "user", "content": build_text_turn(conversation, user_message)},
                ],
                "response_format": {"type": "json_object"},
            }
        self._sampling(payload, options)

        result = await self._chat_completion(payload)
        content = self._first_message(result).get("content") or "{}"
        logger.info("[OpenAI Respond] Raw response: %s...", content[:300])

        response = parse_unified_response(content, has_audio, draft)
        response.usage = parse_usage(result.get("usage"))
        return response

    async def rich_translate(
        self,
        text: str,
        learning_language: str,
        mother_language: str,
        options: AIOptions,
    ) -> RichTranslation:
        payload = self._sampling({
            "model": options.model or settings.openai_text_model,
            "messages": [
                {
                    "role": "system",
                    "content": "You are a language learning assistant providing detailed translations. Respond only with valid JSON.",
                },
                {"role": "user", "content": get_rich_translation_prompt(text, learning_language, mother_language)},
            ],
            "response_format": {"type": "json_object"},
        }, options)

        result = await self._chat_completion(payload)
        content = self._first_message(result).get("content") or "{}"
        logger.info("[OpenAI RichTranslate] Raw response: %s", content[:300])
        return parse_rich_translation(content, text)


class OpenAIAssistantProvider(OpenAIChatProvider, ManagedHistoryProvider):
    """
    OpenAI provider whose history lives in server-side threads.

    Generation goes through Chat Completions like the chat provider; the
    thread endpoints are used to create threads and read them back.
    """

    id = "openai-assistant"
    name = "OpenAI (Assistant threads)"
    context_mode = ContextMode.MANAGED
    deprecated = True

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["OpenAI-Beta"] = "assistants=v2"
        return headers

    async def create_thread(self) -> str:
        result = await self._request("POST", "/threads", {})
        return result["id"]

    async def get_thread_messages(self, thread_id: str) -> List[ChatMessage]:
        result = await self._request("GET", f"/threads/{thread_id}/messages?order=asc")
        messages = []
        for item in result.get("data", []):
            parts = item.get("content") or []
            text = "".join(
                (p.get("text") or {}).get("value", "") for p in parts if p.get("type") == "text"
            )
            if item.get("role") in ("user", "assistant"):
                messages.append(ChatMessage(role=item["role"], content=text))
        return messages


# Global singletons
openai_chat_provider = OpenAIChatProvider()
openai_assistant_provider = OpenAIAssistantProvider()
