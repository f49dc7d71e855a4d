"""
Ollama Provider (local)

Targets a local Ollama server for privacy-sensitive or offline practice.
Text only: audio input and audio output are not supported, so audio turns
fall back to the draft transcription and run as text turns.
"""
import logging
from typing import Any, Dict

import httpx

from .ai_base import AIProvider, ContextMode, ProviderType, UpstreamCallFailure
from .ai_openai_chat import build_chat_messages
from .prompts import get_rich_translation_prompt, get_unified_response_prompt
from .response_protocol import (
    build_text_turn,
    format_conversation_context,
    parse_rich_translation,
    parse_unified_response,
)
from ..config import settings
from ..schemas.ai import (
    AIModel,
    AIOptions,
    AIResponse,
    ConversationContext,
    RichTranslation,
    UnifiedResponse,
    Usage,
)

logger = logging.getLogger("uvicorn.error")


class OllamaProvider(AIProvider):
    """Local Ollama chat API"""

    id = "ollama"
    name = "Ollama (Local)"
    type = ProviderType.LOCAL
    context_mode = ContextMode.MANUAL
    supports_json_mode = True  # format="json"

    # Static list: the manager resets unknown model ids to the first entry
    models = [
        AIModel(id="llama3.2", name="Llama 3.2 3B", contextWindow=128000, description="Small, balanced"),
        AIModel(id="llama3.2:1b", name="Llama 3.2 1B", contextWindow=128000, description="Tiny, fast"),
        AIModel(id="qwen2.5", name="Qwen 2.5 7B", contextWindow=32768, description="Multilingual"),
        AIModel(id="mistral", name="Mistral 7B", contextWindow=32768, description="General purpose"),
        AIModel(id="phi3.5", name="Phi 3.5 Mini", contextWindow=128000, description="Compact"),
    ]

    def __init__(self):
        self.base_url = settings.ollama_url.rstrip("/")
        self.timeout = settings.ollama_timeout

    async def initialize(self) -> None:
        # Server availability is checked lazily; a dead server surfaces as UpstreamCallFailure
        self.base_url = settings.ollama_url.rstrip("/")

    async def is_available(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
                return resp.status_code == 200
        except httpx.HTTPError:
            return False

    def _model(self, options: AIOptions) -> str:
        return options.model if options.model and self.supports_model(options.model) else self.models[0].id

    async def _chat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}/api/chat", json=payload)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise UpstreamCallFailure(f"Ollama request failed with status {status_code}", status_code=status_code) from e
        except httpx.HTTPError as e:
            raise UpstreamCallFailure(f"Ollama request failed: {e}") from e

    def _payload(self, messages, options: AIOptions, json_mode: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": self._model(options), "messages": messages, "stream": False}
        sampling = {}
        if options.temperature is not None:
            sampling["temperature"] = options.temperature
        if options.maxTokens is not None:
            sampling["num_predict"] = options.maxTokens
        if sampling:
            payload["options"] = sampling
        if json_mode:
            payload["format"] = "json"
        return payload

    @staticmethod
    def _usage(raw: Dict[str, Any]) -> Usage | None:
        if "prompt_eval_count" not in raw and "eval_count" not in raw:
            return None
        prompt_tokens = int(raw.get("prompt_eval_count") or 0)
        completion_tokens = int(raw.get("eval_count") or 0)
        return Usage(
            promptTokens=prompt_tokens,
            completionTokens=completion_tokens,
            totalTokens=prompt_tokens + completion_tokens,
        )

    @staticmethod
    def _content(raw: Dict[str, Any]) -> str:
        return (raw.get("message") or {}).get("content") or ""

    async def generate(self, context: ConversationContext, message: str, options: AIOptions) -> AIResponse:
        if options.wantAudioOutput:
            logger.warning("[Ollama] Audio output requested but not supported; returning text only")
        return await self.generate_text(context, message, options)

    async def generate_text(self, context: ConversationContext, message: str, options: AIOptions) -> AIResponse:
        raw = await self._chat(self._payload(build_chat_messages(context, message), options))
        return AIResponse(content=self._content(raw), usage=self._usage(raw))

    async def respond(self, context: ConversationContext, user_message: str, options: AIOptions) -> UnifiedResponse:
        if options.audioBase64:
            logger.warning("[Ollama] Audio input not supported; analyzing the text transcription only")
        text = options.draftTranscription or user_message
        unified_prompt = get_unified_response_prompt(
            options.motherLanguage, options.learningLanguage, options.level, has_audio=False
        )
        system_prompt = f"{context.systemPrompt}\n\n{unified_prompt}" if context.systemPrompt else unified_prompt
        messages = [
            {"role": "system", "content": f"{system_prompt}\n\nRespond ONLY with valid JSON."},
            {"role": "user", "content": build_text_turn(format_conversation_context(context), text)},
        ]
        raw = await self._chat(self._payload(messages, options, json_mode=True))
        content = self._content(raw) or "{}"
        logger.info("[Ollama Respond] Raw response: %s...", content[:300])

        response = parse_unified_response(content, has_audio=False)
        response.usage = self._usage(raw)
        return response

    async def rich_translate(
        self,
        text: str,
        learning_language: str,
        mother_language: str,
        options: AIOptions,
    ) -> RichTranslation:
        messages = [
            {"role": "system", "content": "You are a language learning assistant. Respond only with valid JSON."},
            {"role": "user", "content": get_rich_translation_prompt(text, learning_language, mother_language)},
        ]
        raw = await self._chat(self._payload(messages, options, json_mode=True))
        return parse_rich_translation(self._content(raw), text)


# Global singleton
ollama_provider = OllamaProvider()
