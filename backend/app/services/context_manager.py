"""
Conversation Context Manager

Keeps the context sent to the model bounded:
1. The last recentWindowSize turns go verbatim (sliding window)
2. Everything older is folded into one rolling summary per chat
3. The summary is only recomputed once summarizeAfterMessages new older
   turns have accumulated past the watermark

Summarization failures never fail the turn: a deterministic fallback
summary is returned instead.
"""
import logging
import math
from typing import List, Optional

from .ai_base import AIError, SummarizationFailure
from .ai_manager import AIManager
from .message_store import MessageStore
from .prompts import (
    MERGER_SYSTEM_PROMPT,
    SUMMARIZER_SYSTEM_PROMPT,
    get_merge_prompt,
    get_summary_prompt,
)
from ..config import settings as app_settings
from ..schemas.ai import AIOptions, ChatMessage, ContextSettings, ConversationContext

logger = logging.getLogger("uvicorn.error")

SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 500


def default_context_settings() -> ContextSettings:
    return ContextSettings(
        recentWindowSize=app_settings.context_recent_window_size,
        summarizeAfterMessages=app_settings.context_summarize_after,
        textModel=app_settings.context_summary_model,
        disableSummarization=app_settings.context_disable_summarization,
    )


def summary_fallback(message_count: int) -> str:
    return f"[Previous conversation with {message_count} messages]"


def estimate_tokens(context: ConversationContext) -> int:
    """Rough chars/4 estimate; observability only"""
    total = math.ceil(len(context.systemPrompt) / 4)
    if context.summary:
        total += math.ceil(len(context.summary) / 4)
    for m in context.messages:
        total += math.ceil(len(m.content) / 4)
    return total


def format_transcript(messages: List[ChatMessage]) -> str:
    return "\n".join(f"{'Learner' if m.role == 'user' else 'Tutor'}: {m.content}" for m in messages)


class ContextManager:
    """Sliding window + rolling summary over a MessageStore"""

    def __init__(self, store: MessageStore, ai: AIManager, settings: Optional[ContextSettings] = None):
        self.store = store
        self.ai = ai
        self.settings = settings or default_context_settings()

    def set_settings(self, **partial) -> ContextSettings:
        """Merge the given keys into the current settings (validated)"""
        values = self.settings.model_dump()
        values.update(partial)
        self.settings = ContextSettings(**values)
        return self.settings

    def get_settings(self) -> ContextSettings:
        return self.settings.model_copy()

    async def build_context(
        self,
        chat_id: str,
        system_prompt: str,
        thread_id: Optional[str] = None,
    ) -> ConversationContext:
        log = await self.store.get_messages(chat_id)
        window = self.settings.recentWindowSize

        if self.settings.disableSummarization or len(log) <= window:
            context = ConversationContext(
                chatId=str(chat_id), threadId=thread_id, messages=log, systemPrompt=system_prompt,
            )
        else:
            split_index = len(log) - window
            older, recent = log[:split_index], log[split_index:]
            summary = await self.get_or_create_summary(chat_id, older)
            context = ConversationContext(
                chatId=str(chat_id),
                threadId=thread_id,
                messages=recent,
                systemPrompt=system_prompt,
                summary=summary or None,
            )

        logger.info(
            "[Context] chat=%s messages=%d/%d summary=%s ~%d tokens",
            chat_id, len(context.messages), len(log), bool(context.summary), estimate_tokens(context),
        )
        return context

    async def get_or_create_summary(self, chat_id: str, older: List[ChatMessage]) -> str:
        existing = await self.store.get_summary(chat_id)
        existing_content = existing.content if existing else ""
        watermark = existing.lastMessageIndex if existing else 0

        if watermark > len(older):
            # The window grew past the watermark; the stored summary covers
            # turns that are now sent verbatim
            logger.warning(
                "[Context] Summary for chat %s covers %d messages but only %d are outside the window",
                chat_id, watermark, len(older),
            )
            return await self._summarize_without_saving(chat_id, older)

        unsummarized = older[watermark:]
        if len(unsummarized) < self.settings.summarizeAfterMessages:
            return existing_content

        logger.info(
            "[Context] Summarizing %d messages for chat %s (watermark %d -> %d)",
            len(unsummarized), chat_id, watermark, len(older),
        )
        try:
            chunk = await self._summarize(unsummarized)
        except SummarizationFailure as e:
            logger.error("[Context] Summarization failed for chat %s: %s", chat_id, e)
            fallback = summary_fallback(len(unsummarized))
            # Not persisted: the watermark stays put so the next turn retries
            return f"{existing_content}\n\n{fallback}" if existing_content else fallback

        merged = chunk
        if existing_content:
            try:
                merged = await self._merge_summaries(existing_content, chunk)
            except SummarizationFailure as e:
                logger.error("[Context] Summary merge failed for chat %s: %s", chat_id, e)
                merged = f"{existing_content}\n\n{chunk}"

        record = await self.store.put_summary(chat_id, merged, len(older))
        return record.content

    async def _summarize_without_saving(self, chat_id: str, older: List[ChatMessage]) -> str:
        """One-off summary of exactly the older turns; the store keeps its higher watermark"""
        if len(older) < self.settings.summarizeAfterMessages:
            return ""
        try:
            return await self._summarize(older)
        except SummarizationFailure as e:
            logger.error("[Context] Summarization failed for chat %s: %s", chat_id, e)
            return summary_fallback(len(older))

    def _options(self) -> AIOptions:
        return AIOptions(
            model=self.settings.textModel,
            temperature=SUMMARY_TEMPERATURE,
            maxTokens=SUMMARY_MAX_TOKENS,
        )

    async def _complete(self, system_prompt: str, prompt: str) -> str:
        context = ConversationContext(chatId="summary", systemPrompt=system_prompt)
        try:
            response = await self.ai.generate_text(context, prompt, self._options())
        except AIError as e:
            raise SummarizationFailure(str(e)) from e
        content = (response.content or "").strip()
        if not content:
            raise SummarizationFailure("empty summary from model")
        return content

    async def _summarize(self, messages: List[ChatMessage]) -> str:
        return await self._complete(SUMMARIZER_SYSTEM_PROMPT, get_summary_prompt(format_transcript(messages)))

    async def _merge_summaries(self, existing_summary: str, new_summary: str) -> str:
        return await self._complete(MERGER_SYSTEM_PROMPT, get_merge_prompt(existing_summary, new_summary))
