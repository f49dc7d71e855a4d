"""
Message Store

Ordered, append-only log of turns per chat plus the rolling summary record.
The context manager only depends on the MessageStore interface; the
Tortoise implementation backs the HTTP API.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from ..models import ChatSummary, Message
from ..schemas.ai import ChatMessage, ChatSummaryRecord

logger = logging.getLogger("uvicorn.error")


class MessageStore(ABC):

    @abstractmethod
    async def get_messages(self, chat_id: str) -> List[ChatMessage]:
        """Full log for the chat, oldest first"""
        pass

    @abstractmethod
    async def get_summary(self, chat_id: str) -> Optional[ChatSummaryRecord]:
        pass

    @abstractmethod
    async def put_summary(self, chat_id: str, content: str, last_message_index: int) -> ChatSummaryRecord:
        """
        Upsert the rolling summary.

        A write whose last_message_index is lower than the stored one is
        ignored and the stored record is returned unchanged.
        """
        pass


class TortoiseMessageStore(MessageStore):
    """MessageStore over the Message / ChatSummary tables"""

    async def get_messages(self, chat_id: str) -> List[ChatMessage]:
        rows = await Message.filter(chat_id=chat_id).order_by("seq", "created_at")
        return [ChatMessage(role=m.role, content=m.content) for m in rows]

    async def get_summary(self, chat_id: str) -> Optional[ChatSummaryRecord]:
        row = await ChatSummary.get_or_none(chat_id=chat_id)
        if not row:
            return None
        return ChatSummaryRecord(chatId=str(chat_id), content=row.content, lastMessageIndex=row.last_message_index)

    async def put_summary(self, chat_id: str, content: str, last_message_index: int) -> ChatSummaryRecord:
        row = await ChatSummary.get_or_none(chat_id=chat_id)
        if row is None:
            row = await ChatSummary.create(chat_id=chat_id, content=content, last_message_index=last_message_index)
        elif last_message_index < row.last_message_index:
            # A concurrent request already folded more turns in
            logger.warning(
                "[Store] Ignoring stale summary for chat %s (watermark %d < %d)",
                chat_id, last_message_index, row.last_message_index,
            )
        else:
            row.content = content
            row.last_message_index = last_message_index
            await row.save()
        return ChatSummaryRecord(chatId=str(chat_id), content=row.content, lastMessageIndex=row.last_message_index)
