import json
import os
from typing import Dict, List, Optional
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from tortoise import Tortoise

from app.config import settings
from app.core import db as db_module
from app.main import app
from app.schemas.ai import (
    AIModel,
    AIOptions,
    AIResponse,
    ChatMessage,
    ChatSummaryRecord,
    ConversationContext,
    RichTranslation,
    UnifiedResponse,
)
from app.services.ai_base import AIProvider, ManagedHistoryProvider, ProviderType
from app.services.ai_registry import AI_PROVIDERS
from app.services.message_store import MessageStore
from app.services.response_protocol import parse_rich_translation, parse_unified_response


TEST_DB_URL = "sqlite://:memory:?cache=shared"
os.environ["DATABASE_URL"] = TEST_DB_URL
db_module.DB_URL = TEST_DB_URL
db_module.TORTOISE_ORM["connections"]["default"] = TEST_DB_URL


DEFAULT_RESPOND_CONTENT = json.dumps({
    "reply": "Great! What kind of pizza do you like?",
    "analysis": {
        "grammarScore": 90,
        "grammarErrors": [],
        "vocabularyScore": 75,
        "vocabularySuggestions": ["I'm fond of pizza"],
        "relevanceScore": 95,
        "overallFeedback": "Well done.",
        "alternativePhrasings": ["I really like pizza"],
    },
})

DEFAULT_TRANSLATE_CONTENT = json.dumps({
    "translation": "hello",
    "type": "word",
    "definition": "A greeting",
    "usageExamples": ["Hello, how are you?"],
    "formality": "neutral",
})


class FakeProvider(AIProvider):
    """In-process provider: records every call, answers with canned content."""

    id = "fake"
    name = "Fake (tests)"
    type = ProviderType.CLOUD
    supports_json_mode = True
    models = [AIModel(id="fake-model", name="Fake Model", contextWindow=8000)]

    def __init__(self):
        self.calls: List[tuple] = []
        self.initialized = 0
        self.init_error: Optional[Exception] = None
        self.generate_content = "Hello! How are you today?"
        self.text_replies: List[str] = []  # Consumed in order by generate_text
        self.text_error: Optional[Exception] = None
        self.text_errors: List[Optional[Exception]] = []  # Per-call errors, consumed in order
        self.respond_content = DEFAULT_RESPOND_CONTENT
        self.respond_error: Optional[Exception] = None
        self.translate_content = DEFAULT_TRANSLATE_CONTENT

    def calls_to(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    async def initialize(self) -> None:
        if self.init_error:
            raise self.init_error
        self.initialized += 1

    async def generate(self, context: ConversationContext, message: str, options: AIOptions) -> AIResponse:
        self.calls.append(("generate", context, message, options))
        return AIResponse(content=self.generate_content, audioBase64="UklGRg==" if options.wantAudioOutput else None)

    async def generate_text(self, context: ConversationContext, message: str, options: AIOptions) -> AIResponse:
        self.calls.append(("generate_text", context, message, options))
        error = self.text_errors.pop(0) if self.text_errors else self.text_error
        if error:
            raise error
        content = self.text_replies.pop(0) if self.text_replies else "Summary of earlier turns."
        return AIResponse(content=content)

    async def respond(self, context: ConversationContext, user_message: str, options: AIOptions) -> UnifiedResponse:
        self.calls.append(("respond", context, user_message, options))
        if self.respond_error:
            raise self.respond_error
        has_audio = bool(options.audioBase64 and options.audioFormat)
        return parse_unified_response(self.respond_content, has_audio, options.draftTranscription)

    async def rich_translate(self, text, learning_language, mother_language, options: AIOptions) -> RichTranslation:
        self.calls.append(("rich_translate", text, learning_language, mother_language, options))
        return parse_rich_translation(self.translate_content, text)

    async def is_available(self) -> bool:
        return True


class FakeLocalProvider(FakeProvider):
    id = "fake-local"
    name = "Fake Local (tests)"
    type = ProviderType.LOCAL
    models = [
        AIModel(id="local-small", name="Local Small", contextWindow=4096),
        AIModel(id="local-large", name="Local Large", contextWindow=8192),
    ]


class FakeManagedProvider(FakeProvider, ManagedHistoryProvider):
    id = "fake-managed"
    name = "Fake Managed (tests)"
    deprecated = True

    async def create_thread(self) -> str:
        self.calls.append(("create_thread",))
        return "thread_123"

    async def get_thread_messages(self, thread_id: str) -> List[ChatMessage]:
        return [ChatMessage(role="user", content="hi"), ChatMessage(role="assistant", content="hello")]


class InMemoryMessageStore(MessageStore):
    """MessageStore backed by dicts, with the same monotonic watermark rule."""

    def __init__(self):
        self.messages: Dict[str, List[ChatMessage]] = {}
        self.summaries: Dict[str, ChatSummaryRecord] = {}
        self.put_calls: List[tuple] = []

    def add_turns(self, chat_id: str, count: int) -> None:
        log = self.messages.setdefault(chat_id, [])
        for _ in range(count):
            n = len(log)
            log.append(ChatMessage(role="user" if n % 2 == 0 else "assistant", content=f"turn {n}"))

    async def get_messages(self, chat_id: str) -> List[ChatMessage]:
        return list(self.messages.get(chat_id, []))

    async def get_summary(self, chat_id: str) -> Optional[ChatSummaryRecord]:
        return self.summaries.get(chat_id)

    async def put_summary(self, chat_id: str, content: str, last_message_index: int) -> ChatSummaryRecord:
        self.put_calls.append((chat_id, content, last_message_index))
        current = self.summaries.get(chat_id)
        if current and last_message_index < current.lastMessageIndex:
            return current
        record = ChatSummaryRecord(chatId=chat_id, content=content, lastMessageIndex=last_message_index)
        self.summaries[chat_id] = record
        return record


async def _init_test_db() -> None:
    """
    Initialize a clean in-memory SQLite database for every test.
    Ensures tables are recreated from scratch.
    """
    if Tortoise._inited:
        await Tortoise.close_connections()
    await Tortoise.init(config=db_module.TORTOISE_ORM)
    await Tortoise.generate_schemas()


@pytest_asyncio.fixture
async def db():
    """Fresh database without the HTTP app."""
    await _init_test_db()
    yield
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def client(db):
    """
    Provide an HTTPX AsyncClient bound to the FastAPI app with a fresh DB.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client


@pytest.fixture
def fake_providers(monkeypatch):
    """
    Register the fake providers and make "fake" the default provider.
    """
    providers = {
        FakeProvider.id: FakeProvider(),
        FakeLocalProvider.id: FakeLocalProvider(),
        FakeManagedProvider.id: FakeManagedProvider(),
    }
    monkeypatch.setattr(settings, "default_ai_provider", FakeProvider.id)
    monkeypatch.setattr(settings, "default_ai_model", "fake-model")
    with patch.dict(AI_PROVIDERS, providers):
        yield providers


@pytest.fixture
def fake_provider(fake_providers):
    return fake_providers[FakeProvider.id]


@pytest.fixture
def memory_store():
    return InMemoryMessageStore()
