"""
Unit tests for services.ai_manager and services.ai_registry modules.
Tests provider resolution, switching, model reset and option precedence.
"""
import pytest

from app.schemas.ai import AIOptions, AIProviderConfig, ConversationContext
from app.services.ai_base import NotInitialized, ProviderNotFound, ProviderUnavailable
from app.services.ai_manager import AIManager
from app.services.ai_registry import get_ai_provider, get_default_ai_provider, list_ai_providers


pytestmark = pytest.mark.asyncio


def _context():
    return ConversationContext(chatId="c1", systemPrompt="You are a tutor.")


class TestRegistry:

    async def test_get_ai_provider_unknown_returns_none(self, fake_providers):
        assert get_ai_provider("nonexistent") is None
        assert get_ai_provider(None) is None
        assert get_ai_provider("fake") is fake_providers["fake"]

    async def test_default_provider_follows_settings(self, fake_providers):
        assert get_default_ai_provider() is fake_providers["fake"]

    async def test_default_provider_falls_back_to_openai_chat(self, fake_providers, monkeypatch):
        from app.config import settings
        monkeypatch.setattr(settings, "default_ai_provider", "missing")
        assert get_default_ai_provider().id == "openai-chat"

    async def test_list_hides_deprecated(self, fake_providers):
        ids = [p.id for p in list_ai_providers()]
        assert "fake" in ids
        assert "fake-managed" not in ids
        assert "openai-assistant" not in ids
        assert "fake-managed" in [p.id for p in list_ai_providers(include_deprecated=True)]


class TestInitialize:

    async def test_initialize_without_id_uses_default(self, fake_provider):
        m = AIManager()
        await m.initialize()
        assert m.current_provider is fake_provider
        assert m.get_config().providerId == "fake"
        assert fake_provider.initialized == 1

    async def test_initialize_unknown_id_falls_back_to_default(self, fake_provider):
        m = AIManager()
        await m.initialize("does-not-exist")
        assert m.current_provider is fake_provider

    async def test_initialize_propagates_provider_unavailable(self, fake_provider):
        fake_provider.init_error = ProviderUnavailable("no key")
        m = AIManager()
        with pytest.raises(ProviderUnavailable):
            await m.initialize("fake")
        assert m.current_provider is None

    async def test_local_provider_resets_unknown_model(self, fake_providers):
        m = AIManager(AIProviderConfig(providerId="x", model="gpt-4o", temperature=0.7, maxTokens=500))
        await m.initialize("fake-local")
        assert m.get_config().model == "local-small"

    async def test_local_provider_keeps_supported_model(self, fake_providers):
        m = AIManager(AIProviderConfig(providerId="x", model="local-large", temperature=0.7, maxTokens=500))
        await m.initialize("fake-local")
        assert m.get_config().model == "local-large"

    async def test_cloud_provider_keeps_unlisted_model(self, fake_providers):
        """Cloud providers trust the caller's model id verbatim."""
        m = AIManager(AIProviderConfig(providerId="x", model="gpt-5-preview", temperature=0.7, maxTokens=500))
        await m.initialize("fake")
        assert m.get_config().model == "gpt-5-preview"


class TestSwitchProvider:

    async def test_switch_to_unknown_raises_and_keeps_state(self, fake_provider):
        m = AIManager()
        await m.initialize("fake")
        m.set_model("fake-model")
        before = m.get_config()

        with pytest.raises(ProviderNotFound) as exc_info:
            await m.switch_provider("nonexistent")

        assert exc_info.value.provider_id == "nonexistent"
        assert m.current_provider is fake_provider
        assert m.get_config() == before

    async def test_switch_with_failing_initialize_keeps_state(self, fake_providers):
        m = AIManager()
        await m.initialize("fake")
        before = m.get_config()
        fake_providers["fake-local"].init_error = ProviderUnavailable("server down")

        with pytest.raises(ProviderUnavailable):
            await m.switch_provider("fake-local")

        assert m.current_provider is fake_providers["fake"]
        assert m.get_config() == before

    async def test_switch_adopts_provider(self, fake_providers):
        m = AIManager()
        await m.initialize("fake")
        await m.switch_provider("fake-local")
        assert m.current_provider is fake_providers["fake-local"]
        assert m.get_config().providerId == "fake-local"
        assert m.get_config().model == "local-small"
        assert [model.id for model in m.get_models()] == ["local-small", "local-large"]


class TestOperations:

    @pytest.mark.parametrize("operation", ["generate", "generate_text", "respond", "rich_translate"])
    async def test_operations_require_initialized_provider(self, fake_providers, operation):
        m = AIManager()
        with pytest.raises(NotInitialized):
            if operation == "rich_translate":
                await m.rich_translate("hello", "en", "uk")
            else:
                await getattr(m, operation)(_context(), "hi")

    async def test_respond_uses_operation_defaults(self, fake_provider):
        m = AIManager()
        await m.initialize("fake")
        await m.respond(_context(), "I like pizza")

        options = fake_provider.calls_to("respond")[0][3]
        assert options.temperature == 0.3
        assert options.maxTokens == 4000
        assert options.model == m.get_config().model

    async def test_explicit_options_win(self, fake_provider):
        m = AIManager()
        await m.initialize("fake")
        await m.respond(_context(), "hi", AIOptions(temperature=0.9, maxTokens=100, model="other", level="advanced"))

        options = fake_provider.calls_to("respond")[0][3]
        assert options.temperature == 0.9
        assert options.maxTokens == 100
        assert options.model == "other"
        assert options.level == "advanced"

    async def test_empty_model_option_counts_as_unset(self, fake_provider):
        m = AIManager()
        await m.initialize("fake")
        m.set_model("configured-model")
        await m.generate(_context(), "hi", AIOptions(model=""))

        assert fake_provider.calls_to("generate")[0][3].model == "configured-model"

    async def test_generate_uses_stored_config(self, fake_provider):
        m = AIManager()
        await m.initialize("fake")
        m.set_temperature(1.1)
        m.set_max_tokens(256)
        await m.generate(_context(), "hi")

        options = fake_provider.calls_to("generate")[0][3]
        assert options.temperature == 1.1
        assert options.maxTokens == 256

    async def test_generate_text_never_requests_audio(self, fake_provider):
        m = AIManager()
        await m.initialize("fake")
        await m.generate_text(_context(), "hi", AIOptions(wantAudioOutput=True))
        assert fake_provider.calls_to("generate_text")[0][3].wantAudioOutput is None

    async def test_rich_translate_defaults(self, fake_provider):
        m = AIManager()
        await m.initialize("fake")
        result = await m.rich_translate("hello", "en", "uk")

        _, text, learning, mother, options = fake_provider.calls_to("rich_translate")[0]
        assert (text, learning, mother) == ("hello", "en", "uk")
        assert options.temperature == 0.3
        assert options.maxTokens == 500
        assert result.translation == "hello"

    async def test_set_temperature_is_clamped(self, fake_provider):
        m = AIManager()
        m.set_temperature(5)
        assert m.get_config().temperature == 2.0
        m.set_temperature(-1)
        assert m.get_config().temperature == 0.0

    async def test_get_config_returns_copy(self, fake_provider):
        m = AIManager()
        config = m.get_config()
        config.model = "mutated"
        assert m.get_config().model != "mutated"


class TestManagedHistory:

    async def test_thread_operations_on_manual_provider(self, fake_provider):
        m = AIManager()
        await m.initialize("fake")
        assert await m.create_thread() is None
        assert await m.get_thread_messages("t1") == []

    async def test_thread_operations_on_managed_provider(self, fake_providers):
        m = AIManager()
        await m.initialize("fake-managed")
        assert await m.create_thread() == "thread_123"
        messages = await m.get_thread_messages("thread_123")
        assert [msg.role for msg in messages] == ["user", "assistant"]
