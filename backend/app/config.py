# app/config.py
import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Settings(BaseModel):
    # General app settings
    APP_NAME: str = "Language Tutor API"
    env: str = os.getenv("ENV", "dev")

    # Host & Port settings
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))

    # CORS origins for frontend
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # OpenAI API Settings (chat, audio-in/audio-out, JSON mode)
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_api_base: str = os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1")
    openai_timeout: float = float(os.getenv("OPENAI_TIMEOUT", "120"))
    openai_text_model: str = os.getenv("OPENAI_TEXT_MODEL", "gpt-4o-mini")  # summaries, translation, suggestions
    openai_audio_model: str = os.getenv("OPENAI_AUDIO_MODEL", "gpt-4o-audio-preview")  # audio-grounded turns

    # Local Ollama server
    ollama_url: str = os.getenv("OLLAMA_URL", "http://127.0.0.1:11434")
    ollama_timeout: float = float(os.getenv("OLLAMA_TIMEOUT", "180"))

    # Session defaults (AIManager)
    default_ai_provider: str = os.getenv("DEFAULT_AI_PROVIDER", "openai-chat")
    default_ai_model: str = os.getenv("DEFAULT_AI_MODEL", "gpt-4o-audio-preview")
    default_temperature: float = float(os.getenv("DEFAULT_TEMPERATURE", "0.7"))
    default_max_tokens: int = int(os.getenv("DEFAULT_MAX_TOKENS", "500"))

    # Context compaction (sliding window + rolling summary)
    context_recent_window_size: int = int(os.getenv("CONTEXT_RECENT_WINDOW_SIZE", "20"))
    context_summarize_after: int = int(os.getenv("CONTEXT_SUMMARIZE_AFTER", "10"))
    # Summarization is off only when explicitly disabled
    context_disable_summarization: bool = _env_flag("CONTEXT_DISABLE_SUMMARIZATION")
    context_summary_model: str | None = os.getenv("CONTEXT_SUMMARY_MODEL")

settings = Settings()  # Instantiate configuration
