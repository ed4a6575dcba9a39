from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-3-flash-preview", validation_alias="GEMINI_MODEL")
	# Text-to-speech model and prebuilt voice
	gemini_tts_model: str = Field(default="gemini-2.5-flash-preview-tts", validation_alias="GEMINI_TTS_MODEL")
	gemini_tts_voice: str = Field(default="Kore", validation_alias="GEMINI_TTS_VOICE")
	gemini_timeout_seconds: float = Field(default=60.0, validation_alias="GEMINI_TIMEOUT")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# OpenRouter fallback for tutor chat (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="DeutschPro", validation_alias="OPENROUTER_TITLE")

	# Quiz batch fulfillment
	quiz_chunk_size: int = Field(default=8, validation_alias="QUIZ_CHUNK_SIZE")
	quiz_max_loops: int = Field(default=25, validation_alias="QUIZ_MAX_LOOPS")
	quiz_exclusion_window: int = Field(default=100, validation_alias="QUIZ_EXCLUSION_WINDOW")
	quiz_retry_cooldown: float = Field(default=0.4, validation_alias="QUIZ_RETRY_COOLDOWN")
	quiz_max_size: int = Field(default=100, validation_alias="QUIZ_MAX_SIZE")
	quiz_default_size: int = Field(default=50, validation_alias="QUIZ_DEFAULT_SIZE")
	# Unfinished sessions are dropped after this long, oldest first past the cap
	quiz_session_ttl_minutes: float = Field(default=120, validation_alias="QUIZ_SESSION_TTL_MINUTES")
	quiz_max_sessions: int = Field(default=64, validation_alias="QUIZ_MAX_SESSIONS")

	# Storage
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")
	progress_storage_key: str = Field(default="deutsch_pro_v3_lexicon", validation_alias="PROGRESS_STORAGE_KEY")
	chat_storage_key: str = Field(default="deutsch_pro_v3_chat_history", validation_alias="CHAT_STORAGE_KEY")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
