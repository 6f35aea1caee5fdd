from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    OPENROUTER_API_KEY: str | None = None
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"

    DEFAULT_MODEL: str = "google/gemini-2.5-flash"
    FALLBACK_MODELS: str = "anthropic/claude-3-haiku,openai/gpt-4o-mini"
    MAX_MODEL_ATTEMPTS: int = 3
    MAX_TOKENS: int = 4096
    TEMPERATURE: float = 0.7
    STREAMING_ENABLED: bool = True
    LLM_TIMEOUT_SECONDS: float = 60.0

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    REDIS_URL: str = ""
    SESSION_TTL_SECONDS: int = 7200
    CONVERSATION_CONTEXT_TTL_SECONDS: int = 3600
    CONVERSATION_STORE: str = "memory"
    CONVERSATION_DATA_DIR: str = "./data/conversations"
    CONVERSATION_HISTORY_LIMIT: int = 50
    CONVERSATION_IDLE_TTL_SECONDS: int = 24 * 60 * 60
    CONVERSATION_SWEEP_INTERVAL_SECONDS: int = 600

    PERSISTENCE_MAX_RETRIES: int = 3
    PERSISTENCE_RETRY_DELAY: float = 1.0

    ASSET_CDN_BASE_URL: str = ""
    MAX_STOPOVER_NIGHTS: int = Field(default=4, ge=1)

    @field_validator("OPENROUTER_API_KEY")
    @classmethod
    def _blank_key_is_missing(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    @property
    def fallback_models(self) -> list[str]:
        return [m.strip() for m in self.FALLBACK_MODELS.split(",") if m.strip()]

    @property
    def model_chain(self) -> list[str]:
        chain = [self.DEFAULT_MODEL]
        for model in self.fallback_models:
            if model not in chain:
                chain.append(model)
        return chain

    @property
    def is_dev(self) -> bool:
        return self.ENV.lower() in {"dev", "local", "test"}


settings = Settings()
