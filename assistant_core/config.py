from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Completion API (OpenAI-compatible endpoint, Groq by default)
    COMPLETION_API_KEY: str | None = None
    COMPLETION_BASE_URL: str = "https://api.groq.com/openai/v1"
    COMPLETION_MODEL: str = "llama3-8b-8192"
    COMPLETION_TIMEOUT_SECONDS: float = 30.0
    COMPLETION_MAX_RETRIES: int = 3
    COMPLETION_BASE_DELAY_SECONDS: float = 1.0
    COMPLETION_MAX_DELAY_SECONDS: float = 10.0

    # =================================================================
    # RESPONSE QUEUE SETTINGS
    # =================================================================
    QUEUE_MAX_CONCURRENT_JOBS: int = 3
    QUEUE_TICK_INTERVAL_SECONDS: float = 0.1
    QUEUE_MAX_ATTEMPTS: int = 3
    QUEUE_RETRY_BASE_SECONDS: float = 1.0
    QUEUE_RETRY_MAX_SECONDS: float = 10.0
    QUEUE_JOB_TIMEOUT_SECONDS: float = 30.0
    QUEUE_DELIVERY_TIMEOUT_SECONDS: float = 10.0
    QUEUE_COMPLETED_RETENTION_SECONDS: float = 60.0  # 1 minute
    QUEUE_FAILED_RETENTION_SECONDS: float = 300.0  # 5 minutes

    # Response cache
    CACHE_TTL_SECONDS: float = 3600.0  # 1 hour
    CACHE_SWEEP_INTERVAL_SECONDS: float = 300.0  # 5 minutes

    # Decision tuning
    PRIORITY_HIGH_THRESHOLD: float = 0.75
    PRIORITY_NORMAL_THRESHOLD: float = 0.4
    CONTEXT_WINDOW_SIZE: int = 10
    MOMENTUM_WINDOW_SECONDS: float = 300.0
    ASSISTANT_SENDER_IDS: list[str] = ["ai-assistant"]

    # Optional collaborator backends; in-memory adapters are used when unset
    REDIS_URL: str | None = None
    DATABASE_URL: str | None = None
    MESSAGES_TABLE: str = "messages"

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 8
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def completion_configured(self) -> bool:
        return bool(self.COMPLETION_API_KEY)

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # Replies are small single-row inserts; keep the dev pool tiny
            config.update({"min_size": 1, "max_size": 4, "timeout": 15.0})

        return config


settings = Settings()
