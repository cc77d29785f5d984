from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Runtime ---
    ENV: str = "dev"  # dev|prod
    CHATLEAD_DB_URL: str = "sqlite+aiosqlite:///./chatlead.db"
    LOG_LEVEL: str = "INFO"

    # --- Run trigger auth ---
    # Send: Authorization: Bearer <secret>. Unset disables the check (local dev).
    CRON_SECRET: str | None = None

    # --- Session store (Redis / Upstash native protocol) ---
    REDIS_URL: str = "redis://localhost:6379/0"
    CHAT_KEY_PATTERN: str = "chat:*"
    SCAN_COUNT: int = 500

    # --- Selection window ---
    # Sessions start at ~7200s TTL; <= 6600 means 10+ minutes without a new message.
    TTL_MIN: int = 0
    TTL_MAX: int = 6600
    MAX_MESSAGES: int = 50
    PROCESSED_TTL_S: int = 25

    # --- Run discipline ---
    RUN_CONCURRENCY: int = 4
    RUN_DEADLINE_S: float = 240.0
    RUN_LOCK_TTL_S: int = 300
    KEY_LOCK_TTL_S: int = 180

    # --- Analysis providers ---
    ANALYSIS_PRIMARY: str = "openai"  # openai|gemini
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4.1-mini"
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.5-pro"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    ANALYSIS_TIMEOUT_S: float = 60.0
    ANALYSIS_TEMPERATURE: float = 0.7
    ANALYSIS_MAX_TOKENS: int = 4096

    # --- Scoring thresholds ---
    HOT_LEAD_THRESHOLD: int = 70
    HIGH_SCORE_THRESHOLD: int = 80

    # --- Fan-out ---
    HTTP_TIMEOUT_S: float = 20.0
    LEAD_URL_BASE: str = "https://chatlead.app/lead"

    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    HUBSPOT_CLIENT_ID: str | None = None
    HUBSPOT_CLIENT_SECRET: str | None = None
    ZOHO_CLIENT_ID: str | None = None
    ZOHO_CLIENT_SECRET: str | None = None

    # --- Scheduler tuning ---
    SCHED_PROCESS_INTERVAL_MINUTES: int = 1


settings = Settings()
