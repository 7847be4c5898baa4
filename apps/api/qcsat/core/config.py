"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite+pysqlite:///./qcsat.db"

    # Redis (job queue + distributed locks). "memory://" disables Redis.
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json | text

    # Credential encryption (Fernet keys, supports rotation)
    CREDENTIALS_ENCRYPTION_KEY: str = ""
    CREDENTIALS_ENCRYPTION_KEY_PREVIOUS: str = ""  # Set during rotation, clear after

    # Respondent anonymization
    RESPONDENT_HASH_SALT: str = ""

    # Password hashing
    BCRYPT_ROUNDS: int = 12

    # Internal ops endpoints (queue stats, dead-letter replay)
    INTERNAL_SECRET: str = ""

    # Webhooks
    WEBHOOK_MAX_PAYLOAD_BYTES: int = 1024 * 1024  # 1 MB
    WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS: int = 300
    APP_STORE_ROOT_CERT_PEM: str = ""  # Apple Root CA - G3, PEM encoded

    # Worker / job queue
    WORKER_POLL_INTERVAL: float = 1.0
    WORKER_BATCH_SIZE: int = 10
    JOB_LOCK_TTL_MS: int = 30000
    JOB_DEFAULT_MAX_ATTEMPTS: int = 3
    DEAD_LETTER_UNKNOWN_JOB_TYPES: bool = True
    WORKER_JOB_TYPES: str = ""  # Comma-separated; empty handles every known type

    # Outbound actions
    OUTBOUND_HTTP_TIMEOUT_SECONDS: float = 30.0

    @property
    def credentials_keys(self) -> list[str]:
        """Returns list of valid encryption keys (current first, then previous if set)."""
        keys = []
        if self.CREDENTIALS_ENCRYPTION_KEY:
            keys.append(self.CREDENTIALS_ENCRYPTION_KEY)
        if self.CREDENTIALS_ENCRYPTION_KEY_PREVIOUS:
            keys.append(self.CREDENTIALS_ENCRYPTION_KEY_PREVIOUS)
        return keys

    @property
    def worker_job_types(self) -> list[str]:
        return [t.strip() for t in self.WORKER_JOB_TYPES.split(",") if t.strip()]

    @property
    def is_dev(self) -> bool:
        return self.ENV == "dev"


settings = Settings()
