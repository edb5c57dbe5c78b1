from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # Database
    DB_USER: str = Field("callplane")
    DB_PASSWORD: str = Field("callplane")
    DB_NAME: str = Field("callplane")
    DB_HOST: str = Field("postgres")
    DB_PORT: int = Field(5432)
    # Full URL override (e.g. sqlite+aiosqlite:///./callplane.db for local runs)
    DATABASE_URL: str | None = Field(None)

    # Redis
    REDIS_HOST: str = Field("redis")
    REDIS_PORT: int = Field(6379)
    REDIS_DB: int = Field(0)
    REDIS_PASSWORD: str | None = Field(None)

    # LiveKit
    LIVEKIT_HOST: str = Field("localhost:7880")
    LIVEKIT_API_KEY: str = Field("devkey")
    LIVEKIT_API_SECRET: str = Field("secret")
    LIVEKIT_SECURE: bool = Field(True)

    # Feature store (Supabase PostgREST)
    SUPABASE_URL: str | None = Field(None)
    SUPABASE_SERVICE_ROLE_KEY: str | None = Field(None)
    FEATURE_CACHE_TTL: int = Field(86400)

    # Tiledesk (assigned agent lookup)
    TILEDESK_API_URL: str | None = Field(None)
    TILEDESK_API_TOKEN: str | None = Field(None)

    # Background jobs
    STALE_SWEEP_ENABLED: bool = Field(True)
    STALE_SWEEP_INTERVAL: int = Field(60)

    # Metrics
    METRICS_ENABLED: bool = Field(False)
    METRICS_PORT: int = Field(8001)

    # App
    API_HOST: str = Field("0.0.0.0")
    API_PORT: int = Field(8000)
    DEBUG: bool = Field(False)
    CORS_ORIGIN_REGEX: str = Field(r"https?://(localhost|127\.0\.0\.1)(:\d+)?")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_file_encoding="utf-8"
    )

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def livekit_url(self) -> str:
        scheme = "https" if self.LIVEKIT_SECURE else "http"
        return f"{scheme}://{self.LIVEKIT_HOST}"

    @property
    def livekit_ws_url(self) -> str:
        scheme = "wss" if self.LIVEKIT_SECURE else "ws"
        return f"{scheme}://{self.LIVEKIT_HOST}"


settings = Settings()
