"""Pydantic Settings loaded from environment."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    admin_password: str = "admin123"
    store_backend: str = "memory"  # memory | firebase
    firebase_database_url: str = ""
    firebase_auth_token: str = ""  # Database secret or ID token, sent as ?auth=
    firebase_transaction_retries: int = 5
    firebase_stream_retries: int = 5  # Reconnects before a live feed is marked failed
    firebase_stream_backoff_seconds: float = 0.5
    store_timeout_seconds: float = 15.0
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
