from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]
ENV_FILES = [BASE_DIR / ".env.local", BASE_DIR / ".env"]


class Settings(BaseSettings):
    api_base_url: str = "http://localhost:5000"
    request_timeout_s: float = 15.0
    connect_timeout_s: float = 5.0
    poll_interval_s: float = 30.0
    toast_ttl_s: float = 5.0
    token_store_path: Path = Path.home() / ".organlink" / "tokens.json"
    match_display_limit: int = 5
    incoming_donor_preview: int = 3
    admin_feed_limit: int = 10
    log_level: str = "INFO"
    sandbox_jwt_secret: str = "organlink-sandbox"
    jwt_algorithm: str = "HS256"
    jwt_expires_min: int = 60

    model_config = SettingsConfigDict(
        env_file=[str(path) for path in ENV_FILES],
        case_sensitive=False,
        env_prefix="ORGANLINK_",
        extra="ignore",
    )


def get_settings() -> Settings:
    return Settings()


settings = get_settings()
