from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_SECRET_KEY = "change-me-in-production"
MIN_SECRET_KEY_LENGTH = 16


class Settings(BaseSettings):
    app_name: str = "stash"
    app_env: str = "dev"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 5000

    app_secret_key: str
    admin_user_id: str = "1"
    admin_username: str = "admin"
    admin_password_hash: str
    min_password_hash_rounds: int = 12

    session_ttl_seconds: int = 24 * 60 * 60
    session_cookie_name: str = "token"
    cookie_secure: bool | None = None

    storage_dir: str = "data/uploads"
    notes_dir: str = "data/notes"
    max_upload_size_bytes: int = 50 * 1024 * 1024
    max_files_per_upload: int = 5
    share_ttl_seconds: int = 24 * 60 * 60

    max_note_title_length: int = 100
    max_note_content_length: int = 10_000

    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100
    login_rate_limit_attempts: int = 5

    model_config = SettingsConfigDict(env_file=".env", env_prefix="STASH_", extra="ignore")

    @field_validator("app_secret_key")
    @classmethod
    def check_secret_key(cls, value: str) -> str:
        if value == PLACEHOLDER_SECRET_KEY:
            raise ValueError("app_secret_key must be changed from the placeholder value")
        if len(value) < MIN_SECRET_KEY_LENGTH:
            raise ValueError(f"app_secret_key must be at least {MIN_SECRET_KEY_LENGTH} characters")
        return value

    @property
    def secure_cookies(self) -> bool:
        if self.cookie_secure is not None:
            return self.cookie_secure
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
