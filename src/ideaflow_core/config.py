"""Application settings loaded from the environment (prefix ``IDEAFLOW_``)."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Ideaflow Core settings."""

    model_config = SettingsConfigDict(
        env_prefix="IDEAFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Ideaflow Core API"
    log_level: str = "INFO"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./ideaflow.db"

    # CORS
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Attachment storage (bytes live on disk, records keep {file_name, url})
    attachment_dir: str = "./attachments"
    attachment_base_url: str = "/attachments"

    # Undo slot
    undo_state_path: str = "./.ideaflow/state.json"
    undo_window_seconds: int = 300
    undo_revalidate_on_read: bool = False

    # Audit trail reads
    trail_page_size: int = 100
    trail_scan_limit: int = 1000

    # Workflow
    lock_discussions_on_completion: bool = True

    # Identity used when no X-User-* headers are sent (solo mode)
    default_user_id: int = 1
    default_user_name: str = "Local Admin"
    default_user_email: str = "admin@localhost"
    default_user_roles: list[str] = ["admin", "approver", "contributor"]


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
