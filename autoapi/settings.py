from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults are local and deterministic (SQLite file, bundled rules file).
    - `APP_SECRET` has no default: the app refuses to start without it.
    """

    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    db_url: str | None = None
    rules_config_path: str | None = None
    secret: str | None = None
    log_level: str = "INFO"

    cookie_name: str = "auth-token"
    cookie_max_age: int = 60 * 60 * 24 * 400
    cookie_secure: bool = False

    default_depth_limit: int = 5
    seed_demo_data: bool = True

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "app.db"
        return f"sqlite:///{db_path}"

    def resolved_rules_config_path(self) -> Path:
        if self.rules_config_path:
            return Path(self.rules_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "rules.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
