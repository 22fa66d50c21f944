from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from api.config.env import env_bool, env_list, env_str, resolve_env
from engine.classification import DEFAULT_LEVELS


@dataclass(frozen=True)
class Settings:
    env: str
    db_url: str
    db_echo: bool
    file_store_dir: Path
    classification_levels: tuple[str, ...]
    audit_enabled: bool
    audit_forward_url: Optional[str]
    audit_forward_api_key: Optional[str]


def get_database_url() -> str:
    """
    Priority:
    1. FG_DB_URL
    2. FG_SQLITE_PATH (SQLite)
    3. Default SQLite path under state/
    """
    db_url = env_str("FG_DB_URL")
    if db_url:
        return db_url
    sqlite_path = env_str("FG_SQLITE_PATH", "state/filegate.db")
    return f"sqlite:///{sqlite_path}"


def load_settings() -> Settings:
    return Settings(
        env=resolve_env(),
        db_url=get_database_url(),
        db_echo=env_bool("FG_DB_ECHO", False),
        file_store_dir=Path(env_str("FG_FILE_STORE_DIR", "state/files")),
        classification_levels=env_list("FG_CLASSIFICATION_LEVELS", DEFAULT_LEVELS),
        audit_enabled=env_bool("FG_AUDIT_ENABLED", True),
        audit_forward_url=env_str("FG_AUDIT_FORWARD_URL") or None,
        audit_forward_api_key=env_str("FG_AUDIT_FORWARD_API_KEY") or None,
    )
