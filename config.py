import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        secret_key: str,
        token_max_age_hours: int,
        allowed_principal: Optional[str],
        identity_header: Optional[str],
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.secret_key = secret_key
        self.token_max_age_hours = token_max_age_hours
        self.allowed_principal = allowed_principal
        self.identity_header = identity_header


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("DAYBOOK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "daybook.db"
    database_url = os.getenv("DAYBOOK_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("DAYBOOK_TIMEZONE", "Europe/Madrid")
    secret_key = os.getenv(
        "DAYBOOK_SECRET_KEY",
        "3f0c9a4e7d1b52c86a0e4f9b1d7c2a65e8b3f1d09c4a7e2b6d5f8a1c3e9b7d20",
    )
    token_max_age_hours = int(os.getenv("DAYBOOK_TOKEN_MAX_AGE_HOURS", "720"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        secret_key=secret_key,
        token_max_age_hours=token_max_age_hours,
        allowed_principal=_optional_env("DAYBOOK_ALLOWED_PRINCIPAL"),
        identity_header=_optional_env("DAYBOOK_IDENTITY_HEADER"),
    )
