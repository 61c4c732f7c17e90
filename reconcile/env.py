import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .normalize import DEFAULT_COUNTRY_CODE


@dataclass(frozen=True)
class Settings:
    db_path: Path
    log_level: str
    log_dir: Path
    country_code: str


def load_env() -> None:
    """Load .env from the working directory if present."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)


def get_settings() -> Settings:
    return Settings(
        db_path=Path(os.getenv("RECONCILE_DB_PATH", "data/reconcile.db")),
        log_level=os.getenv("RECONCILE_LOG_LEVEL", "INFO"),
        log_dir=Path(os.getenv("RECONCILE_LOG_DIR", "logs")),
        country_code=os.getenv("RECONCILE_COUNTRY_CODE", DEFAULT_COUNTRY_CODE).lstrip("+"),
    )
