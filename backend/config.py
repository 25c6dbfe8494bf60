from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Get the directory where this config file is located.
_BACKEND_DIR = Path(__file__).parent.resolve()


def _detect_project_root(backend_dir: Path) -> Path:
    """Resolve project root from the backend directory in the repo layout."""
    return backend_dir.parent.resolve()


_PROJECT_ROOT = _detect_project_root(_BACKEND_DIR)
_SQLITE_ASYNC_PREFIX = "sqlite+aiosqlite:///"
_SQLITE_SYNC_PREFIX = "sqlite:///"
_UPB_MODES = ("historical", "weekly")


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/xp.db"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    LOG_FILE: Optional[str] = None

    # Eligible volume filters
    XP_MIN_FILL_SIZE_USD: float = 8.0  # Dust floor, trades below this are ignored
    XP_PRICE_IMPACT_FILTER_ENABLED: bool = False  # Impact stage is wired but off
    XP_MIN_PRICE_IMPACT: float = 0.0001  # 1bp (0.01%)
    XP_ROUND_TRIP_WINDOW_SECONDS: int = 300  # A->B then B->A within 5 minutes

    # Swap XP
    XP_RATE_PER_USD: float = 0.5  # XP per eligible USD
    XP_K_FEE: float = 200.0  # Fee ceiling: XP capped at k_fee * fees_usd

    # League thresholds (total eligible volume, inclusive lower bounds)
    XP_LEAGUE_SILVER_MIN_EV: float = 5_000.0
    XP_LEAGUE_GOLD_MIN_EV: float = 25_000.0
    XP_LEAGUE_DIAMOND_MIN_EV: float = 125_000.0

    # Unique pair bonus
    XP_UPB_ENABLED: bool = True
    XP_UPB_PER_NEW_PAIR: float = 25.0
    XP_UPB_MAX_NEW_PAIRS: int = 4  # Caps the bonus at +100 XP/week
    XP_UPB_MODE: str = "historical"  # historical | weekly

    # Distribution job
    XP_SWAP_TYPES: list[str] = ["CLASSIC", "LIMIT_ORDER"]
    XP_JOB_MAX_CONCURRENCY: int = 8
    XP_PERSIST_MAX_ATTEMPTS: int = 3

    @field_validator("XP_UPB_MODE", mode="before")
    @classmethod
    def _normalize_upb_mode(cls, value: object) -> object:
        text = str(value or "").strip().lower()
        if text not in _UPB_MODES:
            raise ValueError(
                f"XP_UPB_MODE must be one of {', '.join(_UPB_MODES)}, got {value!r}"
            )
        return text

    @field_validator("XP_SWAP_TYPES", mode="before")
    @classmethod
    def _normalize_swap_types(cls, value: object) -> object:
        if isinstance(value, str):
            value = [part for part in value.split(",")]
        if isinstance(value, (list, tuple)):
            return [str(part).strip().upper() for part in value if str(part).strip()]
        return value

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def _normalize_database_url(cls, value: object) -> object:
        """Normalize DB URL so worker cwd changes never split databases."""
        if value is None:
            return value

        text = str(value).strip().strip('"').strip("'")
        if not text:
            return text

        # Convert relative SQLite paths to absolute project-root paths.
        for prefix in (_SQLITE_ASYNC_PREFIX, _SQLITE_SYNC_PREFIX):
            if not text.startswith(prefix):
                continue
            path_part = text[len(prefix) :]
            if not path_part:
                return text
            if path_part in {":memory:", "/:memory:"}:
                return f"{prefix}:memory:"
            absolute = Path(path_part).resolve() if path_part.startswith("/") else (_PROJECT_ROOT / path_part).resolve()
            absolute.parent.mkdir(parents=True, exist_ok=True)
            return f"{prefix}{absolute}"

        return text

    class Config:
        # Load project-root .env first (common workflow), then backend/.env
        # as an override if present.
        env_file = (
            str(_PROJECT_ROOT / ".env"),
            str(_BACKEND_DIR / ".env"),
        )
        env_file_encoding = "utf-8"


settings = Settings()
