from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ENV_FILE_VAR = "WCL_DEATHS_ENV_FILE"


def load_env(env_file: Optional[Path] = None) -> Optional[Path]:
    """Load the first .env found and return its path.

    ``env_file`` (or ``$WCL_DEATHS_ENV_FILE``) wins over backend/.env and the
    repository root. Variables already set in the process are never replaced.
    """
    explicit = env_file or _path_env(ENV_FILE_VAR)
    candidates = [explicit] if explicit else [
        Path(__file__).resolve().parents[1] / ".env",
        Path(__file__).resolve().parents[2] / ".env",
    ]
    for path in candidates:
        if path.is_file():
            load_dotenv(path, override=False)
            return path
    return None


def _bool_env(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


def _list_env(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default)
    return [value.strip() for value in raw.split(",") if value.strip()]


def _path_env(name: str) -> Optional[Path]:
    value = os.getenv(name)
    if not value:
        return None
    return Path(value)


@dataclass(frozen=True)
class Settings:
    wcl_client_id: str
    wcl_client_secret: str
    wcl_token_url: str
    wcl_api_url: str
    wcl_timeout: float
    wcl_max_retries: int
    wcl_use_cache: bool
    wcl_cache_dir: Optional[Path]
    encounter_config_path: Path
    early_death_window: int
    report_utc_offset_hours: int
    cors_origins: List[str]
    debug_mode: bool
    deaths_api_url: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            wcl_client_id=os.getenv("WCL_CLIENT_ID", ""),
            wcl_client_secret=os.getenv("WCL_CLIENT_SECRET", ""),
            wcl_token_url=os.getenv(
                "WCL_TOKEN_URL", "https://www.warcraftlogs.com/oauth/token"
            ),
            wcl_api_url=os.getenv(
                "WCL_API_URL", "https://www.warcraftlogs.com/api/v2/client"
            ),
            wcl_timeout=float(os.getenv("WCL_TIMEOUT", "30")),
            wcl_max_retries=int(os.getenv("WCL_MAX_RETRIES", "3")),
            wcl_use_cache=_bool_env("WCL_USE_CACHE"),
            wcl_cache_dir=_path_env("WCL_CACHE_DIR"),
            encounter_config_path=Path(
                os.getenv("ENCOUNTER_CONFIG_PATH", "config.toml")
            ),
            early_death_window=int(os.getenv("EARLY_DEATH_WINDOW", "3")),
            report_utc_offset_hours=int(os.getenv("REPORT_UTC_OFFSET_HOURS", "-8")),
            cors_origins=_list_env(
                "CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"
            ),
            debug_mode=_bool_env("DEBUG_MODE"),
            deaths_api_url=os.getenv("DEATHS_API_URL", "http://localhost:3000"),
        )
