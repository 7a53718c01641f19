"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``.

    ``PATIENTS_DATA_DIR`` wins over the platform default when set.
    """

    platform_id = (platform or sys.platform).lower()
    environ = dict(os.environ if env is None else env)
    override = environ.get("PATIENTS_DATA_DIR")
    if override:
        return Path(override).expanduser()

    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = home_dir / "Library" / "Application Support"
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return base.expanduser() / sanitized


APP_NAME = "Patients"


DATA_DIR = get_default_data_dir(APP_NAME)
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "patients.db"
CONFIG_PATH = DATA_DIR / "config.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class ApiSettings:
    base_url: str = os.environ.get(
        "PATIENTS_API_BASE_URL", "https://patientvisitapis.intellisoftkenya.com/api"
    )
    timeout_sec: float = 30.0
    # Used only when no token has been saved to config.json.
    default_token: Optional[str] = os.environ.get("PATIENTS_API_TOKEN") or None


API = ApiSettings()


@dataclass(frozen=True)
class SyncSettings:
    enabled: bool = True
    push_on_save: bool = True
    interval_sec: int = 15 * 60
    max_backoff_sec: int = 60 * 60
    worker_threads: int = 4
    # None keeps retrying forever; purge is a separate maintenance step.
    max_attempts: Optional[int] = None
    purge_older_than_days: int = 30
    log_path: Path = SYNC_LOG_PATH


SYNC = SyncSettings()


@dataclass(frozen=True)
class UISettings:
    app_title: str = APP_NAME
    theme_mode: str = "system"
    color_scheme_seed: str = "#0F766E"
    window_min_width: int = 900
    window_min_height: int = 600
    sync_log_lines: int = 100


UI = UISettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOG_DIR",
    "DB_PATH",
    "CONFIG_PATH",
    "SYNC_LOG_PATH",
    "API",
    "SYNC",
    "UI",
    "get_default_data_dir",
]
