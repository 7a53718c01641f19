"""Simple JSON-backed configuration store."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import API, CONFIG_PATH
from datetime_utils import parse_rfc3339, to_rfc3339_utc


@dataclass
class AppConfig:
    """Lightweight configuration persisted to ``config.json``."""

    auth_token: Optional[str] = None
    api_base_url: Optional[str] = None
    last_sync_at: Optional[str] = None
    last_sync_error: Optional[str] = None

    @property
    def last_sync_time(self) -> Optional[datetime]:
        return parse_rfc3339(self.last_sync_at)


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def load_config(path: Optional[Path] = None) -> AppConfig:
    target = path or CONFIG_PATH
    data = _load_raw(target)
    return AppConfig(
        auth_token=data.get("auth_token"),
        api_base_url=data.get("api_base_url"),
        last_sync_at=data.get("last_sync_at"),
        last_sync_error=data.get("last_sync_error"),
    )


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    target = path or CONFIG_PATH
    _ensure_parent(target)
    payload = json.dumps(asdict(config), ensure_ascii=False, indent=2, sort_keys=True)
    tmp = target.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(target)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def update_config(path: Optional[Path] = None, **changes: Any) -> AppConfig:
    target = path or CONFIG_PATH
    cfg = load_config(target)
    for key, value in changes.items():
        if hasattr(cfg, key):
            setattr(cfg, key, value)
    save_config(cfg, target)
    return cfg


def record_sync_finished(
    moment: datetime, error: Optional[str] = None, path: Optional[Path] = None
) -> AppConfig:
    return update_config(path, last_sync_at=to_rfc3339_utc(moment), last_sync_error=error)


def resolve_token(path: Optional[Path] = None) -> Optional[str]:
    """Saved token first, then ``PATIENTS_API_TOKEN``."""
    token = load_config(path).auth_token
    if token and token.strip():
        return token.strip()
    return API.default_token


def resolve_base_url(path: Optional[Path] = None) -> str:
    return (load_config(path).api_base_url or API.base_url).rstrip("/")


__all__ = [
    "AppConfig",
    "load_config",
    "record_sync_finished",
    "resolve_base_url",
    "resolve_token",
    "save_config",
    "update_config",
]
