import json
from datetime import datetime, timezone

from core.settings import API
from storage.config import (
    AppConfig,
    load_config,
    record_sync_finished,
    resolve_base_url,
    resolve_token,
    save_config,
    update_config,
)


def test_missing_or_corrupt_config_gives_defaults(config_path):
    assert load_config(config_path) == AppConfig()
    config_path.write_text("{not json", encoding="utf-8")
    assert load_config(config_path) == AppConfig()


def test_save_and_update_round_trip(config_path):
    save_config(AppConfig(auth_token="t0k"), config_path)
    cfg = update_config(config_path, api_base_url="https://example.test/api/", unknown="ignored")

    assert cfg.auth_token == "t0k"
    data = json.loads(config_path.read_text(encoding="utf-8"))
    assert data["api_base_url"] == "https://example.test/api/"
    assert "unknown" not in data
    assert not config_path.with_suffix(".tmp").exists()


def test_record_sync_finished(config_path):
    moment = datetime(2024, 3, 2, 8, 30, 15, 123456, tzinfo=timezone.utc)
    record_sync_finished(moment, "HTTP 500", config_path)

    cfg = load_config(config_path)
    assert cfg.last_sync_at == "2024-03-02T08:30:15Z"
    assert cfg.last_sync_time == moment.replace(microsecond=0)
    assert cfg.last_sync_error == "HTTP 500"

    record_sync_finished(moment, None, config_path)
    assert load_config(config_path).last_sync_error is None


def test_resolve_token_and_base_url(config_path):
    assert resolve_token(config_path) == API.default_token
    assert resolve_base_url(config_path) == API.base_url.rstrip("/")

    save_config(AppConfig(auth_token="  secret ", api_base_url="https://example.test/api/"), config_path)
    assert resolve_token(config_path) == "secret"
    assert resolve_base_url(config_path) == "https://example.test/api"
