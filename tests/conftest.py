from __future__ import annotations

import pytest

from awbw_notifier import config


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    """Keep tests independent of the caller's environment and .env."""
    monkeypatch.setattr(config, "AWBW_USERNAME", "commander")
    monkeypatch.setattr(config, "AWBW_PASSWORD", "hunter2")
    monkeypatch.setattr(config, "DISCORD_WEBHOOK_URL", "https://discord.test/api/webhooks/1/abc")
    monkeypatch.setattr(config, "STATE_BACKEND", "sqlite")
    monkeypatch.setattr(config, "SQLITE_DB_PATH", str(tmp_path / "state.db"))
    monkeypatch.setattr(config, "BUCKET_NAME", None)
    monkeypatch.setattr(config, "STATE_OBJECT", "state.json")
    monkeypatch.setattr(config, "HTTP_GET_ATTEMPTS", 1)
    monkeypatch.setattr(config, "REQUEST_TIMEOUT", 20.0)
    monkeypatch.setattr(config, "RUN_DEADLINE_SECONDS", 120.0)
