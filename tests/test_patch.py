"""Tests for tri-state patch values and config loading."""

from __future__ import annotations

import pytest

from claimboard.web.config import WebConfig
from claimboard.web.patch import CLEAR, UNCHANGED, Clear, Set, Unchanged, from_field
from claimboard.web.tasks.models import TaskUpdate


def test_singletons():
    assert Unchanged() is UNCHANGED
    assert Clear() is CLEAR
    assert repr(UNCHANGED) == "UNCHANGED"


def test_from_field_distinguishes_absent_null_and_value():
    body = TaskUpdate.model_validate({"version": 3, "description": None, "priority": 2})
    assert from_field(body, "title") is UNCHANGED
    assert from_field(body, "description") is CLEAR
    assert from_field(body, "priority") == Set(2)


class TestConfig:
    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("CLAIMBOARD_JWT_SECRET", "s3cret")
        config = WebConfig.load()
        assert config.jwt_secret == "s3cret"
        assert config.stale_session_seconds == 300
        assert config.heartbeat_interval_seconds == 60

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CLAIMBOARD_PORT", "9001")
        monkeypatch.setenv("CLAIMBOARD_CORS_ORIGINS", "http://a.test, http://b.test")
        monkeypatch.setenv("CLAIMBOARD_STALE_SESSION_SECONDS", "600")
        config = WebConfig.load()
        assert config.port == 9001
        assert config.cors_origins == ["http://a.test", "http://b.test"]
        assert config.stale_session_seconds == 600

    def test_ephemeral_secret(self, monkeypatch):
        monkeypatch.delenv("CLAIMBOARD_JWT_SECRET", raising=False)
        assert len(WebConfig.load().jwt_secret) == 64

    def test_stale_threshold_must_exceed_heartbeat(self, monkeypatch):
        monkeypatch.setenv("CLAIMBOARD_STALE_SESSION_SECONDS", "30")
        with pytest.raises(RuntimeError):
            WebConfig.load()
