"""
Tests for environment-driven settings.
"""

from __future__ import annotations

from backend_listguard.config import get_settings, load_settings


def test_defaults(monkeypatch, tmp_path):
    for name in ("DATABASE_URL", "SIGNAL_TIMEOUT_SEC", "AUTO_APPROVE_THRESHOLD", "REVIEW_CULTURAL_TAGS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LISTGUARD_DB_PATH", str(tmp_path / "x.db"))
    settings = load_settings()
    assert settings.database_url == f"sqlite:///{tmp_path / 'x.db'}"
    assert settings.signal_timeout_sec == 2.0
    assert settings.auto_approve_threshold == 0.85
    assert settings.review_cultural_tags == ("maasai", "refugee")


def test_database_url_wins_over_path(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://lg:lg@db:5432/listguard")
    monkeypatch.setenv("LISTGUARD_DB_PATH", "/tmp/ignored.db")
    assert load_settings().database_url == "postgresql://lg:lg@db:5432/listguard"


def test_overrides_and_bad_values(monkeypatch):
    monkeypatch.setenv("REVIEW_CULTURAL_TAGS", "Maasai, Turkana ,")
    monkeypatch.setenv("SCORING_WORKERS", "0")
    monkeypatch.setenv("REPORT_REWARD_AMOUNT", "lots")
    settings = load_settings()
    assert settings.review_cultural_tags == ("maasai", "turkana")
    assert settings.scoring_workers == 1
    assert settings.report_reward_amount == 50


def test_get_settings_is_cached(monkeypatch):
    get_settings.cache_clear()
    first = get_settings()
    monkeypatch.setenv("API_PORT", "9999")
    assert get_settings() is first
    get_settings.cache_clear()
    assert get_settings().api_port == 9999
    get_settings.cache_clear()
