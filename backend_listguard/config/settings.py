"""
Application settings and environment configuration.

Loads configuration from environment variables (and .env via python-dotenv),
applies defaults, and exposes a typed Settings object shared by the engines,
the admission pipeline, the review queue and the API server.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache

from backend_listguard.config.env import (
    env_float,
    env_int,
    env_list,
    env_str,
    get_database_url,
    load_listguard_env,
)

DEFAULT_SIGNAL_TIMEOUT_SEC = 2.0
DEFAULT_SCORING_WORKERS = 8
DEFAULT_AUTO_APPROVE_THRESHOLD = 0.85
DEFAULT_HIGH_VALUE_THRESHOLD = 10_000.0
DEFAULT_REPORT_REWARD_AMOUNT = 50
DEFAULT_REPORT_ESCALATION_COUNT = 3
DEFAULT_REVIEW_CULTURAL_TAGS = ("maasai", "refugee")


@dataclass(frozen=True)
class Settings:
    """
    Typed settings snapshot.

    database_url: SQLAlchemy URL for the store.
    signal_timeout_sec: Upper bound for any one external lookup in the engines.
    scoring_workers: Thread pool size for signal/analysis fan-out.
    """

    database_url: str
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    log_format: str = "json"
    signal_timeout_sec: float = DEFAULT_SIGNAL_TIMEOUT_SEC
    scoring_workers: int = DEFAULT_SCORING_WORKERS
    auto_approve_threshold: float = DEFAULT_AUTO_APPROVE_THRESHOLD
    high_value_threshold: float = DEFAULT_HIGH_VALUE_THRESHOLD
    report_reward_amount: int = DEFAULT_REPORT_REWARD_AMOUNT
    report_escalation_count: int = DEFAULT_REPORT_ESCALATION_COUNT
    review_cultural_tags: tuple[str, ...] = field(default=DEFAULT_REVIEW_CULTURAL_TAGS)


def load_settings() -> Settings:
    """Build Settings from the current environment (no caching)."""
    load_listguard_env()
    return Settings(
        database_url=get_database_url(),
        api_host=env_str("API_HOST", "0.0.0.0"),
        api_port=env_int("API_PORT", 8000),
        log_level=env_str("LOG_LEVEL", "INFO").upper(),
        log_format=env_str("LOG_FORMAT", "json").lower(),
        signal_timeout_sec=max(0.1, env_float("SIGNAL_TIMEOUT_SEC", DEFAULT_SIGNAL_TIMEOUT_SEC)),
        scoring_workers=max(1, env_int("SCORING_WORKERS", DEFAULT_SCORING_WORKERS)),
        auto_approve_threshold=env_float("AUTO_APPROVE_THRESHOLD", DEFAULT_AUTO_APPROVE_THRESHOLD),
        high_value_threshold=env_float("HIGH_VALUE_THRESHOLD", DEFAULT_HIGH_VALUE_THRESHOLD),
        report_reward_amount=env_int("REPORT_REWARD_AMOUNT", DEFAULT_REPORT_REWARD_AMOUNT),
        report_escalation_count=max(1, env_int("REPORT_ESCALATION_COUNT", DEFAULT_REPORT_ESCALATION_COUNT)),
        review_cultural_tags=env_list("REVIEW_CULTURAL_TAGS", DEFAULT_REVIEW_CULTURAL_TAGS),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the current application settings (cached for the process).

    Tests that change the environment call get_settings.cache_clear().
    """
    return load_settings()
