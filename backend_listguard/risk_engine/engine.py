"""
Fraud risk engine: gather sub-signals concurrently, score, audit.

score_risk never raises. A failed or timed-out sub-signal contributes zero;
when every store lookup that ran fails the engine returns the system-error verdict
(medium, 0.5, block False) so the listing lands in human review.
"""

from __future__ import annotations

import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Callable

from backend_listguard.core.exceptions import TotalEngineFailure
from backend_listguard.core.fanout import SignalOutcome, fan_out
from backend_listguard.database import Database
from backend_listguard.intake.models import Submission
from backend_listguard.listguard_logging import get_logger
from backend_listguard.risk_engine import signals
from backend_listguard.risk_engine.models import (
    DuplicateImageCheck,
    LocationCheck,
    RiskConfig,
    RiskProfile,
    RiskVerdict,
)
from backend_listguard.risk_engine.scorer import build_verdict

logger = get_logger(__name__)

# signal name -> RiskProfile attribute
_PROFILE_FIELDS = {
    "identity_age": "identity_age_days",
    "payment_history": "payment_history_months",
    "prior_reports": "prior_confirmed_reports",
    "upload_velocity": "uploads_last_24h",
    "duplicate_image": "duplicate_image",
    "location": "location",
    "behavior": "behavior",
    "network": "network",
}


class RiskEngine:
    """
    Scores the fraud risk of one submission.

    db: store used by every sub-signal.
    executor: shared pool; one is created (and owned) when omitted.
    clock: returns Unix seconds; injectable for deterministic tests.
    """

    def __init__(
        self,
        db: Database,
        config: RiskConfig | None = None,
        *,
        executor: Executor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._config = config or RiskConfig()
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self._config.max_workers, thread_name_prefix="risk-signal"
        )
        self._clock = clock

    @property
    def config(self) -> RiskConfig:
        return self._config

    def _tasks(self, submission: Submission, now_ts: int) -> dict[str, Callable[[], Any]]:
        """Store lookups for this submission; image and location checks only run when there is data to check."""
        db, cfg, sid = self._db, self._config, submission.submitter_id
        tasks: dict[str, Callable[[], Any]] = {
            "identity_age": lambda: signals.identity_age_days(db, sid, now_ts),
            "payment_history": lambda: signals.payment_history_months(db, sid, now_ts, cfg),
            "prior_reports": lambda: signals.prior_confirmed_reports(db, sid),
            "upload_velocity": lambda: signals.uploads_last_24h(db, sid, now_ts),
            "behavior": lambda: signals.check_behavior(db, sid, now_ts, cfg),
            "network": lambda: signals.check_network(db, sid, now_ts),
        }
        if submission.image_urls:
            tasks["duplicate_image"] = lambda: signals.check_duplicate_images(db, submission)
        if submission.location is not None:
            tasks["location"] = lambda: signals.check_location(db, submission, now_ts, cfg)
        return tasks

    def build_profile(self, submission: Submission, now_ts: int) -> RiskProfile:
        """Run the sub-signal lookups; failed ones leave their field None."""
        tasks = self._tasks(submission, now_ts)
        outcomes: dict[str, SignalOutcome] = fan_out(
            self._executor,
            tasks,
            timeout_sec=self._config.signal_timeout_sec,
            component="risk_engine",
        )
        profile = RiskProfile(
            submitter_id=submission.submitter_id,
            duplicate_image=DuplicateImageCheck(),
            location=LocationCheck(valid=True, consistency=1.0),
            looked_up=list(tasks),
        )
        for name, outcome in outcomes.items():
            if outcome.ok:
                setattr(profile, _PROFILE_FIELDS[name], outcome.value)
            else:
                setattr(profile, _PROFILE_FIELDS[name], None)
                profile.degraded_signals.append(name)
        return profile

    def score_risk(self, submission: Submission, *, now_ts: int | None = None) -> RiskVerdict:
        """Return a RiskVerdict for the submission. Never raises."""
        now = now_ts if now_ts is not None else int(self._clock())
        degraded: list[str] = []
        try:
            profile = self.build_profile(submission, now)
            degraded = profile.degraded_signals
            if degraded and len(degraded) == len(profile.looked_up):
                raise TotalEngineFailure("every risk sub-signal failed")
            verdict = build_verdict(profile, self._config)
        except Exception as e:
            logger.error(
                "risk_engine_failure",
                submitter_id=submission.submitter_id,
                error=str(e),
                exc_info=True,
            )
            verdict = RiskVerdict.system_error(degraded)

        self._audit(submission, verdict, now)
        logger.info(
            "risk_scored",
            submitter_id=submission.submitter_id,
            risk_level=verdict.risk_level.value,
            risk_score=round(verdict.risk_score, 4),
            block=verdict.block,
            degraded_signals=verdict.degraded_signals,
        )
        return verdict

    def _audit(self, submission: Submission, verdict: RiskVerdict, now_ts: int) -> None:
        try:
            self._db.insert_risk_check(
                submission.submitter_id,
                verdict.risk_level.value,
                verdict.risk_score,
                verdict.reasons,
                verdict.block,
                verdict.degraded_signals,
                now_ts,
            )
        except Exception as e:
            logger.warning(
                "risk_check_audit_failed",
                submitter_id=submission.submitter_id,
                error=str(e),
                exc_info=True,
            )


def score_risk(submission: Submission, db: Database, *, config: RiskConfig | None = None, now_ts: int | None = None) -> RiskVerdict:
    """One-shot convenience wrapper; prefer a long-lived RiskEngine in services."""
    return RiskEngine(db, config).score_risk(submission, now_ts=now_ts)
