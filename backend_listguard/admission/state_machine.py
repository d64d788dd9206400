"""
Admission state machine: fuse account policy, fraud risk and content
moderation into approved / pending / rejected.

Decision order (short-circuit):
1. Policy denial (permission, value cap, daily limit) -> rejected, engines not run.
2. Risk block -> rejected and blocked, security event, no queue entry.
3. Moderation always runs (concurrently with risk).
4. Review required if any trigger fires (a failed risk engine is one).
5. No trigger and confidence above threshold -> approved.
6. Otherwise pending with a prioritized queue entry.
"""

from __future__ import annotations

import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable

from backend_listguard.admission.models import (
    SECURITY_BLOCK_MESSAGE,
    AdmissionConfig,
    AdmissionResult,
    ListingStatus,
    UploadPolicy,
)
from backend_listguard.admission.policy import consume_daily_slot
from backend_listguard.core.exceptions import DailyLimitExceeded
from backend_listguard.database import Database
from backend_listguard.intake.models import Submission
from backend_listguard.listguard_logging import get_logger
from backend_listguard.moderation.engine import ModerationEngine
from backend_listguard.moderation.models import ModerationVerdict
from backend_listguard.review_queue.models import QueueConfig
from backend_listguard.review_queue.priority import priority_for_verdict
from backend_listguard.risk_engine.engine import RiskEngine
from backend_listguard.risk_engine.models import RiskVerdict

logger = get_logger(__name__)


def estimate_review_minutes(issue_count: int, price: float, config: AdmissionConfig | None = None) -> int:
    """round((30 + 10 * issues) * (0.5 if high value else 1))."""
    cfg = config or AdmissionConfig()
    minutes = cfg.base_review_minutes + cfg.review_minutes_per_issue * issue_count
    if price > cfg.high_value_threshold:
        minutes *= cfg.high_value_review_factor
    return int(round(minutes))


def review_triggers(
    submission: Submission,
    policy: UploadPolicy,
    moderation: ModerationVerdict,
    config: AdmissionConfig | None = None,
    risk: RiskVerdict | None = None,
) -> list[str]:
    """Names of every review trigger that fired; empty means no review required."""
    cfg = config or AdmissionConfig()
    fired: list[str] = []
    if risk is not None and risk.is_system_error:
        fired.append("risk_unavailable")
    if policy.mandatory_review:
        fired.append("mandatory_review")
    if policy.max_listing_value is not None and submission.price > policy.max_listing_value:
        fired.append("above_max_listing_value")
    if submission.price > cfg.high_value_threshold:
        fired.append("high_value")
    if moderation.flagged_issues:
        fired.append("flagged_issues")
    if moderation.confidence < cfg.auto_approve_threshold:
        fired.append("low_confidence")
    tag = (submission.cultural_tag or "").strip().lower()
    if tag and tag in cfg.review_cultural_tags:
        fired.append("cultural_tag")
    return fired


class AdmissionPipeline:
    """
    Runs admit() for one submission at a time; safe to share across threads.
    Both engines are long-lived and run on their own pools.
    """

    def __init__(
        self,
        db: Database,
        risk_engine: RiskEngine,
        moderation_engine: ModerationEngine,
        config: AdmissionConfig | None = None,
        queue_config: QueueConfig | None = None,
        *,
        executor: Executor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._risk = risk_engine
        self._moderation = moderation_engine
        self._config = config or AdmissionConfig()
        self._queue_config = queue_config or QueueConfig()
        self._executor = executor or ThreadPoolExecutor(max_workers=8, thread_name_prefix="admission")
        self._clock = clock

    @property
    def config(self) -> AdmissionConfig:
        return self._config

    def _policy_denial(self, submission: Submission, policy: UploadPolicy, now_ts: int) -> str | None:
        if not policy.can_upload:
            return policy.reason_if_denied or "Upload not permitted"
        if policy.max_listing_value is not None and submission.price > policy.max_listing_value:
            return f"Product value exceeds limit ({submission.price:g} > {policy.max_listing_value:g})"
        try:
            consume_daily_slot(self._db, submission.submitter_id, policy.daily_limit, now_ts)
        except DailyLimitExceeded:
            return "Daily upload limit reached"
        return None

    def admit(self, submission: Submission, policy: UploadPolicy, *, now_ts: int | None = None) -> AdmissionResult:
        now = now_ts if now_ts is not None else int(self._clock())
        log = logger.bind(submitter_id=submission.submitter_id, channel=submission.channel.value)

        # 1. policy
        denial = self._policy_denial(submission, policy, now)
        if denial is not None:
            log.info("admission_policy_denied", reason=denial, role=policy.role)
            return AdmissionResult(status=ListingStatus.REJECTED, policy_denied=True, reason=denial)

        # 2 + 3. both engines concurrently; block decision first
        risk_future = self._executor.submit(self._risk.score_risk, submission, now_ts=now)
        moderation_future = self._executor.submit(self._moderation.score_content, submission, now_ts=now)
        risk: RiskVerdict = risk_future.result()
        moderation: ModerationVerdict = moderation_future.result()

        if risk.block:
            return self._block(submission, risk, moderation, now)

        if risk.is_system_error and moderation.fallback:
            log.error(
                "system_incident",
                incident="total_engine_failure",
                risk_degraded=risk.degraded_signals,
                moderation_degraded=moderation.degraded_analyses,
            )

        # 4. review triggers
        triggers = review_triggers(submission, policy, moderation, self._config, risk)

        # 5. approve
        if not triggers and moderation.confidence > self._config.auto_approve_threshold:
            listing, _ = self._db.create_listing(
                submission,
                status=ListingStatus.APPROVED.value,
                risk_snapshot=risk.to_dict(),
                moderation_snapshot=moderation.to_dict(),
                now_ts=now,
            )
            log.info("admission_decided", listing_id=listing.id, status=ListingStatus.APPROVED.value)
            return AdmissionResult(
                status=ListingStatus.APPROVED,
                risk_verdict=risk,
                moderation_verdict=moderation,
                listing_id=listing.id,
            )

        # 6. pending with queue entry
        priority = priority_for_verdict(moderation, self._queue_config)
        listing, entry = self._db.create_listing(
            submission,
            status=ListingStatus.PENDING.value,
            risk_snapshot=risk.to_dict(),
            moderation_snapshot=moderation.to_dict(),
            queue_priority=priority.value,
            now_ts=now,
        )
        minutes = estimate_review_minutes(len(moderation.flagged_issues), submission.price, self._config)
        log.info(
            "admission_decided",
            listing_id=listing.id,
            status=ListingStatus.PENDING.value,
            priority=priority.value,
            triggers=triggers,
            estimated_review_minutes=minutes,
        )
        return AdmissionResult(
            status=ListingStatus.PENDING,
            risk_verdict=risk,
            moderation_verdict=moderation,
            listing_id=listing.id,
            queue_entry=entry,
            estimated_review_minutes=minutes,
            review_triggers=triggers,
        )

    def _block(
        self,
        submission: Submission,
        risk: RiskVerdict,
        moderation: ModerationVerdict,
        now_ts: int,
    ) -> AdmissionResult:
        listing, _ = self._db.create_listing(
            submission,
            status=ListingStatus.REJECTED.value,
            blocked=True,
            risk_snapshot=risk.to_dict(),
            moderation_snapshot=moderation.to_dict(),
            now_ts=now_ts,
        )
        self._db.insert_security_event(
            submission.submitter_id,
            "high_risk_upload",
            "high",
            {"listing_id": listing.id, "risk_score": round(risk.risk_score, 4), "reasons": risk.reasons},
            now_ts,
        )
        logger.warning(
            "admission_blocked",
            submitter_id=submission.submitter_id,
            listing_id=listing.id,
            risk_score=round(risk.risk_score, 4),
            reasons=risk.reasons,
        )
        return AdmissionResult(
            status=ListingStatus.REJECTED,
            risk_verdict=risk,
            moderation_verdict=moderation,
            listing_id=listing.id,
            blocked=True,
            reason=SECURITY_BLOCK_MESSAGE,
        )
