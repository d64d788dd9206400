"""
Content moderation engine: pricing, imagery and text analyses run
concurrently, fused into a confidence score with explainable issues.

A failed analysis adds an ANALYSIS_UNAVAILABLE issue (so the listing cannot
auto-approve) but no penalty. When every attempted analysis fails the
engine returns the screening-failed verdict (confidence 0.3).
"""

from __future__ import annotations

import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Callable

from backend_listguard.core.fanout import fan_out
from backend_listguard.database import Database
from backend_listguard.intake.models import Submission
from backend_listguard.listguard_logging import get_logger
from backend_listguard.moderation.capabilities import ImageClassifier, PriceHistoryLookup, TextAnalyzer
from backend_listguard.moderation.imagery import LabelImageClassifier
from backend_listguard.moderation.models import (
    FlaggedIssue,
    IssueKind,
    ModerationConfig,
    ModerationVerdict,
)
from backend_listguard.moderation.pricing import DatabasePriceHistory, analyze_price
from backend_listguard.moderation.scorer import collect_issues, compute_confidence
from backend_listguard.moderation.text import KeywordTextAnalyzer

logger = get_logger(__name__)

_UNAVAILABLE_MESSAGES = {
    "pricing": "Price analysis unavailable - requires human review",
    "imagery": "Image analysis unavailable - requires human review",
    "text": "Text analysis unavailable - requires human review",
}


class ModerationEngine:
    """
    Scores listing content. Capabilities default to the store-backed price
    lookup, the label-based image classifier and the keyword text analyzer.
    """

    def __init__(
        self,
        db: Database,
        config: ModerationConfig | None = None,
        *,
        price_lookup: PriceHistoryLookup | None = None,
        image_classifier: ImageClassifier | None = None,
        text_analyzer: TextAnalyzer | None = None,
        executor: Executor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._config = config or ModerationConfig()
        self._price_lookup = price_lookup or DatabasePriceHistory(db)
        self._image_classifier = image_classifier or LabelImageClassifier()
        self._text_analyzer = text_analyzer or KeywordTextAnalyzer()
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self._config.max_workers, thread_name_prefix="moderation"
        )
        self._clock = clock

    def _tasks(self, submission: Submission, now_ts: int) -> dict[str, Callable[[], Any]]:
        s = submission
        tasks: dict[str, Callable[[], Any]] = {
            "pricing": lambda: analyze_price(self._price_lookup, s.price, s.category, s.unit, now_ts, self._config),
            "text": lambda: self._text_analyzer.analyze(s.name, s.description),
        }
        if s.images:
            tasks["imagery"] = lambda: self._image_classifier.classify(list(s.images), s.name, s.category, s.description)
        return tasks

    def score_content(self, submission: Submission, *, now_ts: int | None = None) -> ModerationVerdict:
        """Return a ModerationVerdict for the submission. Never raises."""
        now = now_ts if now_ts is not None else int(self._clock())
        degraded: list[str] = []
        try:
            outcomes = fan_out(
                self._executor,
                self._tasks(submission, now),
                timeout_sec=self._config.signal_timeout_sec,
                component="moderation_engine",
            )
            degraded = [name for name, o in outcomes.items() if not o.ok]
            if len(degraded) == len(outcomes):
                logger.error("moderation_screening_failed", submitter_id=submission.submitter_id, degraded=degraded)
                verdict = ModerationVerdict.screening_failed(degraded)
            else:
                price = outcomes["pricing"].value if outcomes["pricing"].ok else None
                text = outcomes["text"].value if outcomes["text"].ok else None
                image = outcomes["imagery"].value if "imagery" in outcomes and outcomes["imagery"].ok else None
                issues = collect_issues(price, image, text)
                issues.extend(FlaggedIssue(IssueKind.ANALYSIS_UNAVAILABLE, _UNAVAILABLE_MESSAGES[name]) for name in degraded)
                verdict = ModerationVerdict(
                    confidence=compute_confidence(price, image, text),
                    flagged_issues=issues,
                    price_anomaly=price,
                    image_analysis=image,
                    text_analysis=text,
                    degraded_analyses=degraded,
                )
        except Exception as e:
            logger.error(
                "moderation_engine_failure",
                submitter_id=submission.submitter_id,
                error=str(e),
                exc_info=True,
            )
            verdict = ModerationVerdict.screening_failed(degraded)

        self._log(submission, verdict, now)
        logger.info(
            "content_scored",
            submitter_id=submission.submitter_id,
            confidence=round(verdict.confidence, 4),
            issues=len(verdict.flagged_issues),
            degraded_analyses=verdict.degraded_analyses,
        )
        return verdict

    def _log(self, submission: Submission, verdict: ModerationVerdict, now_ts: int) -> None:
        try:
            self._db.insert_moderation_log(
                submission.submitter_id,
                submission.name,
                submission.channel.value,
                verdict.confidence,
                [i.to_dict() for i in verdict.flagged_issues],
                now_ts,
            )
        except Exception as e:
            logger.warning(
                "moderation_log_failed",
                submitter_id=submission.submitter_id,
                error=str(e),
                exc_info=True,
            )


def score_content(submission: Submission, db: Database, *, config: ModerationConfig | None = None, now_ts: int | None = None) -> ModerationVerdict:
    """One-shot convenience wrapper; prefer a long-lived ModerationEngine in services."""
    return ModerationEngine(db, config).score_content(submission, now_ts=now_ts)
