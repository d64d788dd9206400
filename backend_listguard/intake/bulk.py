"""
CSV bulk import for aggregators and cooperatives.

Columns (header optional): name, price, unit, category, description, image.
Rows are admitted in batches of 10, concurrently within a batch; each row
goes through the same admission pipeline (and daily listing counter) as a
single upload. The import itself is limited per account per day.
"""

from __future__ import annotations

import csv
import io
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable

from backend_listguard.admission.models import ListingStatus, UploadPolicy
from backend_listguard.admission.policy import (
    COUNTER_BULK,
    MAX_BULK_IMPORTS_PER_DAY,
    PolicyProvider,
    consume_daily_slot,
)
from backend_listguard.admission.state_machine import AdmissionPipeline
from backend_listguard.core.exceptions import DailyLimitExceeded, InvalidSubmission, ListguardError, PolicyDenied
from backend_listguard.database import Database
from backend_listguard.intake.models import Channel
from backend_listguard.intake.normalizer import build_submission
from backend_listguard.listguard_logging import bind_submitter, get_logger

logger = get_logger(__name__)

BULK_BATCH_SIZE = 10
CSV_COLUMNS = ("name", "price", "unit", "category", "description", "image")


@dataclass
class BulkRowResult:
    row: int
    """1-based line number in the file (header is row 1)."""
    ok: bool
    status: str | None = None
    listing_id: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "row": self.row,
            "ok": self.ok,
            "status": self.status,
            "listing_id": self.listing_id,
            "error": self.error,
        }


@dataclass
class BulkImportReport:
    rows: list[BulkRowResult] = field(default_factory=list)

    @property
    def success(self) -> int:
        return sum(1 for r in self.rows if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.rows if not r.ok)

    @property
    def errors(self) -> list[str]:
        return [f"Row {r.row}: {r.error}" for r in self.rows if not r.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "failed": self.failed,
            "errors": self.errors,
            "rows": [r.to_dict() for r in self.rows],
        }


def parse_csv_rows(text: str) -> list[tuple[int, dict[str, str]]]:
    """
    (row_number, fields) for each non-blank data row. A first row whose
    first cell is "name" is treated as the header.
    """
    reader = csv.reader(io.StringIO(text))
    rows: list[tuple[int, dict[str, str]]] = []
    for line_no, values in enumerate(reader, start=1):
        if not any(v.strip() for v in values):
            continue
        if line_no == 1 and values and values[0].strip().lower() == "name":
            continue
        padded = list(values) + [""] * (len(CSV_COLUMNS) - len(values))
        rows.append((line_no, {col: padded[i].strip() for i, col in enumerate(CSV_COLUMNS)}))
    return rows


class BulkImporter:
    def __init__(
        self,
        db: Database,
        pipeline: AdmissionPipeline,
        policies: PolicyProvider,
        *,
        batch_size: int = BULK_BATCH_SIZE,
        max_imports_per_day: int = MAX_BULK_IMPORTS_PER_DAY,
        executor: Executor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._pipeline = pipeline
        self._policies = policies
        self._batch_size = max(1, batch_size)
        self._max_imports = max_imports_per_day
        self._executor = executor or ThreadPoolExecutor(max_workers=self._batch_size, thread_name_prefix="bulk")
        self._clock = clock

    def import_csv(self, account_id: str, text: str, *, now_ts: int | None = None) -> BulkImportReport:
        """
        Admit every row of a CSV file for account_id.

        Raises:
            PolicyDenied: account may not upload, has no bulk permission, or
                has used today's bulk imports.
        """
        now = now_ts if now_ts is not None else int(self._clock())
        policy = self._policies.policy_for(account_id, now_ts=now)
        if not policy.can_upload:
            raise PolicyDenied(policy.reason_if_denied or "Upload not permitted")
        if not policy.bulk_allowed:
            raise PolicyDenied("Bulk upload permissions denied", role=policy.role)
        try:
            consume_daily_slot(self._db, account_id, self._max_imports, now, kind=COUNTER_BULK)
        except DailyLimitExceeded as e:
            raise PolicyDenied(f"Daily bulk import limit reached ({self._max_imports})") from e

        rows = parse_csv_rows(text)
        report = BulkImportReport()
        log = bind_submitter(account_id)
        log.info("bulk_import_started", rows=len(rows))

        for start in range(0, len(rows), self._batch_size):
            batch = rows[start : start + self._batch_size]
            futures = [
                self._executor.submit(self._admit_row, account_id, row_no, fields, policy, now)
                for row_no, fields in batch
            ]
            report.rows.extend(f.result() for f in futures)

        log.info("bulk_import_finished", success=report.success, failed=report.failed)
        return report

    def _admit_row(
        self,
        account_id: str,
        row_no: int,
        fields: dict[str, str],
        policy: UploadPolicy,
        now_ts: int,
    ) -> BulkRowResult:
        try:
            submission = build_submission(
                name=fields["name"],
                price=fields["price"],
                unit=fields["unit"] or None,
                category=fields["category"] or None,
                description=fields["description"] or None,
                images=[fields["image"]] if fields["image"] else (),
                submitter_id=account_id,
                channel=Channel.BATCH,
            )
            result = self._pipeline.admit(submission, policy, now_ts=now_ts)
        except InvalidSubmission as e:
            return BulkRowResult(row=row_no, ok=False, error=e.message)
        except ListguardError as e:
            logger.warning("bulk_row_failed", account_id=account_id, row=row_no, error=e.message)
            return BulkRowResult(row=row_no, ok=False, error=e.message)
        except Exception as e:
            logger.exception("bulk_row_failed", account_id=account_id, row=row_no, error=str(e))
            return BulkRowResult(row=row_no, ok=False, error="Unknown error")

        if result.status == ListingStatus.REJECTED:
            return BulkRowResult(
                row=row_no,
                ok=False,
                status=result.status.value,
                listing_id=result.listing_id,
                error=result.reason,
            )
        return BulkRowResult(row=row_no, ok=True, status=result.status.value, listing_id=result.listing_id)
