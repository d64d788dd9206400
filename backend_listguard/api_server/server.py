"""
FastAPI server for listing intake and moderation.

Submitters post listings (single, CSV bulk, messaging payload or menu
session keypresses); moderators work the review queue and validate community
reports. Domain errors map to HTTP: PolicyDenied/SecurityBlock 403,
not found 404, conflicts and invalid transitions 409, invalid input 422.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from backend_listguard.admission import (
    AdmissionConfig,
    AdmissionPipeline,
    AdmissionResult,
    PolicyProvider,
)
from backend_listguard.config import Settings, get_settings
from backend_listguard.core.exceptions import (
    ConcurrencyConflict,
    InvalidSubmission,
    InvalidTransition,
    ListguardError,
    NotFound,
    PolicyDenied,
    SecurityBlock,
    SessionError,
)
from backend_listguard.database import Database, get_database
from backend_listguard.intake.bulk import BulkImporter
from backend_listguard.intake.models import Channel, Submission
from backend_listguard.intake.normalizer import build_submission, normalize_messaging_payload
from backend_listguard.intake.session import SessionHandler, SessionKind
from backend_listguard.listguard_logging import get_logger, submission_context
from backend_listguard.moderation import ModerationConfig, ModerationEngine
from backend_listguard.review_queue import (
    DatabaseNotifier,
    QueueConfig,
    QueuePriority,
    ReportService,
    ReviewQueue,
)
from backend_listguard.risk_engine import RiskConfig, RiskEngine

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Services (app-scoped, built once from Settings)
# -----------------------------------------------------------------------------


@dataclass
class Services:
    settings: Settings
    db: Database
    risk: RiskEngine
    moderation: ModerationEngine
    pipeline: AdmissionPipeline
    policies: PolicyProvider
    queue: ReviewQueue
    reports: ReportService
    sessions: SessionHandler
    bulk: BulkImporter
    executor: ThreadPoolExecutor

    def admit(self, submission: Submission) -> AdmissionResult:
        return admit_with_policy(self.pipeline, self.policies, submission)

    def close(self) -> None:
        self.executor.shutdown(wait=False)
        self.db.dispose()


def admit_with_policy(pipeline: AdmissionPipeline, policies: PolicyProvider, submission: Submission) -> AdmissionResult:
    """Look up the submitter's current policy and admit."""
    return pipeline.admit(submission, policies.policy_for(submission.submitter_id))


def build_services(settings: Settings) -> Services:
    db = get_database(settings.database_url)
    # Signal fan-out only; admission and bulk run on their own pools.
    signal_pool = ThreadPoolExecutor(max_workers=settings.scoring_workers, thread_name_prefix="signal")
    risk = RiskEngine(
        db,
        RiskConfig(signal_timeout_sec=settings.signal_timeout_sec, max_workers=settings.scoring_workers),
        executor=signal_pool,
    )
    moderation = ModerationEngine(
        db,
        ModerationConfig(signal_timeout_sec=settings.signal_timeout_sec, max_workers=settings.scoring_workers),
        executor=signal_pool,
    )
    queue_config = QueueConfig(
        escalation_count=settings.report_escalation_count,
        reward_amount=settings.report_reward_amount,
    )
    pipeline = AdmissionPipeline(
        db,
        risk,
        moderation,
        AdmissionConfig(
            auto_approve_threshold=settings.auto_approve_threshold,
            high_value_threshold=settings.high_value_threshold,
            review_cultural_tags=settings.review_cultural_tags,
        ),
        queue_config,
    )
    policies = PolicyProvider(db)
    return Services(
        settings=settings,
        db=db,
        risk=risk,
        moderation=moderation,
        pipeline=pipeline,
        policies=policies,
        queue=ReviewQueue(db, DatabaseNotifier(db)),
        reports=ReportService(db, queue_config),
        sessions=SessionHandler(db, lambda submission: admit_with_policy(pipeline, policies, submission)),
        bulk=BulkImporter(db, pipeline, policies),
        executor=signal_pool,
    )


_services: Services | None = None
_services_lock = threading.Lock()


def get_services() -> Services:
    """Dependency: one Services instance per process."""
    global _services
    with _services_lock:
        if _services is None:
            _services = build_services(get_settings())
        return _services


def shutdown_services() -> None:
    global _services
    with _services_lock:
        if _services is not None:
            _services.close()
        _services = None


def reset_services_for_test() -> None:
    """Drop cached services and settings so the next request rebuilds from the environment."""
    shutdown_services()
    get_settings.cache_clear()


# -----------------------------------------------------------------------------
# Request / response models
# -----------------------------------------------------------------------------


class ImageModel(BaseModel):
    url: str = Field(..., min_length=1, description="Image URL or storage key")
    labels: list[str] = Field(default_factory=list, description="Classifier labels attached by the upload service")
    quality: Optional[float] = Field(None, ge=0, le=1, description="Upstream quality score (0-1)")


class LocationModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0, description="GPS accuracy in meters")


class ListingRequest(BaseModel):
    """POST /listings body."""

    submitter_id: str = Field(..., min_length=1, description="Account id of the supplier")
    name: str = Field(..., description="Product name")
    price: float = Field(..., gt=0, allow_inf_nan=False, description="Unit price (KSh)")
    unit: Optional[str] = Field(None, description="Unit; standardized (KILO -> kg, LITA -> ltr, ...)")
    category: Optional[str] = Field(None, description="Category; inferred from the name when blank")
    description: Optional[str] = Field(None, max_length=2000)
    images: list[ImageModel] = Field(default_factory=list)
    location: Optional[LocationModel] = None
    cultural_tag: Optional[str] = Field(None, description="e.g. maasai, refugee (forces review)")


class MessagingFields(BaseModel):
    name: str = ""
    price: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    unit: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


class MessagingListingRequest(BaseModel):
    """POST /listings/messaging body: structured payload from the messaging gateway."""

    phone: str = Field(..., min_length=3, description="Sender phone number (registered account)")
    images: list[str] = Field(default_factory=list, description="Image URLs received with the message")
    parsed: MessagingFields = Field(default_factory=MessagingFields, description="Fields parsed from the message")


class AdmissionResponse(BaseModel):
    status: str = Field(..., description="approved, pending or rejected")
    listing_id: Optional[int] = None
    blocked: bool = False
    reason: Optional[str] = None
    risk_verdict: Optional[dict[str, Any]] = None
    moderation_verdict: Optional[dict[str, Any]] = None
    queue_entry_id: Optional[int] = None
    estimated_review_minutes: Optional[int] = None


class ReportRequest(BaseModel):
    """POST /reports body."""

    listing_id: int = Field(..., description="Reported listing")
    reporter_id: str = Field(..., min_length=1)
    reason_code: str = Field(..., min_length=1, description="e.g. fake_product, price_gouging, fraud")
    description: str = Field("", max_length=2000)
    evidence: Optional[str] = Field(None, description="Evidence URL or note")


class ReportResponse(BaseModel):
    report: dict[str, Any]
    reflagged: bool = Field(..., description="An approved listing went back to review")
    escalated: bool = Field(..., description="This report pushed the open entry to high priority")
    queue_entry_id: Optional[int] = None


class ValidateReportRequest(BaseModel):
    moderator_id: str = Field(..., min_length=1)
    confirmed: bool = Field(..., description="True: confirmed (reporter rewarded); False: rejected")


class ApproveRequest(BaseModel):
    moderator_id: str = Field(..., min_length=1)
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    moderator_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, description="Shown to the supplier")


class SessionRequest(BaseModel):
    """POST /session body. Omit session_id to start a session for phone_number."""

    session_id: Optional[str] = None
    phone_number: Optional[str] = None
    input: str = Field("", description="Keypress / text entered on this screen")
    kind: SessionKind = SessionKind.SUBMISSION


class SessionResponseModel(BaseModel):
    session_id: Optional[str] = None
    message: str
    action: str = Field(..., description="continue or end")
    step: Optional[str] = None
    admission: Optional[dict[str, Any]] = None


# -----------------------------------------------------------------------------
# Lifespan
# -----------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("api_starting", host=settings.api_host, port=settings.api_port)
    yield
    shutdown_services()
    logger.info("api_stopped")


app = FastAPI(
    title="Listguard API",
    description="Listing intake, fraud risk and content moderation, review queue and community reports.",
    version="0.1.0",
    lifespan=lifespan,
)


# -----------------------------------------------------------------------------
# Error mapping
# -----------------------------------------------------------------------------


def status_for_error(exc: ListguardError) -> int:
    if isinstance(exc, (PolicyDenied, SecurityBlock)):
        return 403
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, (ConcurrencyConflict, InvalidTransition, SessionError)):
        return 409
    if isinstance(exc, InvalidSubmission):
        return 422
    return 500


@app.exception_handler(ListguardError)
def listguard_error_handler(request: Any, exc: ListguardError) -> JSONResponse:
    status = status_for_error(exc)
    if status >= 500:
        logger.error("api_unhandled_domain_error", code=exc.code, error=exc.message)
    return JSONResponse(status_code=status, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(HTTPException)
def http_exception_handler(request: Any, exc: HTTPException) -> JSONResponse:
    """Consistent JSON error response for HTTPException."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def _admission_response(result: AdmissionResult) -> JSONResponse:
    """Raise for rejected submissions; 201 for approved / pending."""
    if result.policy_denied:
        raise PolicyDenied(result.reason or "Upload not permitted")
    if result.blocked:
        raise SecurityBlock(result.risk_verdict.reasons if result.risk_verdict else [])
    body = AdmissionResponse(**result.to_dict())
    return JSONResponse(status_code=201, content=body.model_dump())


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


@app.get("/health")
def health() -> dict[str, str]:
    """Liveness probe: API is up."""
    return {"status": "ok"}


@app.post("/listings", response_model=AdmissionResponse, status_code=201)
def create_listing(body: ListingRequest, services: Services = Depends(get_services)) -> JSONResponse:
    """Admit one listing from the web channel."""
    submission = build_submission(
        name=body.name,
        price=body.price,
        unit=body.unit,
        category=body.category,
        description=body.description,
        images=[img.model_dump() for img in body.images],
        location=body.location.model_dump() if body.location else None,
        cultural_tag=body.cultural_tag,
        submitter_id=body.submitter_id,
        channel=Channel.WEB,
    )
    with submission_context(submission.submitter_id, submission.channel.value):
        logger.info("listing_submitted")
        return _admission_response(services.admit(submission))


@app.post("/listings/messaging", response_model=AdmissionResponse, status_code=201)
def create_listing_from_message(
    body: MessagingListingRequest, services: Services = Depends(get_services)
) -> JSONResponse:
    """Admit one listing from a messaging payload; the phone must belong to an account."""
    account = services.db.get_account_by_phone(body.phone.strip())
    if account is None:
        logger.info("messaging_sender_unknown", phone=body.phone)
        raise PolicyDenied("User not found")
    submission = normalize_messaging_payload(
        {"phone": body.phone, "images": body.images, "fields": body.parsed.model_dump()}, account.id
    )
    with submission_context(submission.submitter_id, submission.channel.value):
        logger.info("listing_submitted", phone=body.phone)
        return _admission_response(services.admit(submission))


@app.post("/listings/bulk")
async def bulk_import(
    account_id: str = Query(..., min_length=1, description="Importing account (aggregator)"),
    file: UploadFile = File(..., description="CSV with columns: name, price, unit, category, description, image"),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Import a CSV of listings; per-row results with row numbers."""
    content = await file.read()
    text = content.decode("utf-8", errors="replace")
    report = await run_in_threadpool(services.bulk.import_csv, account_id, text)
    return report.to_dict()


@app.post("/reports", response_model=ReportResponse, status_code=201)
def submit_report(body: ReportRequest, services: Services = Depends(get_services)) -> ReportResponse:
    outcome = services.reports.submit_report(
        body.listing_id,
        body.reporter_id,
        body.reason_code,
        body.description,
        evidence=body.evidence,
    )
    return ReportResponse(
        report=outcome.report.to_dict(),
        reflagged=outcome.reflagged,
        escalated=outcome.escalated,
        queue_entry_id=outcome.queue_entry_id,
    )


@app.post("/reports/{report_id}/validate")
def validate_report(
    report_id: int, body: ValidateReportRequest, services: Services = Depends(get_services)
) -> dict[str, Any]:
    validation = services.reports.validate_report(report_id, body.moderator_id, confirmed=body.confirmed)
    return {
        "report": validation.report.to_dict(),
        "reward": validation.reward.to_dict() if validation.reward else None,
    }


@app.get("/queue")
def list_queue(
    priority: Optional[QueuePriority] = Query(None, description="Only entries with this priority"),
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    """Open entries: high, medium, low; oldest first within a priority."""
    return [entry.to_dict() for entry in services.queue.list_queue(priority)]


@app.post("/queue/{listing_id}/approve")
def approve_listing(listing_id: int, body: ApproveRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    return services.queue.approve(listing_id, body.moderator_id, notes=body.notes).to_dict()


@app.post("/queue/{listing_id}/reject")
def reject_listing(listing_id: int, body: RejectRequest, services: Services = Depends(get_services)) -> dict[str, Any]:
    return services.queue.reject(listing_id, body.moderator_id, reason=body.reason).to_dict()


@app.post("/session", response_model=SessionResponseModel)
def session_keypress(body: SessionRequest, services: Services = Depends(get_services)) -> SessionResponseModel:
    """Start a menu session (no session_id) or apply one keypress to it."""
    if body.session_id:
        response = services.sessions.handle(body.session_id, body.input)
    else:
        if not (body.phone_number or "").strip():
            raise HTTPException(status_code=400, detail="phone_number is required to start a session")
        response = services.sessions.start(body.phone_number, kind=body.kind)
    return SessionResponseModel(**response.to_dict())
