"""
Text-menu session channel (feature-phone menus).

One request per keypress: handle(session_id, input) loads the session,
dispatches on its current step, persists the new step and returns the next
screen. Sessions are stored, so any API worker can serve the next keypress.

Rules:
- submission sessions time out after 5 minutes, admin sessions after 10;
  every keypress pushes the deadline forward;
- at most one active session per phone number (enforced by a unique index);
- the captcha allows 3 attempts, then the session is terminated;
- confirming hands exactly one Submission to the admission callback. The
  session is closed with a conditional update first, so a repeated confirm
  cannot submit twice.
"""

from __future__ import annotations

import random
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Sequence

from backend_listguard.admission.models import AdmissionResult, ListingStatus
from backend_listguard.core.exceptions import InvalidSubmission, ListguardError, SessionError
from backend_listguard.database import Database, IntakeSessionRecord
from backend_listguard.intake.models import Channel, Submission
from backend_listguard.intake.normalizer import build_submission, parse_price, standardize_unit
from backend_listguard.listguard_logging import get_logger

logger = get_logger(__name__)

SUBMISSION_SESSION_TIMEOUT_SEC = 5 * 60
ADMIN_SESSION_TIMEOUT_SEC = 10 * 60
MAX_CAPTCHA_ATTEMPTS = 3
MAX_SESSION_PRICE = 100_000.0
ADMIN_ROLES = ("admin", "moderator")

MAIN_MENU = "Karibu Savannah!\n1. Add Product\n2. My Products\n3. Help\n0. Exit"
ADD_PRODUCT_MENU = "Add Product:\n1. New Product\n2. Bulk via WhatsApp\n0. Back"
NAME_PROMPT = "Jina la bidhaa (mfano: UNGA PEMBE):"
PRICE_PROMPT = "Bei ya bidhaa (KSh, mfano: 120):"
UNIT_PROMPT = "Kipimo:\n1. Kilo (kg)\n2. Lita (L)\n3. Kipande\n4. Kingine"
CUSTOM_UNIT_PROMPT = "Andika kipimo chako (mfano: mzigo, sanduku):"
PHOTO_PROMPT = "Picha ya bidhaa:\n1. Tuma kwa WhatsApp baadaye\n2. Bila picha\n0. Rudi"
HELP_TEXT = (
    "Msaada wa Savannah:\n\n"
    "Vipimo:\n- Kilo (kg) - mazao\n- Lita (L) - majimaji\n- Kipande - vitu vingine\n\n"
    "0. Rudi mwanzo"
)
BULK_HINT = "Tuma picha za bidhaa kwa WhatsApp na ujumbe ukieleza bidhaa.\n0. Rudi"
ADMIN_MENU = "SAVANNAH ADMIN\n1. Review queue\n0. Exit\n\nSelect:"
NOT_REGISTERED = "Namba hii haijasajiliwa. Jisajili kwanza."
UNAUTHORIZED = "Samahani, huna ruhusa za kiongozi. Unauthorized access."
SESSION_EXPIRED = "Muda wa kikao umekwisha. Anza upya."
CAPTCHA_FAILED = "Samahani, majibu si sahihi. Jaribu tena baadaye."
CANCELLED = "Bidhaa imeghairiwa.\n\nAsante kwa kutumia Savannah!"
SUBMIT_FAILED = "Samahani, kuongeza bidhaa kumeshindikana. Jaribu tena."

UNIT_CHOICES = {"1": "kg", "2": "ltr", "3": "piece"}
STATUS_TEXT = {
    ListingStatus.APPROVED: "Imeidhinishwa",
    ListingStatus.PENDING: "Inasubiri uhakiki",
    ListingStatus.REJECTED: "Imekataliwa",
}


class SessionKind(str, Enum):
    SUBMISSION = "submission"
    ADMIN = "admin"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TERMINATED = "terminated"
    EXPIRED = "expired"


class Step(str, Enum):
    MAIN_MENU = "main_menu"
    ADD_PRODUCT_MENU = "add_product_menu"
    PRODUCT_NAME = "product_name"
    PRODUCT_PRICE = "product_price"
    PRODUCT_UNIT = "product_unit"
    CUSTOM_UNIT = "custom_unit"
    PRODUCT_PHOTO = "product_photo"
    CAPTCHA = "captcha"
    CONFIRM = "confirm"
    ADMIN_MENU = "admin_menu"


@dataclass(frozen=True)
class Captcha:
    """Multiple-choice question; answer is the 1-based option the user types."""

    question: str
    answer: str


CULTURAL_CAPTCHAS: tuple[Captcha, ...] = (
    Captcha("Miguu mingapi ina dik-dik?\n1. Minne\n2. Mitatu\n3. Miwili\n4. Moja", "1"),
    Captcha(
        "Mti gani ni muhimu sana kwa Wamaasai?\n1. Mti wa Nazi\n2. Mti wa Baobab\n3. Mti wa Acacia\n4. Mti wa Mango",
        "3",
    ),
    Captcha("Mlima mrefu zaidi Kenya ni upi?\n1. Mt. Elgon\n2. Mt. Kenya\n3. Aberdare\n4. Kilimanjaro", "2"),
    Captcha("Neno 'Asante' ni lugha gani?\n1. Kikuyu\n2. Luo\n3. Kiswahili\n4. Kalenjin", "3"),
)


@dataclass
class SessionConfig:
    submission_timeout_sec: int = SUBMISSION_SESSION_TIMEOUT_SEC
    admin_timeout_sec: int = ADMIN_SESSION_TIMEOUT_SEC
    max_captcha_attempts: int = MAX_CAPTCHA_ATTEMPTS
    max_price: float = MAX_SESSION_PRICE
    admin_roles: tuple[str, ...] = ADMIN_ROLES

    def timeout_for(self, kind: SessionKind) -> int:
        return self.admin_timeout_sec if kind == SessionKind.ADMIN else self.submission_timeout_sec


@dataclass
class SessionResponse:
    """One screen. action is "continue" (await input) or "end" (session closed)."""

    message: str
    action: str = "continue"
    session_id: str | None = None
    step: str | None = None
    admission: AdmissionResult | None = None

    @property
    def ended(self) -> bool:
        return self.action == "end"

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "message": self.message,
            "action": self.action,
            "step": self.step,
            "admission": self.admission.to_dict() if self.admission else None,
        }


def _continue(message: str) -> SessionResponse:
    return SessionResponse(message=message)


def _end(message: str) -> SessionResponse:
    return SessionResponse(message=message, action="end")


class SessionHandler:
    """
    Drives the menu protocol over the intake_sessions table.

    on_submit receives the confirmed Submission and returns the admission
    result (normally AdmissionPipeline.admit with the account's policy).
    """

    def __init__(
        self,
        db: Database,
        on_submit: Callable[[Submission], AdmissionResult],
        config: SessionConfig | None = None,
        *,
        captchas: Sequence[Captcha] = CULTURAL_CAPTCHAS,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._on_submit = on_submit
        self._config = config or SessionConfig()
        self._captchas = tuple(captchas)
        self._rng = rng or random.Random()
        self._clock = clock

    def start(self, phone_number: str, *, kind: SessionKind = SessionKind.SUBMISSION) -> SessionResponse:
        """
        Open a session for phone_number.

        Raises:
            SessionError: a live session already exists for this phone.
        """
        phone = (phone_number or "").strip()
        account = self._db.get_account_by_phone(phone) if phone else None
        if account is None:
            logger.info("intake_session_unregistered", kind=kind.value, phone=phone)
            return _end(NOT_REGISTERED)
        if kind == SessionKind.ADMIN and account.role not in self._config.admin_roles:
            logger.warning("intake_session_unauthorized", account_id=account.id, role=account.role)
            return _end(UNAUTHORIZED)

        now = int(self._clock())
        step = Step.ADMIN_MENU if kind == SessionKind.ADMIN else Step.MAIN_MENU
        record = IntakeSessionRecord(
            session_id=f"sess_{uuid.uuid4().hex}",
            phone_number=phone,
            kind=kind.value,
            step=step.value,
            status=SessionStatus.ACTIVE.value,
            created_at=now,
            expires_at=now + self._config.timeout_for(kind),
            data={"account_id": account.id},
        )
        self._db.create_intake_session(record)
        logger.info("intake_session_started", session_id=record.session_id, kind=kind.value, account_id=account.id)
        return self._screen(record, _continue(ADMIN_MENU if kind == SessionKind.ADMIN else MAIN_MENU))

    def handle(self, session_id: str, user_input: str) -> SessionResponse:
        """
        Apply one keypress.

        Raises:
            SessionError: unknown session, or a session that is no longer active.
        """
        record = self._db.get_intake_session(session_id)
        if record is None:
            raise SessionError(f"Unknown session {session_id}")
        if record.status != SessionStatus.ACTIVE.value:
            raise SessionError("Session is no longer active", status=record.status)

        now = int(self._clock())
        if now > record.expires_at:
            self._db.finish_intake_session(session_id, SessionStatus.EXPIRED.value)
            logger.info("intake_session_expired", session_id=session_id, step=record.step)
            return self._screen(record, _end(SESSION_EXPIRED))

        text = (user_input or "").strip()
        handler = self._handlers()[Step(record.step)]
        response = handler(record, text)
        if not response.ended:
            record.expires_at = now + self._config.timeout_for(SessionKind(record.kind))
            self._db.save_intake_session(record)
        return self._screen(record, response)

    def _handlers(self) -> dict[Step, Callable[[IntakeSessionRecord, str], SessionResponse]]:
        return {
            Step.MAIN_MENU: self._main_menu,
            Step.ADD_PRODUCT_MENU: self._add_product_menu,
            Step.PRODUCT_NAME: self._product_name,
            Step.PRODUCT_PRICE: self._product_price,
            Step.PRODUCT_UNIT: self._product_unit,
            Step.CUSTOM_UNIT: self._custom_unit,
            Step.PRODUCT_PHOTO: self._product_photo,
            Step.CAPTCHA: self._captcha,
            Step.CONFIRM: self._confirm,
            Step.ADMIN_MENU: self._admin_menu_input,
        }

    @staticmethod
    def _screen(record: IntakeSessionRecord, response: SessionResponse) -> SessionResponse:
        response.session_id = record.session_id
        response.step = record.step
        return response

    def _close(self, record: IntakeSessionRecord, status: SessionStatus) -> bool:
        closed = self._db.finish_intake_session(record.session_id, status.value)
        record.status = status.value
        logger.info("intake_session_closed", session_id=record.session_id, status=status.value, step=record.step)
        return closed

    # --- submission menus ---

    def _main_menu(self, record: IntakeSessionRecord, text: str) -> SessionResponse:
        if text == "1":
            record.step = Step.ADD_PRODUCT_MENU.value
            return _continue(ADD_PRODUCT_MENU)
        if text == "2":
            return _continue(self._my_products(record.data["account_id"]))
        if text == "3":
            return _continue(HELP_TEXT)
        if text == "0":
            self._close(record, SessionStatus.CANCELLED)
            return _end("Asante kwa kutumia Savannah!")
        return _continue(MAIN_MENU)

    def _my_products(self, account_id: str) -> str:
        listings = self._db.list_listings_by_submitter(account_id, limit=5)
        if not listings:
            return "Huna bidhaa zozote bado.\n\n" + MAIN_MENU
        lines = ["Bidhaa zako za hivi karibuni:", ""]
        for idx, listing in enumerate(listings, start=1):
            lines.append(f"{idx}. {listing.name} - {listing.price:g} KSh ({listing.status})")
        return "\n".join(lines) + "\n\n" + MAIN_MENU

    def _add_product_menu(self, record: IntakeSessionRecord, text: str) -> SessionResponse:
        if text == "1":
            record.step = Step.PRODUCT_NAME.value
            record.data = {"account_id": record.data["account_id"]}
            return _continue(NAME_PROMPT)
        if text == "2":
            return _continue(BULK_HINT)
        if text == "0":
            record.step = Step.MAIN_MENU.value
            return _continue(MAIN_MENU)
        return _continue(ADD_PRODUCT_MENU)

    def _product_name(self, record: IntakeSessionRecord, text: str) -> SessionResponse:
        if len(text) < 2:
            return _continue("Jina halifai. Andika jina la bidhaa (angalau herufi 2):")
        record.data["name"] = text.upper()
        record.step = Step.PRODUCT_PRICE.value
        return _continue(PRICE_PROMPT)

    def _product_price(self, record: IntakeSessionRecord, text: str) -> SessionResponse:
        try:
            price = parse_price(text)
        except InvalidSubmission:
            price = 0.0
        if price <= 0:
            return _continue("Bei si sahihi. Andika bei kwa KSh (mfano: 120):")
        if price > self._config.max_price:
            return _continue(f"Bei ni kubwa mno. Kiwango cha juu ni {self._config.max_price:,.0f} KSh:")
        record.data["price"] = price
        record.step = Step.PRODUCT_UNIT.value
        return _continue(UNIT_PROMPT)

    def _product_unit(self, record: IntakeSessionRecord, text: str) -> SessionResponse:
        if text == "4":
            record.step = Step.CUSTOM_UNIT.value
            return _continue(CUSTOM_UNIT_PROMPT)
        unit = UNIT_CHOICES.get(text)
        if unit is None:
            return _continue("Chaguo si sahihi. Chagua kipimo:\n1. Kilo\n2. Lita\n3. Kipande\n4. Kingine")
        record.data["unit"] = unit
        record.step = Step.PRODUCT_PHOTO.value
        return _continue(PHOTO_PROMPT)

    def _custom_unit(self, record: IntakeSessionRecord, text: str) -> SessionResponse:
        if not text:
            return _continue(CUSTOM_UNIT_PROMPT)
        record.data["unit"] = standardize_unit(text)
        record.step = Step.PRODUCT_PHOTO.value
        return _continue(PHOTO_PROMPT)

    def _product_photo(self, record: IntakeSessionRecord, text: str) -> SessionResponse:
        if text == "0":
            record.step = Step.PRODUCT_UNIT.value
            return _continue(UNIT_PROMPT)
        if text not in ("1", "2"):
            return _continue("Chaguo si sahihi. " + PHOTO_PROMPT)
        record.data["photo_later"] = text == "1"

        captcha = self._rng.choice(self._captchas)
        record.data["captcha_question"] = captcha.question
        record.captcha_answer = captcha.answer
        record.captcha_attempts = 0
        record.step = Step.CAPTCHA.value
        return _continue(f"Jibu swali hili:\n\n{captcha.question}\n\nChagua jibu:")

    def _captcha(self, record: IntakeSessionRecord, text: str) -> SessionResponse:
        if text == record.captcha_answer:
            record.step = Step.CONFIRM.value
            return _continue(self._confirmation(record))

        record.captcha_attempts += 1
        limit = self._config.max_captcha_attempts
        if record.captcha_attempts >= limit:
            self._db.save_intake_session(record)
            self._close(record, SessionStatus.TERMINATED)
            logger.warning(
                "intake_captcha_failed",
                session_id=record.session_id,
                account_id=record.data.get("account_id"),
                attempts=record.captcha_attempts,
            )
            return _end(CAPTCHA_FAILED)
        question = record.data.get("captcha_question", "")
        return _continue(f"Jibu si sahihi. Jaribu tena ({record.captcha_attempts}/{limit}):\n\n{question}")

    @staticmethod
    def _confirmation(record: IntakeSessionRecord) -> str:
        data = record.data
        return (
            "Hakiki bidhaa:\n\n"
            f"Jina: {data['name']}\n"
            f"Bei: {data['price']:g} KSh\n"
            f"Kipimo: {data['unit']}\n\n"
            "1. Thibitisha\n2. Hariri\n3. Ghairi"
        )

    def _confirm(self, record: IntakeSessionRecord, text: str) -> SessionResponse:
        if text == "2":
            record.step = Step.PRODUCT_NAME.value
            record.data = {"account_id": record.data["account_id"]}
            return _continue(NAME_PROMPT)
        if text == "3":
            self._close(record, SessionStatus.CANCELLED)
            return _end(CANCELLED)
        if text != "1":
            return _continue(self._confirmation(record))

        data = record.data
        submission = build_submission(
            name=data["name"],
            price=data["price"],
            unit=data["unit"],
            submitter_id=data["account_id"],
            channel=Channel.SESSION,
        )
        if not self._close(record, SessionStatus.COMPLETED):
            raise SessionError("Session is no longer active")

        try:
            result = self._on_submit(submission)
        except ListguardError as e:
            logger.warning("intake_session_submit_failed", session_id=record.session_id, error=e.message)
            return _end(SUBMIT_FAILED)

        logger.info(
            "intake_session_submitted",
            session_id=record.session_id,
            listing_id=result.listing_id,
            status=result.status.value,
        )
        return SessionResponse(message=self._receipt(submission, result), action="end", admission=result)

    @staticmethod
    def _receipt(submission: Submission, result: AdmissionResult) -> str:
        if result.status == ListingStatus.REJECTED:
            return f"Bidhaa haikukubaliwa.\n\n{result.reason or SUBMIT_FAILED}"
        ref = f"SAV{result.listing_id:06d}" if result.listing_id is not None else "-"
        return (
            "Bidhaa imepokewa!\n\n"
            f"{submission.name} - {submission.price:g} KSh/{submission.unit}\n\n"
            f"Hali: {STATUS_TEXT[result.status]}\n"
            f"Kumbuka: {ref}"
        )

    # --- admin menu ---

    def _admin_menu_input(self, record: IntakeSessionRecord, text: str) -> SessionResponse:
        if text == "0":
            self._close(record, SessionStatus.COMPLETED)
            return _end("Admin session ended. Asante!")
        if text == "1":
            entries = self._db.list_open_queue(limit=500)
            counts = {"high": 0, "medium": 0, "low": 0}
            for entry in entries:
                counts[entry.priority] = counts.get(entry.priority, 0) + 1
            lines = [
                f"REVIEW QUEUE ({len(entries)} open)",
                f"High: {counts['high']}  Medium: {counts['medium']}  Low: {counts['low']}",
                "",
            ]
            for entry in entries[:5]:
                lines.append(f"#{entry.listing_id} [{entry.priority}] {len(entry.reports)} reports")
            return _continue("\n".join(lines) + "\n\n" + ADMIN_MENU)
        return _continue("Invalid selection.\n\n" + ADMIN_MENU)
