"""
Channel-independent normalization: units, category inference, Submission
construction and validation.

Every intake channel (web form, text-menu session, messaging, CSV batch)
funnels its raw fields through build_submission so the admission pipeline
sees one shape.
"""

from __future__ import annotations

import math
from typing import Any, Iterable

from backend_listguard.core.exceptions import InvalidSubmission
from backend_listguard.intake.models import Channel, GeoPoint, ImageRef, Submission

UNIT_ALIASES: dict[str, str] = {
    "KILO": "kg",
    "KG": "kg",
    "LITA": "ltr",
    "L": "ltr",
    "PIECE": "piece",
    "PCS": "piece",
}

# First match wins, in this order.
CATEGORY_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("unga", "staples"),
    ("sukari", "staples"),
    ("mchele", "staples"),
    ("nyama", "meat"),
    ("samaki", "fish"),
    ("mboga", "vegetables"),
    ("matunda", "fruits"),
    ("maziwa", "dairy"),
)
DEFAULT_CATEGORY = "general"
DEFAULT_UNIT = "piece"
MIN_NAME_LENGTH = 2


def standardize_unit(unit: str | None) -> str:
    """KILO/KG -> kg, LITA/L -> ltr, PIECE/PCS -> piece, anything else lowercased."""
    raw = (unit or "").strip()
    if not raw:
        return DEFAULT_UNIT
    return UNIT_ALIASES.get(raw.upper(), raw.lower())


def infer_category(name: str) -> str:
    lowered = (name or "").lower()
    for keyword, category in CATEGORY_KEYWORDS:
        if keyword in lowered:
            return category
    return DEFAULT_CATEGORY


def parse_price(value: Any) -> float:
    """Accepts numbers or strings like '1,200' / '120.50'. Raises InvalidSubmission."""
    if isinstance(value, bool):
        raise InvalidSubmission("Price must be a number", field="price")
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        text = str(value or "").strip().replace(",", "")
        try:
            amount = float(text)
        except ValueError as e:
            raise InvalidSubmission(f"Price must be a number, got {value!r}", field="price") from e
    # float() accepts "nan" and "inf"
    if not math.isfinite(amount):
        raise InvalidSubmission(f"Price must be a number, got {value!r}", field="price")
    return amount


def _image_refs(images: Iterable[Any] | None) -> tuple[ImageRef, ...]:
    refs: list[ImageRef] = []
    for img in images or ():
        if isinstance(img, ImageRef):
            refs.append(img)
        elif isinstance(img, str):
            if img.strip():
                refs.append(ImageRef(url=img.strip()))
        elif isinstance(img, dict):
            url = str(img.get("url") or "").strip()
            if url:
                refs.append(
                    ImageRef(
                        url=url,
                        labels=tuple(str(label).lower() for label in img.get("labels") or ()),
                        quality=img.get("quality"),
                    )
                )
    return tuple(refs)


def _geo_point(location: Any) -> GeoPoint | None:
    if location is None or isinstance(location, GeoPoint):
        return location
    return GeoPoint(
        lat=float(location["lat"]),
        lng=float(location["lng"]),
        accuracy=float(location["accuracy"]) if location.get("accuracy") is not None else None,
    )


def build_submission(
    *,
    name: str,
    price: Any,
    submitter_id: str,
    unit: str | None = None,
    category: str | None = None,
    channel: Channel = Channel.WEB,
    description: str | None = None,
    images: Iterable[Any] | None = None,
    location: Any = None,
    cultural_tag: str | None = None,
) -> Submission:
    """
    Build a validated Submission.

    Unit is standardized; a blank category is inferred from the name.

    Raises:
        InvalidSubmission: name shorter than 2 characters, non-numeric or
            non-positive price, or missing submitter.
    """
    clean_name = (name or "").strip()
    if len(clean_name) < MIN_NAME_LENGTH:
        raise InvalidSubmission(f"Product name must be at least {MIN_NAME_LENGTH} characters", field="name")
    amount = parse_price(price)
    if amount <= 0:
        raise InvalidSubmission("Price must be greater than zero", field="price")
    if not (submitter_id or "").strip():
        raise InvalidSubmission("Submitter is required", field="submitter_id")

    clean_category = (category or "").strip().lower() or infer_category(clean_name)
    clean_description = (description or "").strip() or None
    tag = (cultural_tag or "").strip().lower() or None
    return Submission(
        name=clean_name,
        price=amount,
        unit=standardize_unit(unit),
        category=clean_category,
        submitter_id=submitter_id.strip(),
        channel=channel,
        description=clean_description,
        images=_image_refs(images),
        location=_geo_point(location),
        cultural_tag=tag,
    )


def normalize_messaging_payload(payload: dict[str, Any], submitter_id: str) -> Submission:
    """
    Messaging channel: {phone, images, fields: {name, price, unit, description}}.

    The caller resolves phone -> submitter_id. Unit defaults to piece.
    """
    fields = payload.get("fields") or {}
    return build_submission(
        name=fields.get("name") or "",
        price=fields.get("price"),
        unit=fields.get("unit") or DEFAULT_UNIT,
        category=fields.get("category"),
        description=fields.get("description"),
        images=payload.get("images") or (),
        submitter_id=submitter_id,
        channel=Channel.MESSAGING,
        location=payload.get("location"),
    )
