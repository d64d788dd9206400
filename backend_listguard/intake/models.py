"""
Normalized submission produced by every intake channel.

A Submission is immutable once built; the admission pipeline and both
scoring engines read it concurrently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Channel(str, Enum):
    WEB = "web"
    SESSION = "session"
    MESSAGING = "messaging"
    BATCH = "batch"


@dataclass(frozen=True)
class ImageRef:
    """
    Reference to an uploaded image.

    labels are classifier tags attached upstream (e.g. by the upload service);
    quality is an optional 0-1 score from the same source.
    """

    url: str
    labels: tuple[str, ...] = ()
    quality: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "labels": list(self.labels), "quality": self.quality}


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float
    accuracy: float | None = None
    """Reported GPS accuracy in meters; None if unknown."""

    def to_dict(self) -> dict[str, Any]:
        return {"lat": self.lat, "lng": self.lng, "accuracy": self.accuracy}


@dataclass(frozen=True)
class Submission:
    """A proposed listing as handed to admit()."""

    name: str
    price: float
    unit: str
    category: str
    submitter_id: str
    channel: Channel = Channel.WEB
    description: str | None = None
    images: tuple[ImageRef, ...] = field(default_factory=tuple)
    location: GeoPoint | None = None
    cultural_tag: str | None = None

    @property
    def image_urls(self) -> list[str]:
        return [img.url for img in self.images]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "price": self.price,
            "unit": self.unit,
            "category": self.category,
            "submitter_id": self.submitter_id,
            "channel": self.channel.value,
            "description": self.description,
            "images": [img.to_dict() for img in self.images],
            "location": self.location.to_dict() if self.location else None,
            "cultural_tag": self.cultural_tag,
        }
