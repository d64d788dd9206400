"""
Injected analysis capabilities for the moderation engine.

Each capability is a narrow interface so an external vision or language
service can replace the default implementation without touching the engine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from backend_listguard.intake.models import ImageRef
from backend_listguard.moderation.models import ImageAnalysis, TextAnalysis


class PriceHistoryLookup(ABC):
    """Source of comparable prices for the same category and unit."""

    @abstractmethod
    def comparable_prices(self, category: str, unit: str, since_ts: int) -> list[float]:
        ...


class ImageClassifier(ABC):
    """Judges whether images show a product consistent with its description."""

    @abstractmethod
    def classify(self, images: list[ImageRef], name: str, category: str, description: str | None) -> ImageAnalysis:
        ...


class TextAnalyzer(ABC):
    """Prohibited terms, character set and coarse sentiment of listing text."""

    @abstractmethod
    def analyze(self, name: str, description: str | None) -> TextAnalysis:
        ...
