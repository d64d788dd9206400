"""
Keyword text analysis for listing name and description.

Terms cover Swahili and English. Matching is case-folded and anchored at a
word start, so "drugs" matches "drug" but "hardrug" does not.
"""

from __future__ import annotations

import re

from backend_listguard.moderation.capabilities import TextAnalyzer
from backend_listguard.moderation.models import TextAnalysis

PROHIBITED_TERMS = (
    "haramu",
    "bangi",
    "ulevi",
    "rushwa",
    "ujambazi",
    "prohibited",
    "illegal",
    "drug",
    "weapon",
    "alcohol",
)
POSITIVE_TERMS = ("fresh", "quality", "best", "mzuri", "nzuri", "bora")
NEGATIVE_TERMS = ("bad", "poor", "fake", "mbaya", "vibaya")

# Latin letters, digits, whitespace, common punctuation and accented vowels
ALLOWED_TEXT_RE = re.compile(r"^[a-zA-Z0-9\s\-.,!?'()/:%&áéíóúÁÉÍÓÚ]+$")


def _find_terms(text: str, terms: tuple[str, ...]) -> list[str]:
    return [t for t in terms if re.search(rf"\b{re.escape(t)}", text)]


class KeywordTextAnalyzer(TextAnalyzer):
    def __init__(
        self,
        prohibited_terms: tuple[str, ...] = PROHIBITED_TERMS,
        positive_terms: tuple[str, ...] = POSITIVE_TERMS,
        negative_terms: tuple[str, ...] = NEGATIVE_TERMS,
    ) -> None:
        self._prohibited = tuple(t.casefold() for t in prohibited_terms)
        self._positive = tuple(t.casefold() for t in positive_terms)
        self._negative = tuple(t.casefold() for t in negative_terms)

    def analyze(self, name: str, description: str | None) -> TextAnalysis:
        text = f"{name} {description or ''}".strip().casefold()
        return TextAnalysis(
            prohibited_terms=_find_terms(text, self._prohibited),
            language_compliant=bool(ALLOWED_TEXT_RE.match(text)),
            sentiment_score=len(_find_terms(text, self._positive)) - len(_find_terms(text, self._negative)),
        )
