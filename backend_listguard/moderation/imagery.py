"""
Image analysis from upstream classifier labels.

Images arrive with labels attached by the upload service. A label from the
non-product set marks the image as not a product photo; descriptive labels
must overlap the listing text for the image to match its description.
Unlabelled images are accepted as product photos.
"""

from __future__ import annotations

import re

from backend_listguard.intake.models import ImageRef
from backend_listguard.moderation.capabilities import ImageClassifier
from backend_listguard.moderation.models import ImageAnalysis

NON_PRODUCT_LABELS = frozenset(
    {"person", "selfie", "face", "screenshot", "document", "text", "meme", "logo", "blank", "nsfw"}
)
GENERIC_LABELS = frozenset({"product", "item", "object", "food", "goods", "photo"})
DEFAULT_QUALITY = 0.8
NON_PRODUCT_QUALITY = 0.3

_WORD_RE = re.compile(r"[a-z0-9]+")


def _tokens(*parts: str | None) -> set[str]:
    text = " ".join(p for p in parts if p).lower()
    return set(_WORD_RE.findall(text))


class LabelImageClassifier(ImageClassifier):
    def classify(self, images: list[ImageRef], name: str, category: str, description: str | None) -> ImageAnalysis:
        if not images:
            raise ValueError("no images to classify")

        words = _tokens(name, category, description)
        is_product = True
        matches = True
        qualities: list[float] = []
        for image in images:
            labels = {label.strip().lower() for label in image.labels if label.strip()}
            image_is_product = not (labels & NON_PRODUCT_LABELS)
            descriptive = labels - NON_PRODUCT_LABELS - GENERIC_LABELS
            image_matches = not descriptive or bool(descriptive & words)

            is_product = is_product and image_is_product
            matches = matches and image_matches
            if image.quality is not None:
                qualities.append(max(0.0, min(1.0, image.quality)))
            else:
                qualities.append(DEFAULT_QUALITY if image_is_product else NON_PRODUCT_QUALITY)

        return ImageAnalysis(
            is_product_image=is_product,
            matches_description=matches,
            quality_score=sum(qualities) / len(qualities),
        )
