"""
Intake channels: every channel produces the same immutable Submission.

Only the models are exported here; channel adapters (normalizer, session,
bulk) are imported from their modules since they depend on admission.
"""

from backend_listguard.intake.models import Channel, GeoPoint, ImageRef, Submission

__all__ = ["Channel", "GeoPoint", "ImageRef", "Submission"]
