"""
Admission state machine: account policy + risk + moderation -> listing status.
"""

from backend_listguard.admission.models import (
    AdmissionConfig,
    AdmissionResult,
    ListingStatus,
    UploadPolicy,
)
from backend_listguard.admission.policy import ROLE_DEFINITIONS, PolicyProvider, RoleDefinition
from backend_listguard.admission.state_machine import AdmissionPipeline, estimate_review_minutes

__all__ = [
    "ROLE_DEFINITIONS",
    "AdmissionConfig",
    "AdmissionPipeline",
    "AdmissionResult",
    "ListingStatus",
    "PolicyProvider",
    "RoleDefinition",
    "UploadPolicy",
    "estimate_review_minutes",
]
