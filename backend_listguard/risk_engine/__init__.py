"""
Fraud risk engine: identity age, payment history, prior reports, upload
velocity, duplicate images, location, behavior and network signals fused into
a weighted risk score with explainable reasons.
"""

from backend_listguard.risk_engine.engine import RiskEngine, score_risk
from backend_listguard.risk_engine.models import RiskConfig, RiskLevel, RiskProfile, RiskVerdict
from backend_listguard.risk_engine.scorer import compute_risk_score, risk_level_for_score

__all__ = [
    "RiskConfig",
    "RiskEngine",
    "RiskLevel",
    "RiskProfile",
    "RiskVerdict",
    "compute_risk_score",
    "risk_level_for_score",
    "score_risk",
]
