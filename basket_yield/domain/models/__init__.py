"""
Domain Models Package
Export all domain entities
"""

from .basket import BASIS_POINTS, BasketAsset, BasketDefinition, RiskTier
from .events import AuditEvent, AuditEventType
from .processing import CycleResult, CycleStatus, ProcessingStatus
from .recommendation import Recommendation
from .rebalance import (
    RebalanceDecision,
    RebalanceReason,
    RebalanceStatus,
    SwapResult,
    UserAccount,
)
from .yields import AssetContribution, AssetYieldSample, BasketYieldSnapshot, PricePoint

__all__ = [
    # Enums
    "AuditEventType",
    "CycleStatus",
    "RebalanceReason",
    "RebalanceStatus",
    "RiskTier",

    # Entities
    "AssetContribution",
    "AssetYieldSample",
    "AuditEvent",
    "BasketAsset",
    "BasketDefinition",
    "BasketYieldSnapshot",
    "CycleResult",
    "PricePoint",
    "ProcessingStatus",
    "Recommendation",
    "RebalanceDecision",
    "SwapResult",
    "UserAccount",

    "BASIS_POINTS",
]
