"""No-show policy, status evaluation and disputes."""

from .auto_detection import AutoDetectionReport, AutoNoShowDetectionService
from .disputes import (
    DisputeConflictError,
    DisputeListing,
    DisputeNotAllowedError,
    DisputeService,
    DisputeSubmission,
    DisputeValidationError,
    NoShowRecordNotFoundError,
)
from .policy import (
    NoShowPolicy,
    NoShowPolicyService,
    POLICY_FIELD_COLUMNS,
    PolicyValidationError,
    default_policy,
)
from .service import (
    CustomerNoShowStatus,
    CustomerNotFoundError,
    NoShowService,
    ShopNoShowAnalytics,
    evaluate_overall_status,
    evaluate_status,
    tier_for_count,
)

__all__ = [
    "AutoDetectionReport",
    "AutoNoShowDetectionService",
    "CustomerNoShowStatus",
    "CustomerNotFoundError",
    "DisputeConflictError",
    "DisputeListing",
    "DisputeNotAllowedError",
    "DisputeService",
    "DisputeSubmission",
    "DisputeValidationError",
    "NoShowPolicy",
    "NoShowPolicyService",
    "NoShowRecordNotFoundError",
    "NoShowService",
    "POLICY_FIELD_COLUMNS",
    "PolicyValidationError",
    "ShopNoShowAnalytics",
    "default_policy",
    "evaluate_overall_status",
    "evaluate_status",
    "tier_for_count",
]
