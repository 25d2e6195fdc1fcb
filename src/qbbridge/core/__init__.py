"""Core module - Shared types, configuration and reconciliation rules."""

from qbbridge.core.config import BridgeConfig
from qbbridge.core.reconciliation import (
    DEFAULT_DETECTION_CONFIG,
    DEFAULT_RESOLUTION_POLICY,
    DetectionConfig,
    DuplicateCheck,
    PulledTransaction,
    Resolution,
    ResolutionPolicy,
    check_for_duplicate,
    determine_resolution,
    string_similarity,
)
from qbbridge.core.types import (
    AuthStatus,
    OperationKind,
    OperationStatus,
    QBTxnType,
    SessionState,
)

__all__ = [
    # Config
    "BridgeConfig",
    # Reconciliation
    "DEFAULT_DETECTION_CONFIG",
    "DEFAULT_RESOLUTION_POLICY",
    "DetectionConfig",
    "DuplicateCheck",
    "PulledTransaction",
    "Resolution",
    "ResolutionPolicy",
    "check_for_duplicate",
    "determine_resolution",
    "string_similarity",
    # Types
    "AuthStatus",
    "OperationKind",
    "OperationStatus",
    "QBTxnType",
    "SessionState",
]
