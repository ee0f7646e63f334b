from .base import UUIDMixin, TimestampMixin, utcnow
from .enums import SprintKind, SprintStatus, ChangeType, ValidationRule, NotificationType, DeliveryStatus
from .sprint import Sprint, SprintCommitment, NotificationLog
from .api import (
    SprintInfo, CommitmentEntry, CommitmentEdit, ValidationIssue, ValidationResult,
    WindowSummary, SprintSummary, ReconcileResult, OwnerReconcileOutcome, BatchReconcileReport,
    SprintView, CommitmentRecordView, Dashboard, CommitmentChange, NewCommitmentPayload,
    DashboardCompletionPayload, DashboardCompletionResult, NotificationLogView,
    CommitmentUpdateResult,
)

__all__ = [
    "UUIDMixin", "TimestampMixin", "utcnow",
    "SprintKind", "SprintStatus", "ChangeType", "ValidationRule", "NotificationType", "DeliveryStatus",
    "Sprint", "SprintCommitment", "NotificationLog",
    "SprintInfo", "CommitmentEntry", "CommitmentEdit", "ValidationIssue", "ValidationResult",
    "WindowSummary", "SprintSummary", "ReconcileResult", "OwnerReconcileOutcome", "BatchReconcileReport",
    "SprintView", "CommitmentRecordView", "Dashboard", "CommitmentChange", "NewCommitmentPayload",
    "DashboardCompletionPayload", "DashboardCompletionResult", "NotificationLogView",
    "CommitmentUpdateResult",
]
