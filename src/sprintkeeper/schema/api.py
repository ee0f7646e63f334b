from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Union
from uuid import UUID
from datetime import datetime

from .base import utcnow
from .enums import SprintKind, SprintStatus, ChangeType, DeliveryStatus, NotificationType


class SprintInfo(BaseModel):
    """Computed boundaries and status of one sprint index."""
    index: int
    start_at: datetime
    end_at: datetime
    status: SprintStatus


class CommitmentEntry(BaseModel):
    """
    One sprint as the validator sees it.
    `kind` stays a raw string or enum so malformed kinds can be reported instead of rejected.
    """
    sprint_index: int
    kind: Union[SprintKind, str, None] = SprintKind.UNCOMMITTED
    note: Optional[str] = None
    status: SprintStatus
    sprint_id: Optional[UUID] = None


class CommitmentEdit(BaseModel):
    """A requested change to a sprint's kind and note."""
    sprint_id: UUID
    kind: Union[SprintKind, str, None] = None
    note: Optional[str] = None


class ValidationIssue(BaseModel):
    rule: str
    message: str
    count: Optional[int] = None
    sprint_indices: List[int] = []


class ValidationResult(BaseModel):
    valid: bool
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []


class WindowSummary(BaseModel):
    build_count: int
    test_count: int
    pto_count: int
    uncommitted_count: int
    valid: bool
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []


class SprintSummary(WindowSummary):
    """Dashboard statistics for an owner's active planning window."""
    current_index: int
    days_remaining_in_current: int


class ReconcileResult(BaseModel):
    owner_id: str
    transitioned: bool
    writes: int
    created: int = 0
    relabeled: int = 0
    deleted: int = 0
    current_index: int


class OwnerReconcileOutcome(BaseModel):
    owner_id: str
    success: bool
    result: Optional[ReconcileResult] = None
    error_type: Optional[str] = None
    error: Optional[str] = None


class BatchReconcileReport(BaseModel):
    current_index: int
    owners_processed: int
    total_writes: int
    outcomes: List[OwnerReconcileOutcome] = []

    @property
    def failures(self) -> List[OwnerReconcileOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    @property
    def ok(self) -> bool:
        return not self.failures


class SprintView(BaseModel):
    id: UUID
    sprint_index: int
    start_at: datetime
    end_at: datetime
    kind: SprintKind
    note: Optional[str] = None
    status: SprintStatus


class CommitmentRecordView(BaseModel):
    sprint_id: UUID
    kind: SprintKind
    note: Optional[str] = None
    created_at: datetime


class Dashboard(BaseModel):
    owner_id: str
    historic: List[SprintView] = []
    current: Optional[SprintView] = None
    future: List[SprintView] = []
    summary: SprintSummary
    commitments: List[CommitmentRecordView] = []


class CommitmentChange(BaseModel):
    sprint_id: UUID
    sprint_index: int
    previous_kind: SprintKind
    previous_note: Optional[str] = None
    new_kind: SprintKind
    new_note: Optional[str] = None
    change_type: ChangeType

    @property
    def is_new_commitment(self) -> bool:
        return self.change_type == ChangeType.NEW_COMMITMENT


class NewCommitmentPayload(BaseModel):
    """Notification contract for a first commitment. Transport is someone else's job."""
    user_name: str
    sprint_start_date: str
    sprint_type: str
    description: Optional[str] = None
    dashboard_url: str
    timestamp: datetime = Field(default_factory=utcnow)


class DashboardCompletionPayload(BaseModel):
    """Sent once an owner has finished filling in their sprint dashboard."""
    user_name: str
    dashboard_url: str
    completion_timestamp: datetime = Field(default_factory=utcnow)


class DashboardCompletionResult(BaseModel):
    owner_id: str
    delivered: bool
    payload: DashboardCompletionPayload


class NotificationLogView(BaseModel):
    id: UUID
    sprint_id: Optional[UUID] = None
    notification_type: NotificationType
    payload: Dict[str, Any] = {}
    status: DeliveryStatus
    created_at: datetime


class CommitmentUpdateResult(BaseModel):
    owner_id: str
    changes: List[CommitmentChange] = []
    new_commitments: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    summary: SprintSummary

    @property
    def has_changes(self) -> bool:
        return any(change.change_type != ChangeType.NONE for change in self.changes)
