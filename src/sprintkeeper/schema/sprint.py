"""
Sprint tables.

One owner has many sprints, unique by sprint_index. A sprint has at most one
first-commitment audit record, which is deleted together with the sprint.
Every notification delivery attempt is kept in the notification log.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID
from sqlmodel import Field
from sqlalchemy import Column, DateTime, Index, JSON, UniqueConstraint

from .base import UUIDMixin, TimestampMixin, utcnow
from .enums import DeliveryStatus, NotificationType, SprintKind, SprintStatus


class Sprint(UUIDMixin, TimestampMixin, table=True):
    __tablename__ = "sprints"
    __table_args__ = (
        UniqueConstraint("owner_id", "sprint_index", name="uq_sprints_owner_index"),
        Index("ix_sprints_owner_status", "owner_id", "status"),
    )

    owner_id: str = Field(index=True)
    sprint_index: int

    start_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    end_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))

    kind: SprintKind = Field(default=SprintKind.UNCOMMITTED)
    note: Optional[str] = None

    status: SprintStatus = Field(index=True)


class SprintCommitment(UUIDMixin, table=True):
    """Append-only audit record of a sprint's first commitment."""
    __tablename__ = "sprint_commitments"

    owner_id: str = Field(index=True)
    sprint_id: UUID = Field(foreign_key="sprints.id", ondelete="CASCADE", unique=True)

    kind: SprintKind
    note: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class NotificationLog(UUIDMixin, table=True):
    """One row per notification delivery attempt, written after the triggering commit."""
    __tablename__ = "notification_logs"
    __table_args__ = (
        Index("ix_notification_logs_owner_type", "owner_id", "notification_type"),
    )

    owner_id: str = Field(index=True)
    # Null for notifications not tied to one sprint (dashboard completion)
    sprint_id: Optional[UUID] = Field(default=None, foreign_key="sprints.id", ondelete="CASCADE")

    notification_type: NotificationType
    payload: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    status: DeliveryStatus = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)
