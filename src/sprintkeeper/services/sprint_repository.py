"""
Sprint Repository
CRUD over sprint rows, first-commitment audit records and the notification log.

The repository never commits. It is always bound to a session whose
transaction is owned by the caller (see utils.db.TransactionRunner), so any
sequence of calls commits or rolls back as one unit.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlmodel import Session, select, col

from sprintkeeper.schema.base import utcnow
from sprintkeeper.schema.enums import DeliveryStatus, NotificationType, SprintKind, SprintStatus
from sprintkeeper.schema.sprint import NotificationLog, Sprint, SprintCommitment


class SprintRepository:
    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Sprints
    # ------------------------------------------------------------------

    def list_sprints(self, owner_id: str) -> List[Sprint]:
        """All sprints for an owner, ordered by sprint index."""
        query = select(Sprint).where(Sprint.owner_id == owner_id).order_by(Sprint.sprint_index)
        return list(self.session.exec(query).all())

    def get_sprint(self, sprint_id: UUID) -> Optional[Sprint]:
        return self.session.get(Sprint, sprint_id)

    def create_sprint(
        self,
        owner_id: str,
        sprint_index: int,
        start_at: datetime,
        end_at: datetime,
        kind: SprintKind,
        note: Optional[str],
        status: SprintStatus,
    ) -> Sprint:
        sprint = Sprint(
            owner_id=owner_id,
            sprint_index=sprint_index,
            start_at=start_at,
            end_at=end_at,
            kind=kind,
            note=note,
            status=status,
        )
        self.session.add(sprint)
        return sprint

    def update_status(self, sprint_id: UUID, status: SprintStatus) -> Sprint:
        sprint = self._require(sprint_id)
        sprint.status = status
        sprint.updated_at = utcnow()
        self.session.add(sprint)
        return sprint

    def update_kind_and_note(self, sprint_id: UUID, kind: SprintKind, note: Optional[str]) -> Sprint:
        sprint = self._require(sprint_id)
        sprint.kind = kind
        sprint.note = note
        sprint.updated_at = utcnow()
        self.session.add(sprint)
        return sprint

    def delete_sprint(self, sprint_id: UUID):
        """Delete a sprint together with its commitment records and delivery log entries."""
        dependants = list(self.session.exec(
            select(SprintCommitment).where(SprintCommitment.sprint_id == sprint_id)
        ).all())
        dependants += self.session.exec(
            select(NotificationLog).where(NotificationLog.sprint_id == sprint_id)
        ).all()
        for row in dependants:
            self.session.delete(row)
        # Dependants are flushed before the sprint so ON DELETE CASCADE has nothing left to remove.
        self.session.flush()
        sprint = self.session.get(Sprint, sprint_id)
        if sprint is not None:
            self.session.delete(sprint)

    def list_owner_ids(self) -> List[str]:
        query = select(Sprint.owner_id).distinct().order_by(Sprint.owner_id)
        return list(self.session.exec(query).all())

    # ------------------------------------------------------------------
    # Commitment audit trail
    # ------------------------------------------------------------------

    def record_first_commitment(
        self, owner_id: str, sprint_id: UUID, kind: SprintKind, note: Optional[str]
    ) -> SprintCommitment:
        record = SprintCommitment(owner_id=owner_id, sprint_id=sprint_id, kind=kind, note=note)
        self.session.add(record)
        return record

    def list_commitments(self, owner_id: str) -> List[SprintCommitment]:
        query = select(SprintCommitment).where(
            SprintCommitment.owner_id == owner_id
        ).order_by(col(SprintCommitment.created_at))
        return list(self.session.exec(query).all())

    def committed_sprint_ids(self, owner_id: str) -> set:
        """Sprint ids that already have a first-commitment record."""
        query = select(SprintCommitment.sprint_id).where(SprintCommitment.owner_id == owner_id)
        return set(self.session.exec(query).all())

    def flush(self):
        self.session.flush()

    def _require(self, sprint_id: UUID) -> Sprint:
        sprint = self.session.get(Sprint, sprint_id)
        if sprint is None:
            raise LookupError(f"Sprint {sprint_id} not found")
        return sprint

    def owner_exists(self, owner_id: str) -> bool:
        query = select(Sprint.id).where(Sprint.owner_id == owner_id).limit(1)
        return self.session.exec(query).first() is not None

    # ------------------------------------------------------------------
    # Notification log
    # ------------------------------------------------------------------

    def record_notification(
        self,
        owner_id: str,
        notification_type: NotificationType,
        payload: dict,
        status: DeliveryStatus,
        sprint_id: Optional[UUID] = None,
    ) -> NotificationLog:
        entry = NotificationLog(
            owner_id=owner_id,
            sprint_id=sprint_id,
            notification_type=notification_type,
            payload=payload,
            status=status,
        )
        self.session.add(entry)
        return entry

    def list_notifications(
        self, owner_id: str, notification_type: Optional[NotificationType] = None
    ) -> List[NotificationLog]:
        query = select(NotificationLog).where(NotificationLog.owner_id == owner_id)
        if notification_type is not None:
            query = query.where(NotificationLog.notification_type == notification_type)
        return list(self.session.exec(query.order_by(col(NotificationLog.created_at))).all())
