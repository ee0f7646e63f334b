"""
Commitment update path.

Applies an owner's batch of kind/note edits behind the rolling-window
validator. The batch is all-or-nothing: one broken rule rejects every edit.
The first time a sprint moves from uncommitted to a committed kind, one audit
record is appended and a notification payload is produced for it. Every
delivery attempt, including dashboard completion, lands in the notification log.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from pydantic import BaseModel

from sprintkeeper.config import settings
from sprintkeeper.core.exceptions import OwnerNotFoundError, SprintKeeperError, ValidationError
from sprintkeeper.core.logging import get_logger
from sprintkeeper.schema.api import (
    CommitmentChange,
    CommitmentEdit,
    CommitmentUpdateResult,
    DashboardCompletionResult,
    NotificationLogView,
)
from sprintkeeper.schema.enums import ChangeType, DeliveryStatus, NotificationType, SprintKind
from sprintkeeper.schema.sprint import Sprint
from sprintkeeper.services.lifecycle_engine import SprintLifecycleEngine
from sprintkeeper.services.notifications import (
    CommitmentNotifier,
    LoggingNotifier,
    build_dashboard_completion_payload,
    build_new_commitment_payload,
)
from sprintkeeper.services.sprint_repository import SprintRepository

logger = get_logger(__name__)


@dataclass
class Delivery:
    notification_type: NotificationType
    payload: Dict[str, Any]
    status: DeliveryStatus
    sprint_id: Optional[UUID] = None


def _clean_note(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    note = note.strip()
    return note or None


def classify_change(sprint: Sprint, edit: CommitmentEdit) -> CommitmentChange:
    """Compare a stored sprint with the requested edit."""
    new_kind = SprintKind.parse(edit.kind)
    new_note = _clean_note(edit.note)
    old_kind = SprintKind.parse(sprint.kind)
    old_note = sprint.note

    if not old_kind.is_committed and new_kind.is_committed:
        change_type = ChangeType.NEW_COMMITMENT
    elif old_kind.is_committed and not new_kind.is_committed:
        change_type = ChangeType.REMOVAL
    elif old_kind != new_kind:
        change_type = ChangeType.TYPE_CHANGE
    elif old_note != new_note:
        change_type = ChangeType.DESCRIPTION_CHANGE
    else:
        change_type = ChangeType.NONE

    return CommitmentChange(
        sprint_id=sprint.id,
        sprint_index=sprint.sprint_index,
        previous_kind=old_kind,
        previous_note=old_note,
        new_kind=new_kind,
        new_note=new_note,
        change_type=change_type,
    )


class CommitmentService:
    def __init__(
        self,
        engine: SprintLifecycleEngine,
        notifier: Optional[CommitmentNotifier] = None,
        dashboard_base_url: Optional[str] = None,
    ):
        self.engine = engine
        self.notifier = notifier or LoggingNotifier()
        self.dashboard_base_url = dashboard_base_url or settings.dashboard_base_url

    def apply(
        self, owner_id: str, edits: Sequence[CommitmentEdit], user_name: Optional[str] = None
    ) -> CommitmentUpdateResult:
        """
        Validate and apply `edits` atomically.

        Raises:
            ValidationError: the batch breaks a window rule; nothing was written.
        """
        owner_id = self.engine.require_owner(owner_id)
        # Statuses must be fresh before deciding which sprints are editable.
        self.engine.reconcile(owner_id)

        changes, first_commitments = self.engine.runner.run(
            lambda repo: self._apply_in_transaction(repo, owner_id, edits),
            label=f"commitments:{owner_id}",
        )

        sent, failed = self._notify(owner_id, user_name or owner_id, first_commitments)

        logger.info(
            "commitments_applied",
            owner_id=owner_id,
            changed=sum(1 for change in changes if change.change_type != ChangeType.NONE),
            new_commitments=len(first_commitments),
            notifications_sent=sent,
            notifications_failed=failed,
        )
        return CommitmentUpdateResult(
            owner_id=owner_id,
            changes=changes,
            new_commitments=len(first_commitments),
            notifications_sent=sent,
            notifications_failed=failed,
            summary=self.engine.summarize(owner_id),
        )

    def _apply_in_transaction(
        self, repo: SprintRepository, owner_id: str, edits: Sequence[CommitmentEdit]
    ) -> Tuple[List[CommitmentChange], List[Tuple[CommitmentChange, datetime]]]:
        rows = repo.list_sprints(owner_id)
        result = self.engine.validate_edits(rows, edits)
        if not result.valid:
            logger.info("commitment_batch_rejected", owner_id=owner_id, rules=[e.rule for e in result.errors])
            raise ValidationError(result.errors, owner_id=owner_id)

        by_id = {row.id: row for row in rows}
        already_recorded = repo.committed_sprint_ids(owner_id)
        changes: List[CommitmentChange] = []
        first_commitments: List[Tuple[CommitmentChange, datetime]] = []

        for edit in edits:
            sprint = by_id[edit.sprint_id]
            change = classify_change(sprint, edit)
            changes.append(change)
            if change.change_type == ChangeType.NONE:
                continue

            repo.update_kind_and_note(sprint.id, change.new_kind, change.new_note)

            if change.is_new_commitment and sprint.id not in already_recorded:
                repo.record_first_commitment(owner_id, sprint.id, change.new_kind, change.new_note)
                already_recorded.add(sprint.id)
                first_commitments.append((change, sprint.start_at))

        return changes, first_commitments

    def _notify(
        self, owner_id: str, user_name: str, first_commitments: List[Tuple[CommitmentChange, datetime]]
    ) -> Tuple[int, int]:
        """Hand one payload per first commitment to the notifier. Failures never undo the commit."""
        deliveries: List[Delivery] = []
        for change, start_at in first_commitments:
            payload = build_new_commitment_payload(
                user_name=user_name,
                sprint_start=start_at,
                kind=change.new_kind,
                note=change.new_note,
                dashboard_url=self.dashboard_base_url,
            )
            deliveries.append(self._deliver(
                owner_id,
                NotificationType.NEW_COMMITMENT,
                self.notifier.notify_new_commitment,
                payload,
                sprint_id=change.sprint_id,
            ))

        self._record_deliveries(owner_id, deliveries)
        sent = sum(1 for delivery in deliveries if delivery.status == DeliveryStatus.SUCCESS)
        return sent, len(deliveries) - sent

    def complete_dashboard(self, owner_id: str, user_name: Optional[str] = None) -> DashboardCompletionResult:
        """
        Announce that an owner has finished filling in their dashboard.

        The outcome is written to the notification log either way; a failed
        delivery is reported in the result, not raised.

        Raises:
            OwnerNotFoundError: the owner has no sprints.
        """
        owner_id = self.engine.require_owner(owner_id)
        if not self.engine.runner.read(lambda repo: repo.owner_exists(owner_id)):
            raise OwnerNotFoundError(owner_id)

        payload = build_dashboard_completion_payload(
            user_name=user_name or owner_id,
            dashboard_url=self.dashboard_base_url,
            completed_at=self.engine.clock.now(),
        )
        delivery = self._deliver(
            owner_id,
            NotificationType.DASHBOARD_COMPLETION,
            self.notifier.notify_dashboard_completion,
            payload,
        )
        self._record_deliveries(owner_id, [delivery])

        delivered = delivery.status == DeliveryStatus.SUCCESS
        logger.info("dashboard_completed", owner_id=owner_id, delivered=delivered)
        return DashboardCompletionResult(owner_id=owner_id, delivered=delivered, payload=payload)

    def notification_log(self, owner_id: str) -> List[NotificationLogView]:
        owner_id = self.engine.require_owner(owner_id)

        def load(repo: SprintRepository):
            return [
                NotificationLogView(
                    id=entry.id,
                    sprint_id=entry.sprint_id,
                    notification_type=entry.notification_type,
                    payload=entry.payload,
                    status=entry.status,
                    created_at=entry.created_at,
                )
                for entry in repo.list_notifications(owner_id)
            ]

        return self.engine.runner.read(load)

    @staticmethod
    def _deliver(
        owner_id: str,
        notification_type: NotificationType,
        send: Callable[[BaseModel], bool],
        payload: BaseModel,
        sprint_id: Optional[UUID] = None,
    ) -> Delivery:
        try:
            delivered = send(payload)
        except Exception as e:
            logger.warning(
                "notification_delivery_failed",
                owner_id=owner_id,
                notification_type=notification_type.value,
                error=str(e),
            )
            return Delivery(notification_type, {"error": str(e)}, DeliveryStatus.FAILED, sprint_id)

        status = DeliveryStatus.SUCCESS if delivered else DeliveryStatus.FAILED
        return Delivery(notification_type, payload.model_dump(mode="json"), status, sprint_id)

    def _record_deliveries(self, owner_id: str, deliveries: List[Delivery]):
        """Runs after the triggering commit. A log write that fails is reported, never raised."""
        if not deliveries:
            return

        def work(repo: SprintRepository):
            for delivery in deliveries:
                repo.record_notification(
                    owner_id,
                    delivery.notification_type,
                    delivery.payload,
                    delivery.status,
                    sprint_id=delivery.sprint_id,
                )

        try:
            self.engine.runner.run(work, label=f"notification_log:{owner_id}")
        except SprintKeeperError as e:
            logger.error(
                "notification_log_write_failed",
                owner_id=owner_id,
                entries=len(deliveries),
                error_type=type(e).__name__,
                error=str(e),
            )
