"""
Notification payload contracts.

Two notifications exist: one per first commitment of a sprint, and one when an
owner finishes their dashboard. Delivery (webhooks, chat, email) lives outside
this package. A notifier only has to accept the payload and say whether it was
delivered; the outcome of every attempt goes to the notification log.
"""
from datetime import datetime
from typing import List, Optional, Protocol

from sprintkeeper.core.logging import get_logger
from sprintkeeper.schema.api import DashboardCompletionPayload, NewCommitmentPayload
from sprintkeeper.schema.enums import SprintKind
from sprintkeeper.utils.clock import as_utc

logger = get_logger(__name__)


class CommitmentNotifier(Protocol):
    def notify_new_commitment(self, payload: NewCommitmentPayload) -> bool:
        ...

    def notify_dashboard_completion(self, payload: DashboardCompletionPayload) -> bool:
        ...


def build_new_commitment_payload(
    user_name: str,
    sprint_start: datetime,
    kind: SprintKind,
    note: Optional[str],
    dashboard_url: str,
) -> NewCommitmentPayload:
    return NewCommitmentPayload(
        user_name=user_name,
        sprint_start_date=as_utc(sprint_start).date().isoformat(),
        sprint_type=SprintKind.parse(kind).label,
        description=note,
        dashboard_url=dashboard_url,
    )


def build_dashboard_completion_payload(
    user_name: str, dashboard_url: str, completed_at: Optional[datetime] = None
) -> DashboardCompletionPayload:
    if completed_at is None:
        return DashboardCompletionPayload(user_name=user_name, dashboard_url=dashboard_url)
    return DashboardCompletionPayload(
        user_name=user_name,
        dashboard_url=dashboard_url,
        completion_timestamp=as_utc(completed_at),
    )


class LoggingNotifier:
    """Default notifier: records the payload in the log and reports success."""

    def notify_new_commitment(self, payload: NewCommitmentPayload) -> bool:
        logger.info(
            "new_commitment_notification",
            user_name=payload.user_name,
            sprint_start_date=payload.sprint_start_date,
            sprint_type=payload.sprint_type,
        )
        return True

    def notify_dashboard_completion(self, payload: DashboardCompletionPayload) -> bool:
        logger.info(
            "dashboard_completion_notification",
            user_name=payload.user_name,
            completion_timestamp=payload.completion_timestamp.isoformat(),
        )
        return True


class CollectingNotifier:
    """Keeps payloads in memory, for callers that batch deliveries themselves."""

    def __init__(self):
        self.payloads: List[NewCommitmentPayload] = []
        self.completions: List[DashboardCompletionPayload] = []

    def notify_new_commitment(self, payload: NewCommitmentPayload) -> bool:
        self.payloads.append(payload)
        return True

    def notify_dashboard_completion(self, payload: DashboardCompletionPayload) -> bool:
        self.completions.append(payload)
        return True
