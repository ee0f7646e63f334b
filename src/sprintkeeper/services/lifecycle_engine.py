"""
Sprint Lifecycle Engine
Keeps every owner's stored sprints in step with the clock.

Each owner should always have:
- up to `historic_retention` historic sprints (never below index 0)
- exactly one current sprint
- exactly `future_count` future sprints

`reconcile` compares stored rows with what the calendar says for `now` and
applies the minimum set of writes (create missing, relabel drifted statuses,
prune historic overflow) in a single transaction. When nothing has drifted it
writes nothing, so it is safe to call on every read path. It does not assume
the clock moved by exactly one cycle since the last call; a stale owner is
caught up in one pass.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sprintkeeper.config import settings
from sprintkeeper.core.exceptions import ConfigurationError, IntegrityViolation
from sprintkeeper.core.logging import get_logger, bind_owner, clear_owner
from sprintkeeper.schema.api import (
    BatchReconcileReport,
    CommitmentEdit,
    CommitmentEntry,
    CommitmentRecordView,
    Dashboard,
    OwnerReconcileOutcome,
    ReconcileResult,
    SprintInfo,
    SprintSummary,
    SprintView,
    ValidationIssue,
    ValidationResult,
)
from sprintkeeper.schema.enums import SprintKind, SprintStatus, ValidationRule
from sprintkeeper.schema.sprint import Sprint
from sprintkeeper.services.sprint_calendar import SprintCalendar
from sprintkeeper.services.sprint_repository import SprintRepository
from sprintkeeper.services.validation_engine import RollingWindowValidator
from sprintkeeper.utils.clock import Clock, SystemClock
from sprintkeeper.utils.db import TransactionRunner
from sprintkeeper.utils.locks import OwnerLocks

logger = get_logger(__name__)


@dataclass
class StatusChange:
    sprint_id: UUID
    sprint_index: int
    old_status: SprintStatus
    new_status: SprintStatus


@dataclass
class ReconciliationPlan:
    owner_id: str
    now: datetime
    current_index: int
    missing: List[SprintInfo] = field(default_factory=list)
    status_drift: List[StatusChange] = field(default_factory=list)
    overflow_historic: List[Sprint] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return len(self.missing) + len(self.status_drift) + len(self.overflow_historic)

    @property
    def is_empty(self) -> bool:
        return self.writes == 0


def entry_for(sprint: Sprint) -> CommitmentEntry:
    return CommitmentEntry(
        sprint_index=sprint.sprint_index,
        kind=sprint.kind,
        note=sprint.note,
        status=sprint.status,
        sprint_id=sprint.id,
    )


def view_for(sprint: Sprint) -> SprintView:
    return SprintView(
        id=sprint.id,
        sprint_index=sprint.sprint_index,
        start_at=sprint.start_at,
        end_at=sprint.end_at,
        kind=sprint.kind,
        note=sprint.note,
        status=sprint.status,
    )


class SprintLifecycleEngine:
    def __init__(
        self,
        runner: Optional[TransactionRunner] = None,
        calendar: Optional[SprintCalendar] = None,
        clock: Optional[Clock] = None,
        validator: Optional[RollingWindowValidator] = None,
        future_count: Optional[int] = None,
        historic_retention: Optional[int] = None,
        locks: Optional[OwnerLocks] = None,
    ):
        self.runner = runner or TransactionRunner()
        self.calendar = calendar or SprintCalendar.from_settings()
        self.clock = clock or SystemClock()
        self.validator = validator or RollingWindowValidator()
        self.future_count = settings.future_sprint_count if future_count is None else future_count
        self.historic_retention = (
            settings.historic_retention if historic_retention is None else historic_retention
        )
        self.locks = locks or OwnerLocks()

        if isinstance(self.future_count, bool) or not isinstance(self.future_count, int) or self.future_count < 1:
            raise ConfigurationError(f"future_count must be a positive integer, got {self.future_count!r}")
        if (
            isinstance(self.historic_retention, bool)
            or not isinstance(self.historic_retention, int)
            or self.historic_retention < 0
        ):
            raise ConfigurationError(
                f"historic_retention must be a non-negative integer, got {self.historic_retention!r}"
            )

    # ------------------------------------------------------------------
    # Planning (pure)
    # ------------------------------------------------------------------

    def plan(self, owner_id: str, rows: Sequence[Sprint], now: datetime) -> ReconciliationPlan:
        """Work needed to bring `rows` in line with `now`. Touches nothing."""
        calendar = self.calendar
        current = calendar.sprint_index_for(now)
        plan = ReconciliationPlan(owner_id=owner_id, now=now, current_index=current)

        stored = {row.sprint_index for row in rows}
        wanted = calendar.wanted_indices(now, self.historic_retention, self.future_count)
        missing = [index for index in wanted if index not in stored]

        # Retention applies to the historic set as it will look after creation.
        historic_rows = sorted(
            (row for row in rows if row.sprint_index < current), key=lambda row: row.sprint_index
        )
        # Rows stored before the anchor (negative index) are never kept as history.
        below_zero = {row.sprint_index for row in historic_rows if row.sprint_index < 0}
        historic_after = sorted(
            [row.sprint_index for row in historic_rows if row.sprint_index >= 0]
            + [index for index in missing if index < current]
        )
        overflow = len(historic_after) - self.historic_retention
        pruned = below_zero | (set(historic_after[:overflow]) if overflow > 0 else set())

        plan.missing = [calendar.sprint_info(index, now) for index in missing if index not in pruned]
        plan.overflow_historic = [row for row in historic_rows if row.sprint_index in pruned]

        for row in rows:
            if row.sprint_index in pruned:
                continue
            expected = calendar.status_of(row.sprint_index, now)
            if row.status != expected:
                plan.status_drift.append(StatusChange(
                    sprint_id=row.id,
                    sprint_index=row.sprint_index,
                    old_status=row.status,
                    new_status=expected,
                ))

        return plan

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self, owner_id: str) -> ReconcileResult:
        return self._reconcile(self.require_owner(owner_id), self.clock.now())

    def reconcile_all(self, owner_ids: Optional[Iterable[str]] = None) -> BatchReconcileReport:
        """
        Reconcile every owner against the same instant.
        A failing owner is logged and reported; it never stops the others.
        """
        now = self.clock.now()
        current = self.calendar.sprint_index_for(now)
        if owner_ids is None:
            owner_ids = self.runner.read(lambda repo: repo.list_owner_ids())

        logger.info("batch_reconcile_started", current_index=current)
        outcomes: List[OwnerReconcileOutcome] = []
        total_writes = 0

        for owner_id in owner_ids:
            try:
                result = self._reconcile(self.require_owner(owner_id), now)
            except Exception as e:
                logger.error(
                    "owner_reconcile_failed",
                    owner_id=owner_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                outcomes.append(OwnerReconcileOutcome(
                    owner_id=str(owner_id),
                    success=False,
                    error_type=type(e).__name__,
                    error=str(e),
                ))
                continue
            total_writes += result.writes
            outcomes.append(OwnerReconcileOutcome(owner_id=owner_id, success=True, result=result))

        report = BatchReconcileReport(
            current_index=current,
            owners_processed=len(outcomes),
            total_writes=total_writes,
            outcomes=outcomes,
        )
        logger.info(
            "batch_reconcile_completed",
            current_index=current,
            owners_processed=report.owners_processed,
            failures=len(report.failures),
            total_writes=total_writes,
        )
        return report

    def _reconcile(self, owner_id: str, now: datetime) -> ReconcileResult:
        bind_owner(owner_id)
        try:
            with self.locks.hold(owner_id):
                return self.runner.run(
                    lambda repo: self._reconcile_in_transaction(repo, owner_id, now),
                    label=f"reconcile:{owner_id}",
                )
        finally:
            clear_owner()

    def _reconcile_in_transaction(self, repo: SprintRepository, owner_id: str, now: datetime) -> ReconcileResult:
        plan = self.plan(owner_id, repo.list_sprints(owner_id), now)

        if plan.is_empty:
            logger.debug("no_transition_needed", current_index=plan.current_index)
            return ReconcileResult(
                owner_id=owner_id,
                transitioned=False,
                writes=0,
                current_index=plan.current_index,
            )

        for info in plan.missing:
            repo.create_sprint(
                owner_id=owner_id,
                sprint_index=info.index,
                start_at=info.start_at,
                end_at=info.end_at,
                kind=SprintKind.UNCOMMITTED,
                note=None,
                status=info.status,
            )
        for change in plan.status_drift:
            repo.update_status(change.sprint_id, change.new_status)
        for row in plan.overflow_historic:
            repo.delete_sprint(row.id)

        repo.flush()
        self._verify(repo, owner_id, now)

        logger.info(
            "sprints_reconciled",
            current_index=plan.current_index,
            created=len(plan.missing),
            relabeled=len(plan.status_drift),
            deleted=len(plan.overflow_historic),
        )
        return ReconcileResult(
            owner_id=owner_id,
            transitioned=True,
            writes=plan.writes,
            created=len(plan.missing),
            relabeled=len(plan.status_drift),
            deleted=len(plan.overflow_historic),
            current_index=plan.current_index,
        )

    def _verify(self, repo: SprintRepository, owner_id: str, now: datetime):
        """Post-conditions of a reconciliation. Raising here rolls the transaction back."""
        rows = repo.list_sprints(owner_id)
        current = self.calendar.sprint_index_for(now)
        violations: List[str] = []

        indices = [row.sprint_index for row in rows]
        duplicates = sorted({index for index in indices if indices.count(index) > 1})
        if duplicates:
            violations.append(f"duplicate sprint indices {duplicates}")

        current_rows = [row for row in rows if row.status == SprintStatus.CURRENT]
        if len(current_rows) != 1 or current_rows[0].sprint_index != current:
            found = [row.sprint_index for row in current_rows]
            violations.append(f"expected exactly one current sprint at index {current}, found {found}")

        future_rows = [row for row in rows if row.status == SprintStatus.FUTURE]
        if len(future_rows) != self.future_count:
            violations.append(f"expected {self.future_count} future sprints, found {len(future_rows)}")

        historic_rows = [row for row in rows if row.status == SprintStatus.HISTORIC]
        if len(historic_rows) > self.historic_retention:
            violations.append(
                f"expected at most {self.historic_retention} historic sprints, found {len(historic_rows)}"
            )
        below_zero = sorted(row.sprint_index for row in historic_rows if row.sprint_index < 0)
        if below_zero:
            violations.append(f"historic sprints below index 0 {below_zero}")

        drifted = [row.sprint_index for row in rows if row.status != self.calendar.status_of(row.sprint_index, now)]
        if drifted:
            violations.append(f"status still drifted for indices {drifted}")

        sprint_ids = {row.id for row in rows}
        orphaned = [record.id for record in repo.list_commitments(owner_id) if record.sprint_id not in sprint_ids]
        if orphaned:
            violations.append(f"{len(orphaned)} orphaned commitment record(s)")

        if violations:
            logger.error("reconcile_postcondition_failed", current_index=current, violations=violations)
            raise IntegrityViolation(
                f"Reconciliation for owner {owner_id} broke invariants: " + "; ".join(violations),
                owner_id=owner_id,
                violations=violations,
            )

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    def summarize(self, owner_id: str) -> SprintSummary:
        owner_id = self.require_owner(owner_id)
        now = self.clock.now()
        self._reconcile(owner_id, now)

        entries = self.runner.read(lambda repo: [entry_for(row) for row in repo.list_sprints(owner_id)])
        return self._summary(entries, now)

    def validate_batch(self, owner_id: str, edits: Sequence[CommitmentEdit]) -> ValidationResult:
        """Validate `edits` as if applied on top of the owner's stored sprints. Writes nothing beyond reconciliation."""
        owner_id = self.require_owner(owner_id)
        self._reconcile(owner_id, self.clock.now())
        return self.runner.read(lambda repo: self.validate_edits(repo.list_sprints(owner_id), edits))

    def dashboard(self, owner_id: str) -> Dashboard:
        owner_id = self.require_owner(owner_id)
        now = self.clock.now()
        self._reconcile(owner_id, now)

        def load(repo: SprintRepository):
            rows = repo.list_sprints(owner_id)
            records = [
                CommitmentRecordView(
                    sprint_id=record.sprint_id,
                    kind=record.kind,
                    note=record.note,
                    created_at=record.created_at,
                )
                for record in repo.list_commitments(owner_id)
            ]
            return [view_for(row) for row in rows], [entry_for(row) for row in rows], records

        views, entries, records = self.runner.read(load)
        current = [view for view in views if view.status == SprintStatus.CURRENT]
        return Dashboard(
            owner_id=owner_id,
            historic=[view for view in views if view.status == SprintStatus.HISTORIC],
            current=current[0] if current else None,
            future=[view for view in views if view.status == SprintStatus.FUTURE],
            summary=self._summary(entries, now),
            commitments=records,
        )

    def validate_edits(self, rows: Sequence[Sprint], edits: Sequence[CommitmentEdit]) -> ValidationResult:
        """Overlay `edits` on `rows` and run the window rules over the result."""
        by_id = {row.id: row for row in rows}
        entries = {row.id: entry_for(row) for row in rows}
        unknown: List[str] = []
        locked: List[int] = []
        seen = set()
        repeated: List[UUID] = []

        for edit in edits:
            if edit.sprint_id in seen:
                if edit.sprint_id not in repeated:
                    repeated.append(edit.sprint_id)
                continue
            seen.add(edit.sprint_id)
            row = by_id.get(edit.sprint_id)
            if row is None:
                unknown.append(str(edit.sprint_id))
                continue
            if row.status == SprintStatus.HISTORIC:
                locked.append(row.sprint_index)
                continue
            entries[row.id] = CommitmentEntry(
                sprint_index=row.sprint_index,
                kind=SprintKind.UNCOMMITTED if edit.kind is None else edit.kind,
                note=edit.note,
                status=row.status,
                sprint_id=row.id,
            )

        edit_errors: List[ValidationIssue] = []
        if unknown:
            edit_errors.append(ValidationIssue(
                rule=ValidationRule.MISSING_SPRINT_DATA.value,
                message=f"Unknown sprint id(s) for this owner: {', '.join(unknown)}",
                count=len(unknown),
            ))
        if locked:
            edit_errors.append(ValidationIssue(
                rule=ValidationRule.SPRINT_NOT_EDITABLE.value,
                message="Historic sprints cannot be changed.",
                count=len(locked),
                sprint_indices=sorted(locked),
            ))
        if repeated:
            edit_errors.append(ValidationIssue(
                rule=ValidationRule.DUPLICATE_SPRINT_EDIT.value,
                message="Each sprint may be edited at most once per batch.",
                count=len(repeated),
                sprint_indices=sorted(by_id[sprint_id].sprint_index for sprint_id in repeated if sprint_id in by_id),
            ))

        result = self.validator.validate(entries.values())
        errors = edit_errors + self._malformed_outside_window(result.errors, edits, by_id)
        return ValidationResult(
            valid=result.valid and not errors,
            errors=errors + result.errors,
            warnings=result.warnings,
        )

    @staticmethod
    def _malformed_outside_window(window_errors, edits, by_id) -> List[ValidationIssue]:
        """
        Edits with an unknown kind that fell outside the validator's window.
        Every edit must carry a well-formed kind, windowed or not.
        """
        reported = set()
        for issue in window_errors:
            if issue.rule == ValidationRule.INVALID_COMMITMENT_TYPE.value:
                reported.update(issue.sprint_indices)

        unreported = []
        for edit in edits:
            row = by_id.get(edit.sprint_id)
            if row is None or row.status == SprintStatus.HISTORIC:
                continue
            try:
                SprintKind.parse(edit.kind)
            except ValueError:
                if row.sprint_index not in reported:
                    unreported.append(row.sprint_index)

        if not unreported:
            return []
        return [ValidationIssue(
            rule=ValidationRule.INVALID_COMMITMENT_TYPE.value,
            message="Invalid commitment types found. Valid types are: Build, Test, PTO, or uncommitted.",
            count=len(unreported),
            sprint_indices=sorted(unreported),
        )]

    def _summary(self, entries: List[CommitmentEntry], now: datetime) -> SprintSummary:
        window = self.validator.summarize(entries)
        return SprintSummary(
            **window.model_dump(),
            current_index=self.calendar.sprint_index_for(now),
            days_remaining_in_current=self.calendar.days_remaining(now),
        )

    @staticmethod
    def require_owner(owner_id) -> str:
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise ConfigurationError(f"A non-empty owner id is required, got {owner_id!r}")
        return owner_id
