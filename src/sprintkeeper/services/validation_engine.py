"""
Rolling-Window Validator
Checks an owner's commitments across the active planning window.

The window is the current sprint plus the future sprints, ordered by index and
capped at the window size. Rules:
- at most `max_pto` PTO sprints
- at least `min_build` Build sprints
- every Build sprint carries a non-empty note
- every kind is one of build/test/pto/uncommitted
Test sprints are unconstrained. Warnings never change `valid`.

The validator is pure: it never raises on well-formed entries, and reports
every broken rule as its own ValidationIssue.
"""
from typing import Dict, Iterable, List, Optional

from sprintkeeper.config import settings
from sprintkeeper.core.exceptions import ConfigurationError
from sprintkeeper.schema.api import CommitmentEntry, ValidationIssue, ValidationResult, WindowSummary
from sprintkeeper.schema.enums import SprintKind, SprintStatus, ValidationRule

MAX_WINDOW_SIZE = 24
ACTIVE_STATUSES = (SprintStatus.CURRENT, SprintStatus.FUTURE)


def _require_int(name: str, value, minimum: int, maximum: Optional[int] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f"between {minimum} and {maximum}" if maximum is not None else f">= {minimum}"
        raise ConfigurationError(f"{name} must be {bounds}, got {value}")
    return value


def _kind_of(entry: CommitmentEntry) -> Optional[SprintKind]:
    """The entry's kind, or None when it is not a recognised kind."""
    try:
        return SprintKind.parse(entry.kind)
    except ValueError:
        return None


class RollingWindowValidator:
    def __init__(
        self,
        window_size: Optional[int] = None,
        max_pto: Optional[int] = None,
        min_build: Optional[int] = None,
    ):
        self.window_size = _require_int(
            "window_size",
            settings.rolling_window_size if window_size is None else window_size,
            1,
            MAX_WINDOW_SIZE,
        )
        self.max_pto = _require_int("max_pto", settings.max_pto_sprints if max_pto is None else max_pto, 0)
        self.min_build = _require_int("min_build", settings.min_build_sprints if min_build is None else min_build, 0)

    def window(self, entries: Iterable[CommitmentEntry]) -> List[CommitmentEntry]:
        """Current and future entries ordered by index, capped at the window size."""
        active = [entry for entry in entries if entry.status in ACTIVE_STATUSES]
        active.sort(key=lambda entry: entry.sprint_index)
        return active[: self.window_size]

    def validate(self, entries: Iterable[CommitmentEntry]) -> ValidationResult:
        window = self.window(entries)
        errors: List[ValidationIssue] = []

        counts = self._count(window)

        pto_count = counts[SprintKind.PTO]
        if pto_count > self.max_pto:
            errors.append(ValidationIssue(
                rule=ValidationRule.PTO_MAXIMUM_EXCEEDED.value,
                message=(
                    f"Maximum {self.max_pto} PTO sprints allowed per {len(window)}-sprint window. "
                    f"Found {pto_count} PTO commitments."
                ),
                count=pto_count,
            ))

        build_count = counts[SprintKind.BUILD]
        if build_count < self.min_build:
            errors.append(ValidationIssue(
                rule=ValidationRule.BUILD_MINIMUM_NOT_MET.value,
                message=(
                    f"Minimum {self.min_build} Build sprints required per {len(window)}-sprint window. "
                    f"Found {build_count} Build commitments."
                ),
                count=build_count,
            ))

        undescribed = [
            entry.sprint_index for entry in window
            if _kind_of(entry) is SprintKind.BUILD and not (entry.note or "").strip()
        ]
        if undescribed:
            errors.append(ValidationIssue(
                rule=ValidationRule.BUILD_MISSING_DESCRIPTION.value,
                message=(
                    f"All Build sprints require a description. "
                    f"{len(undescribed)} Build sprint(s) missing descriptions."
                ),
                count=len(undescribed),
                sprint_indices=undescribed,
            ))

        malformed = [entry.sprint_index for entry in window if _kind_of(entry) is None]
        if malformed:
            errors.append(ValidationIssue(
                rule=ValidationRule.INVALID_COMMITMENT_TYPE.value,
                message="Invalid commitment types found. Valid types are: Build, Test, PTO, or uncommitted.",
                count=len(malformed),
                sprint_indices=malformed,
            ))

        return ValidationResult(
            valid=not errors,
            errors=errors,
            warnings=self._warnings(window, counts),
        )

    def summarize(self, entries: Iterable[CommitmentEntry]) -> WindowSummary:
        """Per-kind counts of the window plus the validation outcome."""
        entries = list(entries)
        counts = self._count(self.window(entries))
        result = self.validate(entries)
        return WindowSummary(
            build_count=counts[SprintKind.BUILD],
            test_count=counts[SprintKind.TEST],
            pto_count=counts[SprintKind.PTO],
            uncommitted_count=counts[SprintKind.UNCOMMITTED],
            valid=result.valid,
            errors=result.errors,
            warnings=result.warnings,
        )

    @staticmethod
    def _count(window: List[CommitmentEntry]) -> Dict[SprintKind, int]:
        counts = {kind: 0 for kind in SprintKind}
        for entry in window:
            kind = _kind_of(entry)
            if kind is not None:
                counts[kind] += 1
        return counts

    @staticmethod
    def _warnings(window: List[CommitmentEntry], counts: Dict[SprintKind, int]) -> List[ValidationIssue]:
        warnings: List[ValidationIssue] = []

        uncommitted = [
            entry.sprint_index for entry in window
            if entry.status == SprintStatus.FUTURE and _kind_of(entry) is SprintKind.UNCOMMITTED
        ]
        if uncommitted:
            warnings.append(ValidationIssue(
                rule=ValidationRule.UNCOMMITTED_SPRINTS.value,
                message=f"{len(uncommitted)} future sprint(s) remain uncommitted.",
                count=len(uncommitted),
                sprint_indices=uncommitted,
            ))

        if counts[SprintKind.BUILD] > counts[SprintKind.TEST] + counts[SprintKind.PTO]:
            warnings.append(ValidationIssue(
                rule=ValidationRule.WORKLOAD_IMBALANCE.value,
                message="Consider balancing Build sprints with Test or PTO sprints for sustainable workload.",
            ))

        return warnings
