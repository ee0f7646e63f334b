"""
Error taxonomy for SprintKeeper.

- ValidationError: user-correctable, itemized, never retried.
- TransientRepositoryError: timeouts and write conflicts, retried by the
  transaction runner and only raised once retries are exhausted.
- IntegrityViolation: a reconciliation post-condition failed. Not retried.
- ConfigurationError: bad settings or arguments at a boundary. Fails fast.
- OwnerNotFoundError: the owner has no stored sprints yet.
"""
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from sprintkeeper.schema.api import ValidationIssue


class SprintKeeperError(Exception):
    """Base class for all SprintKeeper errors."""


class ConfigurationError(SprintKeeperError):
    pass


class ValidationError(SprintKeeperError):
    """Raised when a commitment batch breaks one or more window rules."""

    def __init__(self, issues: List["ValidationIssue"], owner_id: Optional[str] = None):
        self.issues = list(issues)
        self.owner_id = owner_id
        self.rule = self.issues[0].rule if self.issues else None
        message = "; ".join(f"{issue.rule}: {issue.message}" for issue in self.issues)
        super().__init__(message or "Commitment validation failed")


class TransientRepositoryError(SprintKeeperError):
    """Retriable repository failure (timeout, serialization conflict, lost connection)."""

    def __init__(self, message: str, attempts: int = 1):
        self.attempts = attempts
        super().__init__(message)


class IntegrityViolation(SprintKeeperError):
    """Stored sprint state broke an invariant the lifecycle engine guarantees."""

    def __init__(self, message: str, owner_id: Optional[str] = None, violations: Optional[List[str]] = None):
        self.owner_id = owner_id
        self.violations = violations or [message]
        super().__init__(message)


class OwnerNotFoundError(SprintKeeperError):
    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"Owner {owner_id} has no sprints")
