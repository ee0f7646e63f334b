from enum import Enum

class SprintKind(str, Enum):
    """What an owner commits a sprint to."""
    BUILD = "build"
    TEST = "test"
    PTO = "pto"
    UNCOMMITTED = "uncommitted"

    @property
    def is_committed(self) -> bool:
        return self is not SprintKind.UNCOMMITTED

    @property
    def label(self) -> str:
        """Display label used in notification payloads."""
        return "PTO" if self is SprintKind.PTO else self.value.capitalize()

    @classmethod
    def parse(cls, value) -> "SprintKind":
        """
        Coerce user input into a SprintKind.
        None and blank strings mean "no commitment". Raises ValueError for anything else
        that is not a known kind.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.UNCOMMITTED
        text = str(value).strip().lower()
        if not text:
            return cls.UNCOMMITTED
        return cls(text)


class SprintStatus(str, Enum):
    """Lifecycle position relative to the clock. Written only by the lifecycle engine."""
    HISTORIC = "historic"
    CURRENT = "current"
    FUTURE = "future"


class ChangeType(str, Enum):
    """How a commitment edit differs from the stored sprint."""
    NONE = "none"
    NEW_COMMITMENT = "new_commitment"
    TYPE_CHANGE = "type_change"
    DESCRIPTION_CHANGE = "description_change"
    REMOVAL = "removal"


class ValidationRule(str, Enum):
    PTO_MAXIMUM_EXCEEDED = "PTO_MAXIMUM_EXCEEDED"
    BUILD_MINIMUM_NOT_MET = "BUILD_MINIMUM_NOT_MET"
    BUILD_MISSING_DESCRIPTION = "BUILD_MISSING_DESCRIPTION"
    INVALID_COMMITMENT_TYPE = "INVALID_COMMITMENT_TYPE"
    MISSING_SPRINT_DATA = "MISSING_SPRINT_DATA"
    SPRINT_NOT_EDITABLE = "SPRINT_NOT_EDITABLE"
    DUPLICATE_SPRINT_EDIT = "DUPLICATE_SPRINT_EDIT"

    # Warnings
    UNCOMMITTED_SPRINTS = "UNCOMMITTED_SPRINTS"
    WORKLOAD_IMBALANCE = "WORKLOAD_IMBALANCE"


class NotificationType(str, Enum):
    NEW_COMMITMENT = "new_commitment"
    DASHBOARD_COMPLETION = "dashboard_completion"


class DeliveryStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
