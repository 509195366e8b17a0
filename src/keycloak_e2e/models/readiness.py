"""
Readiness barrier models.

These types describe one wait barrier: what is being waited on, what a single
poll observed, and how the barrier resolved.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from keycloak_e2e.constants import CONDITION_FALSE, CONDITION_TRUE, CONDITION_UNKNOWN


class ConditionStatus(Enum):
    """Tri-state condition status as reported by the Kubernetes API."""

    TRUE = CONDITION_TRUE
    FALSE = CONDITION_FALSE
    UNKNOWN = CONDITION_UNKNOWN

    @classmethod
    def parse(cls, value: str | None) -> "ConditionStatus":
        """Map a raw condition status string to a member; anything else is UNKNOWN."""
        if value == CONDITION_TRUE:
            return cls.TRUE
        if value == CONDITION_FALSE:
            return cls.FALSE
        return cls.UNKNOWN


@dataclass(frozen=True)
class ConditionObservation:
    """Result of a single condition query."""

    status: ConditionStatus
    message: str | None = None

    @classmethod
    def unknown(cls, message: str | None = None) -> "ConditionObservation":
        return cls(ConditionStatus.UNKNOWN, message)


class SubjectKind(Enum):
    """Kind of object a barrier waits on."""

    NODES = "nodes"
    DEPLOYMENT = "deployment"
    CUSTOM_RESOURCE = "custom-resource"


@dataclass(frozen=True)
class ReadinessCondition:
    """
    One readiness barrier.

    Transient: created per wait, discarded once resolved or timed out.
    """

    subject: str  # e.g., "deployment/postgres-db"
    kind: SubjectKind
    condition_type: str  # e.g., "Available"
    interval: float  # seconds between polls
    deadline: float  # total seconds before TimedOut

    def __post_init__(self):
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        if self.deadline <= 0:
            raise ValueError("deadline must be positive")


class BarrierOutcome(Enum):
    """Terminal state of a readiness barrier."""

    READY = "Ready"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"


@dataclass(frozen=True)
class BarrierResult:
    """How a readiness barrier resolved."""

    outcome: BarrierOutcome
    elapsed: float
    polls: int
    reason: str | None = None  # set for FAILED
    last_observation: ConditionObservation | None = None

    @property
    def ready(self) -> bool:
        return self.outcome is BarrierOutcome.READY

    def describe(self, condition: ReadinessCondition) -> str:
        """One-line description used in error messages."""
        if self.outcome is BarrierOutcome.READY:
            return f"{condition.subject} reached {condition.condition_type}"
        if self.outcome is BarrierOutcome.FAILED:
            return f"{condition.subject} failed: {self.reason}"
        last = ""
        if self.last_observation and self.last_observation.message:
            last = f" (last message: {self.last_observation.message})"
        return (
            f"{condition.subject} did not reach {condition.condition_type} "
            f"within {condition.deadline:g}s{last}"
        )


# A read against the external API; may raise while the subject does not exist yet
ConditionQuery = Callable[[], ConditionObservation]
