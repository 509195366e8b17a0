"""Data models for verification runs and readiness barriers."""

from .readiness import (
    BarrierOutcome,
    BarrierResult,
    ConditionObservation,
    ConditionStatus,
    ReadinessCondition,
    SubjectKind,
)
from .run import AdminCredentials, CheckResult, RunReport, Stage, TestRun

__all__ = [
    "AdminCredentials",
    "BarrierOutcome",
    "BarrierResult",
    "CheckResult",
    "ConditionObservation",
    "ConditionStatus",
    "ReadinessCondition",
    "RunReport",
    "Stage",
    "SubjectKind",
    "TestRun",
]
