"""Readiness barriers for eventually-consistent cluster state.

This module turns a condition query into a deterministic barrier result:
- Polls immediately, then at a fixed interval until the deadline
- Resolves Ready on the first True observation (no debounce)
- Logs False observations as warnings and keeps polling
- Treats transient query errors (resource not created yet) as Unknown
- Fails at once on API errors polling cannot recover from
- Collects diagnostics exactly once when the barrier does not resolve Ready

Time and logging are injected so barriers can be driven by fake query
sequences in tests.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol

from keycloak_e2e.models import (
    BarrierOutcome,
    BarrierResult,
    ConditionObservation,
    ConditionStatus,
    ReadinessCondition,
)
from keycloak_e2e.models.readiness import ConditionQuery
from keycloak_e2e.utils.kubernetes import is_permanent_api_error

logger = logging.getLogger(__name__)


class BarrierObserver(Protocol):
    """Receives barrier progress; the default implementation logs it."""

    def on_start(self, condition: ReadinessCondition) -> None: ...

    def on_not_ready(
        self,
        condition: ReadinessCondition,
        observation: ConditionObservation,
        elapsed: float,
    ) -> None: ...

    def on_query_error(
        self, condition: ReadinessCondition, error: Exception, elapsed: float
    ) -> None: ...

    def on_resolved(
        self, condition: ReadinessCondition, result: BarrierResult
    ) -> None: ...


class LoggingObserver:
    """Barrier observer that reports progress through the module logger."""

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logger

    def on_start(self, condition: ReadinessCondition) -> None:
        self.log.info(
            f"Waiting for {condition.subject} to be {condition.condition_type} "
            f"(timeout {condition.deadline:g}s)",
            extra={"subject": condition.subject, "condition": condition.condition_type},
        )

    def on_not_ready(
        self,
        condition: ReadinessCondition,
        observation: ConditionObservation,
        elapsed: float,
    ) -> None:
        reason = observation.message or "no message"
        self.log.warning(
            f"{condition.subject} not {condition.condition_type} yet: {reason}",
            extra={"subject": condition.subject, "elapsed": round(elapsed, 1)},
        )

    def on_query_error(
        self, condition: ReadinessCondition, error: Exception, elapsed: float
    ) -> None:
        self.log.debug(
            f"Condition query for {condition.subject} failed, "
            f"treating as Unknown: {error}",
            extra={"subject": condition.subject, "elapsed": round(elapsed, 1)},
        )

    def on_resolved(self, condition: ReadinessCondition, result: BarrierResult) -> None:
        extra = {
            "subject": condition.subject,
            "outcome": result.outcome.value,
            "elapsed": round(result.elapsed, 1),
            "polls": result.polls,
        }
        if result.ready:
            self.log.info(
                f"{condition.subject} is {condition.condition_type} "
                f"after {result.elapsed:.0f}s",
                extra=extra,
            )
        else:
            self.log.error(result.describe(condition), extra=extra)


def _collect_diagnostics(
    diagnostics: Callable[[], object] | None, condition: ReadinessCondition
) -> None:
    """Run the diagnostic dump; its own failures never replace the barrier result."""
    if diagnostics is None:
        return
    try:
        diagnostics()
    except Exception as e:
        logger.warning(f"Failed to collect diagnostics for {condition.subject}: {e}")


def wait_for_condition(
    condition: ReadinessCondition,
    query: ConditionQuery,
    *,
    diagnostics: Callable[[], object] | None = None,
    observer: BarrierObserver | None = None,
    classify_error: Callable[[BaseException], str | None] = is_permanent_api_error,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> BarrierResult:
    """
    Poll a condition query until it reports True, fails, or the deadline passes.

    Args:
        condition: What is being waited on, with interval and deadline
        query: Condition read returning a tri-state observation
        diagnostics: Dump invoked exactly once when the barrier is not Ready
        observer: Progress observer, defaults to LoggingObserver
        classify_error: Returns a reason for errors polling cannot recover from
        clock: Monotonic clock in seconds
        sleep: Sleep function in seconds

    Returns:
        BarrierResult with outcome READY, FAILED or TIMED_OUT
    """
    observer = observer or LoggingObserver()
    observer.on_start(condition)

    start = clock()
    polls = 0
    last_observation: ConditionObservation | None = None

    while True:
        polls += 1
        try:
            observation = query()
        except Exception as e:
            reason = classify_error(e)
            if reason is not None:
                result = BarrierResult(
                    outcome=BarrierOutcome.FAILED,
                    elapsed=clock() - start,
                    polls=polls,
                    reason=reason,
                    last_observation=last_observation,
                )
                observer.on_resolved(condition, result)
                _collect_diagnostics(diagnostics, condition)
                return result
            observer.on_query_error(condition, e, clock() - start)
            observation = ConditionObservation.unknown(str(e))

        last_observation = observation
        elapsed = clock() - start

        if observation.status is ConditionStatus.TRUE:
            result = BarrierResult(
                outcome=BarrierOutcome.READY,
                elapsed=elapsed,
                polls=polls,
                last_observation=observation,
            )
            observer.on_resolved(condition, result)
            return result

        if observation.status is ConditionStatus.FALSE:
            observer.on_not_ready(condition, observation, elapsed)

        remaining = condition.deadline - elapsed
        if remaining <= 0:
            break
        sleep(min(condition.interval, remaining))

    result = BarrierResult(
        outcome=BarrierOutcome.TIMED_OUT,
        elapsed=clock() - start,
        polls=polls,
        last_observation=last_observation,
    )
    observer.on_resolved(condition, result)
    _collect_diagnostics(diagnostics, condition)
    return result
