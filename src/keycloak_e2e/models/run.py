"""
Run state models.

``TestRun`` is the in-memory record of one verification run: it is mutated as
stages complete and summarized into a ``RunReport`` at the end. Credentials
live only on the ``TestRun`` and are never part of the report.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from keycloak_e2e.utils.tunnel import PortForward


class Stage(Enum):
    """Pipeline stages in execution order."""

    PREREQUISITES = "prerequisites"
    PROVISION_CLUSTER = "provision-cluster"
    NODES_READY = "nodes-ready"
    INSTALL_OPERATOR = "install-operator"
    OPERATOR_READY = "operator-ready"
    TLS_SECRET = "tls-secret"
    DEPLOY_APPLICATION = "deploy-application"
    DATABASE_READY = "database-ready"
    APPLICATION_READY = "application-ready"
    CREDENTIALS = "credentials"
    TUNNEL = "tunnel"
    ENDPOINTS = "endpoints"
    COMPLETE = "complete"


class CheckResult(Enum):
    """Outcome of one verification step."""

    PASS = "pass"
    FAIL = "fail"
    UNKNOWN = "unknown"


# Checks summarized at the end of a run, in display order
CHECKS = {
    "cluster": "Kind cluster created",
    "operator": "Keycloak operator installed",
    "database": "PostgreSQL available",
    "keycloak": "Keycloak deployed and running",
    "reachability": "Keycloak is accessible",
    "health": "Keycloak health check passed",
}


@dataclass(frozen=True)
class AdminCredentials:
    """Generated admin credentials, kept in memory only."""

    username: str
    password: str = field(repr=False)


@dataclass
class TestRun:
    """Mutable state of a single verification run."""

    __test__ = False  # not a pytest test class

    cluster_name: str
    namespace: str
    timeout: int
    stage: Stage = Stage.PREREQUISITES
    tunnel: "PortForward | None" = None
    results: dict[str, CheckResult] = field(
        default_factory=lambda: {name: CheckResult.UNKNOWN for name in CHECKS}
    )
    credentials: AdminCredentials | None = None
    cleanup_executed: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def record(self, check: str, passed: bool) -> None:
        """Record the outcome of a verification step."""
        if check not in CHECKS:
            raise KeyError(f"Unknown check: {check}")
        self.results[check] = CheckResult.PASS if passed else CheckResult.FAIL


class RunReport(BaseModel):
    """Serializable summary of a finished run."""

    run_id: str = Field(..., description="Run correlation ID")
    cluster_name: str = Field(..., description="Name of the kind cluster")
    namespace: str = Field(..., description="Target namespace")
    final_stage: str = Field(..., description="Last stage entered")
    results: dict[str, str] = Field(..., description="Per-check results")
    succeeded: bool = Field(..., description="Whether the run passed")
    exit_code: int = Field(..., description="Process exit code")
    error: str | None = Field(None, description="Fatal error message, if any")
    started_at: datetime = Field(..., description="When the run started")
    duration_seconds: float = Field(..., description="Wall-clock run duration")

    @classmethod
    def from_run(
        cls,
        run: TestRun,
        run_id: str,
        exit_code: int,
        error: str | None = None,
    ) -> "RunReport":
        duration = (datetime.now(UTC) - run.started_at).total_seconds()
        return cls(
            run_id=run_id,
            cluster_name=run.cluster_name,
            namespace=run.namespace,
            final_stage=run.stage.value,
            results={name: result.value for name, result in run.results.items()},
            succeeded=exit_code == 0,
            exit_code=exit_code,
            error=error,
            started_at=run.started_at,
            duration_seconds=round(duration, 3),
        )
