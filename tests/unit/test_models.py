"""
Unit tests for run and readiness models.

These tests verify condition parsing, result bookkeeping and that the
serialized run report never carries credentials.
"""

import pytest

from keycloak_e2e.errors import (
    ApplicationNotReadyError,
    PreconditionError,
    VerificationError,
)
from keycloak_e2e.models import (
    AdminCredentials,
    CheckResult,
    ConditionStatus,
    RunReport,
    Stage,
    TestRun,
)


def _make_run(**kwargs):
    """Create a test run with default identity."""
    return TestRun(
        cluster_name=kwargs.pop("cluster_name", "keycloak-test"),
        namespace=kwargs.pop("namespace", "keycloak"),
        timeout=kwargs.pop("timeout", 600),
        **kwargs,
    )


class TestConditionStatus:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("True", ConditionStatus.TRUE),
            ("False", ConditionStatus.FALSE),
            ("Unknown", ConditionStatus.UNKNOWN),
            (None, ConditionStatus.UNKNOWN),
            ("true", ConditionStatus.UNKNOWN),
        ],
    )
    def test_parse(self, raw, expected):
        assert ConditionStatus.parse(raw) is expected


class TestTestRun:
    def test_results_start_unknown(self):
        run = _make_run()

        assert set(run.results.values()) == {CheckResult.UNKNOWN}
        assert run.stage is Stage.PREREQUISITES
        assert not run.cleanup_executed

    def test_record(self):
        run = _make_run()

        run.record("cluster", True)
        run.record("health", False)

        assert run.results["cluster"] is CheckResult.PASS
        assert run.results["health"] is CheckResult.FAIL

    def test_record_unknown_check(self):
        with pytest.raises(KeyError):
            _make_run().record("dns", True)


class TestRunReport:
    def test_from_run(self):
        run = _make_run(
            credentials=AdminCredentials(username="admin", password="hunter2")
        )
        run.stage = Stage.COMPLETE
        run.record("cluster", True)

        report = RunReport.from_run(run, "abcd1234", exit_code=0)

        assert report.succeeded
        assert report.final_stage == "complete"
        assert report.results["cluster"] == "pass"
        assert report.results["keycloak"] == "unknown"
        assert report.duration_seconds >= 0
        assert "hunter2" not in report.model_dump_json()

    def test_failed_run(self):
        run = _make_run()
        run.stage = Stage.APPLICATION_READY

        report = RunReport.from_run(run, "abcd1234", exit_code=1, error="timed out")

        assert not report.succeeded
        assert report.error == "timed out"


class TestVerificationErrors:
    def test_user_action_is_appended(self):
        error = PreconditionError("kind not installed. Please install kind first.")

        assert error.stage == "prerequisites"
        assert "Action required:" in str(error)

    def test_stage_attribution(self):
        error = ApplicationNotReadyError("Timeout waiting for Keycloak to be ready")

        assert isinstance(error, VerificationError)
        assert error.stage == "application-ready"
