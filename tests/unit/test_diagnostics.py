"""Unit tests for diagnostic dumps."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from keycloak_e2e.utils.commands import Kubectl
from keycloak_e2e.utils.diagnostics import DiagnosticCollector


@pytest.fixture
def runner():
    def _run(command, **kwargs):
        return subprocess.CompletedProcess(
            command, 0, f"output of {' '.join(command[3:])}\n", ""
        )

    return MagicMock(side_effect=_run)


@pytest.fixture
def collector(runner):
    return DiagnosticCollector(Kubectl(context="kind-keycloak-test", runner=runner))


def commands_run(runner):
    return [c.args[0][3:] for c in runner.call_args_list]


def test_deployment_dump_describes_and_fetches_logs(collector, runner):
    path = collector.deployment("postgres-db", "keycloak", "app=postgres", 50)

    assert commands_run(runner) == [
        ["describe", "deployment", "postgres-db", "-n", "keycloak"],
        ["logs", "-l", "app=postgres", "-n", "keycloak", "--tail=50"],
    ]
    content = Path(path).read_text()
    assert "output of describe deployment postgres-db" in content
    Path(path).unlink()


def test_custom_resource_dump(collector, runner):
    path = collector.custom_resource(
        "keycloak", "keycloak", "keycloak", "app=keycloak-app", 100
    )

    assert commands_run(runner) == [
        ["get", "keycloak", "keycloak", "-n", "keycloak", "-o", "yaml"],
        ["get", "pods", "-n", "keycloak"],
        ["logs", "-l", "app=keycloak-app", "-n", "keycloak", "--tail=100"],
    ]
    Path(path).unlink()


def test_failed_command_output_is_kept(runner, collector, caplog):
    runner.side_effect = lambda command, **kwargs: subprocess.CompletedProcess(
        command, 1, "", "error: no pods found\n"
    )

    path = collector.nodes()

    assert "error: no pods found" in Path(path).read_text()
    assert "Diagnostics for cluster nodes" in caplog.text
    Path(path).unlink()


def test_runner_exception_does_not_abort_dump(runner, collector):
    runner.side_effect = OSError("kubectl vanished")

    path = collector.nodes()

    assert "Error collecting output: kubectl vanished" in Path(path).read_text()
    Path(path).unlink()
