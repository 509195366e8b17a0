"""Unit tests for run settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from keycloak_e2e.settings import RunSettings


def test_defaults_match_minimal_deployment(monkeypatch):
    monkeypatch.delenv("KEYCLOAK_E2E_TIMEOUT", raising=False)
    settings = RunSettings()

    assert settings.cluster_name == "keycloak-test"
    assert settings.namespace == "keycloak"
    assert settings.timeout == 600
    assert settings.poll_interval == 10
    assert settings.node_timeout == 120
    assert settings.operator_timeout == 120
    assert settings.database_timeout == 180
    assert settings.local_port == 8443
    assert settings.health_path == "/health/ready"
    assert settings.keep_cluster_seconds == 0


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("KEYCLOAK_E2E_CLUSTER_NAME", "ci-cluster")
    monkeypatch.setenv("KEYCLOAK_E2E_TIMEOUT", "900")

    settings = RunSettings()

    assert settings.cluster_name == "ci-cluster"
    assert settings.timeout == 900


def test_alias_keyword_arguments():
    settings = RunSettings(
        KEYCLOAK_E2E_NAMESPACE="staging",
        KEYCLOAK_E2E_MANIFEST_DIR="/srv/manifests",
    )

    assert settings.namespace == "staging"
    assert settings.manifest_dir == Path("/srv/manifests")


def test_derived_values():
    settings = RunSettings(
        KEYCLOAK_E2E_CLUSTER_NAME="demo", KEYCLOAK_E2E_LOCAL_PORT=9443
    )

    assert settings.kube_context == "kind-demo"
    assert settings.base_url == "https://localhost:9443"
    assert settings.manifest("operator/operator.yml") == Path(
        "../operator/operator.yml"
    )


def test_settings_are_frozen():
    settings = RunSettings()

    with pytest.raises(ValidationError):
        settings.timeout = 1


def test_with_overrides_ignores_none():
    settings = RunSettings(KEYCLOAK_E2E_CLUSTER_NAME="from-env")

    updated = settings.with_overrides(cluster_name=None, timeout=30, json_logs=True)

    assert updated.cluster_name == "from-env"
    assert updated.timeout == 30
    assert updated.json_logs is True
    assert settings.timeout == 600


@pytest.mark.parametrize("field", ["timeout", "poll_interval", "node_timeout"])
def test_non_positive_durations_are_rejected(field):
    with pytest.raises(ValidationError):
        RunSettings().with_overrides(**{field: 0})
