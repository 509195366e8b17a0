"""Unit tests for Kubernetes utility functions."""

import base64
import json
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import config
from kubernetes.client.rest import ApiException

from keycloak_e2e.models import ConditionStatus
from keycloak_e2e.utils.kubernetes import (
    apply_tls_secret,
    custom_resource_condition_query,
    deployment_condition_query,
    ensure_namespace,
    get_kubernetes_client,
    is_permanent_api_error,
    node_readiness_query,
    read_admin_credentials,
)


def make_condition(condition_type, status, message=None):
    condition = MagicMock()
    condition.type = condition_type
    condition.status = status
    condition.message = message
    return condition


def make_node(name, *conditions):
    node = MagicMock()
    node.metadata.name = name
    node.status.conditions = list(conditions)
    return node


def b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


class TestGetKubernetesClient:
    @patch("keycloak_e2e.utils.kubernetes.config.new_client_from_config")
    def test_loads_requested_context(self, mock_new_client):
        api_client = get_kubernetes_client("kind-keycloak-test")

        mock_new_client.assert_called_once_with(context="kind-keycloak-test")
        assert api_client is mock_new_client.return_value

    @patch("keycloak_e2e.utils.kubernetes.config.new_client_from_config")
    def test_missing_context_propagates(self, mock_new_client):
        mock_new_client.side_effect = config.ConfigException("context not found")

        with pytest.raises(config.ConfigException):
            get_kubernetes_client("kind-missing")


class TestIsPermanentApiError:
    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_errors_are_permanent(self, status):
        assert is_permanent_api_error(ApiException(status=status)) is not None

    def test_invalid_status_reason_in_body_is_permanent(self):
        error = ApiException(status=422, reason="Unprocessable Entity")
        error.body = json.dumps(
            {"kind": "Status", "status": "Failure", "reason": "Invalid", "code": 422}
        )

        reason = is_permanent_api_error(error)

        assert reason == "Kubernetes API error 422 (Invalid)"

    def test_http_reason_phrase_alone_is_transient(self):
        assert (
            is_permanent_api_error(ApiException(status=422, reason="Invalid")) is None
        )

    def test_unparseable_body_is_transient(self):
        error = ApiException(status=500, reason="Internal Server Error")
        error.body = "<html>bad gateway</html>"

        assert is_permanent_api_error(error) is None

    @pytest.mark.parametrize("status", [404, 500, 503])
    def test_other_api_errors_are_transient(self, status):
        assert is_permanent_api_error(ApiException(status=status)) is None

    def test_non_api_errors_are_transient(self):
        assert is_permanent_api_error(ConnectionRefusedError()) is None


class TestNodeReadinessQuery:
    def test_all_nodes_ready(self):
        core_v1 = MagicMock()
        core_v1.list_node.return_value.items = [
            make_node("control-plane", make_condition("Ready", "True")),
        ]

        observation = node_readiness_query(core_v1)()

        assert observation.status is ConditionStatus.TRUE

    def test_not_ready_node_reports_false(self):
        core_v1 = MagicMock()
        core_v1.list_node.return_value.items = [
            make_node(
                "control-plane",
                make_condition("Ready", "False", "container runtime not ready"),
            ),
        ]

        observation = node_readiness_query(core_v1)()

        assert observation.status is ConditionStatus.FALSE
        assert "container runtime not ready" in observation.message

    def test_no_nodes_is_unknown(self):
        core_v1 = MagicMock()
        core_v1.list_node.return_value.items = []

        observation = node_readiness_query(core_v1)()

        assert observation.status is ConditionStatus.UNKNOWN


class TestDeploymentConditionQuery:
    def test_available_condition(self):
        apps_v1 = MagicMock()
        apps_v1.read_namespaced_deployment.return_value.status.conditions = [
            make_condition("Progressing", "True"),
            make_condition("Available", "True", "Deployment has minimum availability"),
        ]

        observation = deployment_condition_query(apps_v1, "postgres-db", "keycloak")()

        apps_v1.read_namespaced_deployment.assert_called_once_with(
            name="postgres-db", namespace="keycloak"
        )
        assert observation.status is ConditionStatus.TRUE

    def test_condition_not_reported_yet_is_unknown(self):
        apps_v1 = MagicMock()
        apps_v1.read_namespaced_deployment.return_value.status.conditions = None

        observation = deployment_condition_query(apps_v1, "postgres-db", "keycloak")()

        assert observation.status is ConditionStatus.UNKNOWN

    def test_not_found_propagates(self):
        apps_v1 = MagicMock()
        apps_v1.read_namespaced_deployment.side_effect = ApiException(status=404)

        with pytest.raises(ApiException):
            deployment_condition_query(apps_v1, "postgres-db", "keycloak")()


class TestCustomResourceConditionQuery:
    def query(self, custom_objects):
        return custom_resource_condition_query(
            custom_objects,
            group="k8s.keycloak.org",
            version="v2alpha1",
            plural="keycloaks",
            name="keycloak",
            namespace="keycloak",
        )

    def test_ready_condition(self):
        custom_objects = MagicMock()
        custom_objects.get_namespaced_custom_object.return_value = {
            "status": {"conditions": [{"type": "Ready", "status": "True"}]}
        }

        observation = self.query(custom_objects)()

        assert observation.status is ConditionStatus.TRUE

    def test_false_condition_carries_message(self):
        custom_objects = MagicMock()
        custom_objects.get_namespaced_custom_object.return_value = {
            "status": {
                "conditions": [
                    {
                        "type": "Ready",
                        "status": "False",
                        "message": "Waiting for more replicas",
                    }
                ]
            }
        }

        observation = self.query(custom_objects)()

        assert observation.status is ConditionStatus.FALSE
        assert observation.message == "Waiting for more replicas"

    def test_missing_status_is_unknown(self):
        custom_objects = MagicMock()
        custom_objects.get_namespaced_custom_object.return_value = {"spec": {}}

        observation = self.query(custom_objects)()

        assert observation.status is ConditionStatus.UNKNOWN


class TestEnsureNamespace:
    def test_creates_namespace(self):
        core_v1 = MagicMock()

        ensure_namespace(core_v1, "keycloak")

        created = core_v1.create_namespace.call_args[0][0]
        assert created.metadata.name == "keycloak"

    def test_already_exists_is_ignored(self):
        core_v1 = MagicMock()
        core_v1.create_namespace.side_effect = ApiException(status=409)

        ensure_namespace(core_v1, "keycloak")

    def test_other_errors_propagate(self):
        core_v1 = MagicMock()
        core_v1.create_namespace.side_effect = ApiException(status=403)

        with pytest.raises(ApiException):
            ensure_namespace(core_v1, "keycloak")


class TestApplyTlsSecret:
    def test_creates_tls_secret(self):
        core_v1 = MagicMock()

        apply_tls_secret(core_v1, "keycloak-tls-secret", "keycloak", "CERT", "KEY")

        secret = core_v1.create_namespaced_secret.call_args[1]["body"]
        assert secret.type == "kubernetes.io/tls"
        assert secret.string_data == {"tls.crt": "CERT", "tls.key": "KEY"}
        core_v1.replace_namespaced_secret.assert_not_called()

    def test_replaces_existing_secret(self):
        core_v1 = MagicMock()
        core_v1.create_namespaced_secret.side_effect = ApiException(status=409)

        apply_tls_secret(core_v1, "keycloak-tls-secret", "keycloak", "CERT", "KEY")

        core_v1.replace_namespaced_secret.assert_called_once()
        assert (
            core_v1.replace_namespaced_secret.call_args[1]["name"]
            == "keycloak-tls-secret"
        )


class TestReadAdminCredentials:
    def test_decodes_credentials(self):
        core_v1 = MagicMock()
        core_v1.read_namespaced_secret.return_value.data = {
            "username": b64("temp-admin"),
            "password": b64("generated-password"),
        }

        credentials = read_admin_credentials(
            core_v1, "keycloak-initial-admin", "keycloak"
        )

        assert credentials.username == "temp-admin"
        assert credentials.password == "generated-password"
        assert "generated-password" not in repr(credentials)

    def test_missing_field_raises(self):
        core_v1 = MagicMock()
        core_v1.read_namespaced_secret.return_value.data = {"username": b64("admin")}

        with pytest.raises(KeyError):
            read_admin_credentials(core_v1, "keycloak-initial-admin", "keycloak")

    def test_missing_secret_propagates(self):
        core_v1 = MagicMock()
        core_v1.read_namespaced_secret.side_effect = ApiException(status=404)

        with pytest.raises(ApiException):
            read_admin_credentials(core_v1, "keycloak-initial-admin", "keycloak")
