"""Unit tests for the kind cluster lifecycle guard."""

from unittest.mock import MagicMock

import pytest
import yaml

from keycloak_e2e.errors import CommandError, ProvisioningError, RunInterrupted
from keycloak_e2e.services.cluster import (
    KindCluster,
    ProvisionedCluster,
    build_kind_config,
)


@pytest.fixture
def cluster():
    mock_cluster = MagicMock(spec=KindCluster)
    mock_cluster.name = "keycloak-test"
    return mock_cluster


class TestKindConfig:
    def test_single_ingress_ready_control_plane(self):
        config = build_kind_config()

        assert config["kind"] == "Cluster"
        assert len(config["nodes"]) == 1
        node = config["nodes"][0]
        assert node["role"] == "control-plane"
        patch = yaml.safe_load(node["kubeadmConfigPatches"][0])
        labels = patch["nodeRegistration"]["kubeletExtraArgs"]["node-labels"]
        assert labels == "ingress-ready=true"

    def test_maps_ingress_ports_only(self):
        """Host port 8443 stays free for the local port-forward."""
        node = build_kind_config()["nodes"][0]

        host_ports = [m["hostPort"] for m in node["extraPortMappings"]]
        assert host_ports == [80, 443]


class TestKindCluster:
    def test_create_passes_config_on_stdin(self):
        runner = MagicMock()

        KindCluster("keycloak-test", runner=runner).create()

        command = runner.call_args[0][0]
        assert command == [
            "kind",
            "create",
            "cluster",
            "--name",
            "keycloak-test",
            "--config",
            "-",
        ]
        config = yaml.safe_load(runner.call_args[1]["input_text"])
        assert config["apiVersion"] == "kind.x-k8s.io/v1alpha4"

    def test_create_failure_raises_provisioning_error(self):
        runner = MagicMock(
            side_effect=CommandError(["kind"], 1, "docker daemon not running")
        )

        with pytest.raises(ProvisioningError) as exc_info:
            KindCluster("keycloak-test", runner=runner).create()

        assert "docker daemon not running" in str(exc_info.value)
        assert exc_info.value.stage == "provision-cluster"

    def test_delete_runs_kind_delete(self):
        runner = MagicMock()

        KindCluster("keycloak-test", runner=runner).delete()

        assert runner.call_args[0][0] == [
            "kind",
            "delete",
            "cluster",
            "--name",
            "keycloak-test",
        ]


class TestProvisionedCluster:
    """Cleanup runs exactly once on every exit path."""

    def test_success_deletes_once(self, cluster):
        on_release = MagicMock()

        with ProvisionedCluster(cluster, on_release=on_release) as entered:
            assert entered is cluster

        cluster.create.assert_called_once()
        cluster.delete.assert_called_once()
        on_release.assert_called_once()

    def test_failure_deletes_once_and_propagates(self, cluster):
        with pytest.raises(ProvisioningError):
            with ProvisionedCluster(cluster):
                raise ProvisioningError("nodes never became Ready")

        cluster.delete.assert_called_once()

    @pytest.mark.parametrize("interrupt", [KeyboardInterrupt(), RunInterrupted(15)])
    def test_interrupt_deletes_once_and_propagates(self, cluster, interrupt):
        with pytest.raises(type(interrupt)):
            with ProvisionedCluster(cluster):
                raise interrupt

        cluster.delete.assert_called_once()

    def test_create_failure_still_attempts_delete(self, cluster):
        """kind can leave a half-created cluster behind."""
        cluster.create.side_effect = ProvisioningError("kind create failed")

        with pytest.raises(ProvisioningError):
            with ProvisionedCluster(cluster):
                pytest.fail("body must not run when creation fails")

        cluster.delete.assert_called_once()

    def test_delete_failure_is_swallowed(self, cluster):
        cluster.delete.side_effect = CommandError(["kind"], 1, "no such cluster")
        on_release = MagicMock()

        with ProvisionedCluster(cluster, on_release=on_release):
            pass

        cluster.delete.assert_called_once()
        on_release.assert_called_once()

    def test_delete_failure_does_not_mask_original_error(self, cluster):
        cluster.delete.side_effect = CommandError(["kind"], 1, "no such cluster")

        with pytest.raises(ProvisioningError, match="original"):
            with ProvisionedCluster(cluster):
                raise ProvisioningError("original")

    def test_release_is_idempotent(self, cluster):
        guard = ProvisionedCluster(cluster)

        with guard:
            guard.release()

        guard.release()
        cluster.delete.assert_called_once()

    def test_grace_window_delays_deletion(self, cluster):
        order = []
        sleep = MagicMock(side_effect=lambda s: order.append(("sleep", s)))
        cluster.delete.side_effect = lambda: order.append(("delete",))

        with ProvisionedCluster(cluster, grace_seconds=30, sleep=sleep):
            pass

        assert order == [("sleep", 30), ("delete",)]

    def test_no_grace_window_by_default(self, cluster):
        sleep = MagicMock()

        with ProvisionedCluster(cluster, sleep=sleep):
            pass

        sleep.assert_not_called()

    def test_interrupted_grace_window_still_deletes(self, cluster):
        sleep = MagicMock(side_effect=KeyboardInterrupt)

        with ProvisionedCluster(cluster, grace_seconds=300, sleep=sleep):
            pass

        cluster.delete.assert_called_once()

    def test_create_failure_skips_grace_window(self, cluster):
        cluster.create.side_effect = ProvisioningError("kind create failed")
        sleep = MagicMock()

        with pytest.raises(ProvisioningError):
            with ProvisionedCluster(cluster, grace_seconds=300, sleep=sleep):
                pytest.fail("body must not run when creation fails")

        sleep.assert_not_called()
        cluster.delete.assert_called_once()
