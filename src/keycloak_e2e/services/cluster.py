"""
Kind cluster lifecycle with guaranteed teardown.

``ProvisionedCluster`` is a scoped guard: release is registered before the
cluster is created and runs exactly once on every exit path (normal return,
error, KeyboardInterrupt or a signal routed through ``RunInterrupted``).
Deletion failures are logged and swallowed so teardown never changes the
outcome of the run.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

import yaml

from keycloak_e2e.errors import CommandError, ProvisioningError, RunInterrupted
from keycloak_e2e.utils.commands import CommandRunner, run_command

logger = logging.getLogger(__name__)

# Host ports mapped into the control-plane node for ingress traffic
INGRESS_HOST_PORTS = (80, 443)


def build_kind_config(
    host_ports: tuple[int, ...] = INGRESS_HOST_PORTS,
) -> dict[str, Any]:
    """
    Build the kind cluster configuration.

    Single control-plane node labelled ``ingress-ready=true`` with the given
    ports mapped from the host.
    """
    return {
        "kind": "Cluster",
        "apiVersion": "kind.x-k8s.io/v1alpha4",
        "nodes": [
            {
                "role": "control-plane",
                "kubeadmConfigPatches": [
                    yaml.safe_dump(
                        {
                            "kind": "InitConfiguration",
                            "nodeRegistration": {
                                "kubeletExtraArgs": {
                                    "node-labels": "ingress-ready=true"
                                }
                            },
                        },
                        sort_keys=False,
                    )
                ],
                "extraPortMappings": [
                    {"containerPort": port, "hostPort": port, "protocol": "TCP"}
                    for port in host_ports
                ],
            }
        ],
    }


class KindCluster:
    """A named kind cluster driven through the kind CLI."""

    def __init__(self, name: str, runner: CommandRunner = run_command):
        self.name = name
        self.runner = runner

    def create(self) -> None:
        """
        Create the cluster.

        Raises:
            ProvisioningError: If kind fails to create the cluster
        """
        logger.info(
            f"Creating kind cluster: {self.name}", extra={"cluster_name": self.name}
        )
        config_yaml = yaml.safe_dump(build_kind_config(), sort_keys=False)
        try:
            self.runner(
                ["kind", "create", "cluster", "--name", self.name, "--config", "-"],
                input_text=config_yaml,
                stage="provision-cluster",
            )
        except CommandError as e:
            raise ProvisioningError(
                f"Failed to create kind cluster {self.name}: {e.stderr.strip()[:500]}",
                cause=e,
            ) from e

    def delete(self) -> None:
        """Delete the cluster; raises CommandError on failure."""
        self.runner(
            ["kind", "delete", "cluster", "--name", self.name],
            stage="teardown",
        )


class ProvisionedCluster:
    """
    Scoped guard owning a kind cluster for the duration of a run.

    Usage:
        with ProvisionedCluster(KindCluster("keycloak-test")) as cluster:
            ...
    """

    def __init__(
        self,
        cluster: KindCluster,
        grace_seconds: float = 0,
        sleep: Callable[[float], None] = time.sleep,
        on_release: Callable[[], None] | None = None,
    ):
        """
        Initialize the guard.

        Args:
            cluster: Cluster to create and delete
            grace_seconds: Delay before deletion for manual inspection
            sleep: Sleep function in seconds
            on_release: Callback invoked once after the deletion attempt
        """
        self.cluster = cluster
        self.grace_seconds = grace_seconds
        self.sleep = sleep
        self.on_release = on_release
        self.released = False

    def __enter__(self) -> KindCluster:
        try:
            self.cluster.create()
        except BaseException:
            # kind may leave a partial cluster behind; nothing to inspect
            self.release(grace=False)
            raise
        return self.cluster

    def __exit__(self, *exc_info) -> None:
        self.release()

    def _grace_window(self) -> None:
        if self.grace_seconds <= 0:
            return
        logger.info(
            f"Cluster {self.cluster.name} will be deleted in {self.grace_seconds:g} "
            "seconds; press Ctrl+C to delete it now"
        )
        try:
            self.sleep(self.grace_seconds)
        except (KeyboardInterrupt, RunInterrupted):
            logger.info("Grace window interrupted, deleting cluster now")

    def release(self, grace: bool = True) -> None:
        """
        Delete the cluster exactly once; never raises.

        Args:
            grace: Honour the inspection grace window before deleting
        """
        if self.released:
            return
        self.released = True

        try:
            if grace:
                self._grace_window()
            logger.info(
                "Cleaning up resources...", extra={"cluster_name": self.cluster.name}
            )
            self.cluster.delete()
        except (Exception, KeyboardInterrupt, RunInterrupted) as e:
            logger.warning(
                f"Failed to delete kind cluster {self.cluster.name}: {e}",
                extra={"cluster_name": self.cluster.name},
            )
        finally:
            if self.on_release is not None:
                self.on_release()
