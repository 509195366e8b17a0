"""Diagnostic dumps collected when a readiness barrier does not resolve Ready.

Each dump runs a handful of kubectl read commands, writes the full output to
a temp file and logs a short summary inline:
- deployments: describe + recent pod logs by label selector
- the Keycloak resource: full YAML, pod list and recent application logs
- nodes: describe
"""

import logging
import tempfile

from keycloak_e2e.utils.commands import Kubectl

logger = logging.getLogger(__name__)

SUMMARY_LINES = 20


class DiagnosticCollector:
    """Collects cluster state for failed barriers."""

    def __init__(self, kubectl: Kubectl, summary_lines: int = SUMMARY_LINES):
        self.kubectl = kubectl
        self.summary_lines = summary_lines

    def _run_section(self, args: list[str]) -> str:
        header = f"$ {' '.join(self.kubectl.command(*args))}"
        try:
            result = self.kubectl.run(*args, check=False, timeout=30)
        except Exception as e:
            return f"{header}\nError collecting output: {e}"
        output = result.stdout
        if result.returncode != 0:
            output = f"{output}{result.stderr}"
        return f"{header}\n{output.rstrip()}"

    def collect(self, title: str, commands: list[list[str]]) -> str | None:
        """
        Run diagnostic commands and report their output.

        Args:
            title: What the dump is for
            commands: kubectl argument lists to run

        Returns:
            Path to the temp file holding the full dump, or None if it
            could not be written
        """
        sections = [self._run_section(args) for args in commands]
        full_output = "\n\n".join(sections) + "\n"

        lines = full_output.strip().split("\n")
        summary = "\n".join(lines[-self.summary_lines :])
        logger.error(
            f"Diagnostics for {title} (last {self.summary_lines} lines):\n{summary}"
        )

        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                suffix=".log",
                prefix="keycloak-e2e-diagnostics-",
                delete=False,
            ) as dump_file:
                dump_file.write(full_output)
                dump_path = dump_file.name
        except OSError as e:
            logger.warning(f"Could not write diagnostic dump for {title}: {e}")
            return None

        logger.error(
            f"Full diagnostics for {title}: {dump_path}",
            extra={"diagnostic_file": dump_path},
        )
        return dump_path

    def nodes(self) -> str | None:
        return self.collect("cluster nodes", [["describe", "nodes"]])

    def deployment(
        self, name: str, namespace: str, label_selector: str, tail: int
    ) -> str | None:
        """Describe a deployment and fetch recent logs of its pods."""
        return self.collect(
            f"deployment/{name}",
            [
                ["describe", "deployment", name, "-n", namespace],
                ["logs", "-l", label_selector, "-n", namespace, f"--tail={tail}"],
            ],
        )

    def custom_resource(
        self, kind: str, name: str, namespace: str, label_selector: str, tail: int
    ) -> str | None:
        """Dump a custom resource as YAML plus pod list and application logs."""
        return self.collect(
            f"{kind}/{name}",
            [
                ["get", kind, name, "-n", namespace, "-o", "yaml"],
                ["get", "pods", "-n", namespace],
                ["logs", "-l", label_selector, "-n", namespace, f"--tail={tail}"],
            ],
        )
