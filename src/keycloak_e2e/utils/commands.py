"""
External tool invocation for the verification harness.

This module wraps ``subprocess`` for the command-line collaborators the
harness drives (kind, kubectl, openssl):
- Running a command with captured output and uniform error reporting
- Checking that required tools are on PATH
- A kubectl wrapper pinned to the run's kubeconfig context
"""

import logging
import shutil
import subprocess
from collections.abc import Callable, Iterable
from pathlib import Path

from keycloak_e2e.errors import CommandError

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., subprocess.CompletedProcess]


def run_command(
    command: list[str],
    *,
    input_text: str | None = None,
    timeout: float | None = None,
    check: bool = True,
    stage: str = "command",
) -> subprocess.CompletedProcess:
    """
    Run an external command and capture its output.

    Args:
        command: Command and arguments
        input_text: Optional text written to the command's stdin
        timeout: Optional timeout in seconds
        check: Raise CommandError when the command exits non-zero
        stage: Pipeline stage attributed to a failure

    Returns:
        The completed process with text stdout/stderr

    Raises:
        CommandError: If check is set and the command fails, cannot be
            started or times out
    """
    logger.debug(f"Running: {' '.join(command)}", extra={"command": command})

    try:
        result = subprocess.run(
            command,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise CommandError(command, 127, str(e), stage=stage) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(
            command, 124, f"Timed out after {timeout}s", stage=stage
        ) from e

    if check and result.returncode != 0:
        raise CommandError(command, result.returncode, result.stderr, stage=stage)

    return result


def find_missing_tools(
    tools: Iterable[str], which: Callable[[str], str | None] = shutil.which
) -> list[str]:
    """Return the tools from the given list that are not on PATH."""
    return [tool for tool in tools if which(tool) is None]


class Kubectl:
    """kubectl invocations pinned to one kubeconfig context."""

    def __init__(self, context: str | None = None, runner: CommandRunner = run_command):
        self.context = context
        self.runner = runner

    def command(self, *args: str) -> list[str]:
        """Build a kubectl command line for this context."""
        base = ["kubectl"]
        if self.context:
            base.extend(["--context", self.context])
        return [*base, *args]

    def run(
        self,
        *args: str,
        check: bool = True,
        input_text: str | None = None,
        timeout: float | None = None,
        stage: str = "command",
    ) -> subprocess.CompletedProcess:
        return self.runner(
            self.command(*args),
            input_text=input_text,
            timeout=timeout,
            check=check,
            stage=stage,
        )

    def apply(self, manifest: Path, stage: str = "command") -> None:
        """Apply a manifest file verbatim."""
        logger.info(f"Applying {manifest}")
        result = self.run("apply", "-f", str(manifest), stage=stage)
        for line in result.stdout.strip().splitlines():
            logger.debug(line)
