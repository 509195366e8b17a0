"""
Verification error hierarchy with stage attribution and user guidance.

This module defines the fatal error types raised by pipeline stages. Every
error carries the stage that failed and an action the user can take, so the
orchestrator can log one clear ERROR line and choose the exit code.
"""


class VerificationError(Exception):
    """
    Base error class for all fatal verification failures.

    Provides stage attribution and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        stage: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize verification error.

        Args:
            message: Human-readable error description
            stage: Pipeline stage that failed
            user_action: What the user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.stage = stage
        self.user_action = user_action
        self.cause = cause

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class PreconditionError(VerificationError):
    """A required tool or input is missing; raised before any side effect."""

    def __init__(self, message: str, user_action: str | None = None):
        super().__init__(
            message=message,
            stage="prerequisites",
            user_action=user_action or "Install the missing tool or fix the path",
        )


class CommandError(VerificationError):
    """An external tool exited non-zero."""

    def __init__(
        self,
        command: list[str],
        returncode: int,
        stderr: str = "",
        stage: str = "command",
    ):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip()[:500]
        message = f"Command '{' '.join(command)}' failed with exit code {returncode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(
            message=message,
            stage=stage,
            user_action="Inspect the command output above",
        )


class ProvisioningError(VerificationError):
    """The cluster could not be created or its nodes never became Ready."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            stage="provision-cluster",
            user_action="Check that Docker is running and kind can create clusters",
            cause=cause,
        )


class DependencyInstallError(VerificationError):
    """CRDs, operator or database failed to install or become Available."""

    def __init__(
        self,
        message: str,
        stage: str = "install-operator",
        cause: Exception | None = None,
    ):
        super().__init__(
            message=message,
            stage=stage,
            user_action="Review the diagnostic dump and the applied manifests",
            cause=cause,
        )


class ApplicationNotReadyError(VerificationError):
    """The Keycloak resource never reported Ready within its budget."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            stage="application-ready",
            user_action="Review the resource YAML, pod list and Keycloak logs above",
            cause=cause,
        )


class ReachabilityError(VerificationError):
    """The tunnelled Keycloak endpoint could not be reached."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message=message,
            stage="endpoints",
            user_action="Check the port-forward output and the Keycloak service",
            cause=cause,
        )


class RunInterrupted(Exception):
    """Raised from a signal handler so interruption unwinds through cleanup."""

    def __init__(self, signum: int):
        super().__init__(f"Interrupted by signal {signum}")
        self.signum = signum
