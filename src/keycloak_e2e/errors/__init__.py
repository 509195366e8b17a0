"""
Error handling module for the deployment verification harness.

This module provides the error hierarchy used to attribute fatal failures to
pipeline stages and map them to process exit codes.
"""

from .verification_errors import (
    ApplicationNotReadyError,
    CommandError,
    DependencyInstallError,
    PreconditionError,
    ProvisioningError,
    ReachabilityError,
    RunInterrupted,
    VerificationError,
)

__all__ = [
    "VerificationError",
    "PreconditionError",
    "CommandError",
    "ProvisioningError",
    "DependencyInstallError",
    "ApplicationNotReadyError",
    "ReachabilityError",
    "RunInterrupted",
]
