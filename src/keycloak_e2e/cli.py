"""
Command-line entry point for the Keycloak deployment verification harness.

Usage:
    # Run against manifests in the parent directory (the defaults)
    keycloak-e2e

    # Keep the cluster for 5 minutes after the run for manual inspection
    keycloak-e2e --keep-cluster 300

    # Machine-readable logs and a JSON report for CI
    keycloak-e2e --json-logs --report results/run.json

Every option can also be set through a ``KEYCLOAK_E2E_*`` environment variable;
command-line values take precedence.
"""

import argparse
import contextlib
import logging
import signal
import threading
from collections.abc import Iterator
from pathlib import Path

from pydantic import ValidationError

from keycloak_e2e import __version__
from keycloak_e2e.constants import EXIT_FAILURE
from keycloak_e2e.errors import RunInterrupted
from keycloak_e2e.observability import setup_structured_logging
from keycloak_e2e.services import VerificationOrchestrator
from keycloak_e2e.settings import RunSettings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keycloak-e2e",
        description=(
            "Provision an ephemeral kind cluster, deploy the Keycloak operator "
            "and a minimal Keycloak, verify it end to end and tear it down."
        ),
    )
    parser.add_argument(
        "--cluster-name", help="Name of the kind cluster (default: keycloak-test)"
    )
    parser.add_argument(
        "--namespace", help="Namespace for Keycloak and PostgreSQL (default: keycloak)"
    )
    parser.add_argument(
        "--timeout",
        type=int,
        help="Seconds to wait for Keycloak to become Ready (default: 600)",
    )
    parser.add_argument(
        "--manifest-dir",
        type=Path,
        help="Directory holding operator/ and configs/minimal/ (default: ..)",
    )
    parser.add_argument(
        "--keep-cluster",
        type=int,
        metavar="SECONDS",
        dest="keep_cluster_seconds",
        help="Delay cluster deletion for manual inspection (default: 0)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Emit JSON log lines",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--report",
        type=Path,
        dest="report_path",
        help="Write a JSON run report to this path",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


@contextlib.contextmanager
def interrupt_on_sigterm() -> Iterator[None]:
    """
    Route SIGTERM through ``RunInterrupted`` while the block runs.

    SIGINT already raises KeyboardInterrupt; both unwind through the same
    cleanup. Handlers can only be installed from the main thread, elsewhere
    this is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        raise RunInterrupted(signum)

    previous = signal.signal(signal.SIGTERM, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = RunSettings().with_overrides(**vars(args))
    except ValidationError as e:
        setup_structured_logging()
        logger.error(f"Invalid configuration:\n{e}")
        return EXIT_FAILURE

    setup_structured_logging(
        log_level=settings.log_level, enable_json_formatting=settings.json_logs
    )

    with interrupt_on_sigterm():
        return VerificationOrchestrator(settings).run()
