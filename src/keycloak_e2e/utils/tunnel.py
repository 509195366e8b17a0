"""
Managed kubectl port-forward tunnel.

The tunnel runs as a background child process. ``wait_until_ready`` replaces a
fixed settle delay with a bounded connect-retry loop, and ``stop`` may be
called any number of times from any exit path.
"""

import contextlib
import logging
import socket
import subprocess
import tempfile
import time
from collections.abc import Callable
from typing import IO

from keycloak_e2e.errors import ReachabilityError
from keycloak_e2e.utils.commands import Kubectl

logger = logging.getLogger(__name__)


def _tcp_connect(host: str, port: int, timeout: float) -> None:
    with socket.create_connection((host, port), timeout=timeout):
        pass


class PortForward:
    """Background ``kubectl port-forward`` to a service."""

    def __init__(
        self,
        kubectl: Kubectl,
        namespace: str,
        service: str,
        local_port: int,
        remote_port: int,
        host: str = "127.0.0.1",
    ):
        self.kubectl = kubectl
        self.namespace = namespace
        self.service = service
        self.local_port = local_port
        self.remote_port = remote_port
        self.host = host
        self._process: subprocess.Popen | None = None
        self._stderr: IO[str] | None = None

    @property
    def command(self) -> list[str]:
        return self.kubectl.command(
            "port-forward",
            "-n",
            self.namespace,
            f"svc/{self.service}",
            f"{self.local_port}:{self.remote_port}",
        )

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def start(self) -> None:
        """Launch the port-forward in the background."""
        if self._process is not None:
            raise RuntimeError("Port-forward already started")

        logger.info(
            f"Setting up port forward to svc/{self.service} "
            f"({self.local_port}:{self.remote_port})"
        )
        # stderr goes to a file so a chatty tunnel can never block on a full pipe
        self._stderr = tempfile.TemporaryFile(mode="w+")
        try:
            self._process = subprocess.Popen(
                self.command,
                stdout=subprocess.DEVNULL,
                stderr=self._stderr,
                text=True,
            )
        except OSError:
            self._close_stderr()
            raise

    def _read_stderr(self) -> str:
        if self._stderr is None:
            return ""
        try:
            self._stderr.seek(0)
            return self._stderr.read().strip()
        except (OSError, ValueError):
            return ""

    def wait_until_ready(
        self,
        timeout: float,
        interval: float = 0.25,
        connect: Callable[[str, int, float], None] = _tcp_connect,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Block until the local end of the tunnel accepts TCP connections.

        Args:
            timeout: Seconds before giving up
            interval: Seconds between connection attempts
            connect: Connection attempt (host, port, timeout)
            clock: Monotonic clock in seconds
            sleep: Sleep function in seconds

        Raises:
            ReachabilityError: If the process exits or never accepts connections
        """
        if self._process is None:
            raise RuntimeError("Port-forward not started")

        start = clock()
        last_error: OSError | None = None
        while True:
            if self._process.poll() is not None:
                raise ReachabilityError(
                    f"Port-forward exited with code {self._process.returncode}: "
                    f"{self._read_stderr() or 'no output'}"
                )
            try:
                connect(self.host, self.local_port, interval)
                logger.debug(f"Port-forward accepting connections on {self.local_port}")
                return
            except OSError as e:
                last_error = e

            if clock() - start >= timeout:
                raise ReachabilityError(
                    f"Port-forward on {self.host}:{self.local_port} not accepting "
                    f"connections after {timeout:g}s: {last_error}",
                    cause=last_error,
                )
            sleep(interval)

    def stop(self, grace: float = 5.0) -> None:
        """Terminate the tunnel; safe to call repeatedly or before start."""
        process = self._process
        if process is None:
            self._close_stderr()
            return

        if process.poll() is None:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            try:
                process.wait(timeout=grace)
            except subprocess.TimeoutExpired:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                process.wait()
            logger.debug(f"Port-forward to svc/{self.service} stopped")

        self._process = None
        self._close_stderr()

    def _close_stderr(self) -> None:
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None

    def __enter__(self) -> "PortForward":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
