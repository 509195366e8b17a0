"""
Black-box HTTP probes against the tunnelled Keycloak endpoint.

Reachability of the root endpoint is fatal; the readiness marker on the
health endpoint is advisory because its schema is less stable than basic
connectivity.
"""

import json
import logging
import re
from dataclasses import dataclass

import httpx

from keycloak_e2e.constants import HEALTH_STATUS_UP
from keycloak_e2e.errors import ReachabilityError

logger = logging.getLogger(__name__)

_STATUS_PATTERN = re.compile(r'"status"\s*:\s*"([^"]*)"')


@dataclass(frozen=True)
class EndpointReport:
    """Outcome of the endpoint checks."""

    status_code: int
    healthy: bool
    health_status: str  # observed status value, "DOWN" when absent


def parse_health_status(body: str) -> str | None:
    """Extract the top-level ``status`` value from a health response body."""
    try:
        payload = json.loads(body)
    except ValueError:
        payload = None

    if isinstance(payload, dict) and isinstance(payload.get("status"), str):
        return payload["status"]

    match = _STATUS_PATTERN.search(body)
    return match.group(1) if match else None


def check_reachability(client: httpx.Client, url: str) -> int:
    """
    Request the root endpoint; any non-error HTTP response counts.

    Args:
        client: HTTP client (TLS verification disabled by the caller)
        url: Endpoint URL

    Returns:
        The HTTP status code

    Raises:
        ReachabilityError: On transport failure or an HTTP error status
    """
    try:
        response = client.get(url)
    except httpx.HTTPError as e:
        raise ReachabilityError(
            f"Keycloak is not accessible at {url}: {e}", cause=e
        ) from e

    if response.is_error:
        raise ReachabilityError(
            f"Keycloak is not accessible at {url}: HTTP {response.status_code}"
        )
    return response.status_code


def check_health(
    client: httpx.Client, url: str, expected: str = HEALTH_STATUS_UP
) -> tuple[bool, str]:
    """
    Request the health endpoint and compare its status marker.

    Never raises for HTTP problems: the health marker is advisory.

    Returns:
        Tuple of (healthy, observed_status)
    """
    try:
        response = client.get(url)
    except httpx.HTTPError as e:
        logger.warning(f"Keycloak health check request failed: {e}", extra={"url": url})
        return False, "DOWN"

    observed = parse_health_status(response.text) or "DOWN"
    return observed == expected, observed


def verify_endpoints(
    base_url: str,
    health_path: str,
    timeout: float = 10.0,
    client: httpx.Client | None = None,
) -> EndpointReport:
    """
    Verify the deployed Keycloak is reachable and reports itself healthy.

    Args:
        base_url: HTTPS base URL of the tunnel
        health_path: Readiness endpoint path
        timeout: Per-request timeout in seconds
        client: Optional preconfigured HTTP client

    Returns:
        EndpointReport for the two checks

    Raises:
        ReachabilityError: If the root endpoint cannot be reached
    """
    owns_client = client is None
    if client is None:
        # Self-signed certificate is expected here
        client = httpx.Client(verify=False, timeout=timeout)

    try:
        logger.info("Testing Keycloak endpoint...")
        root_url = f"{base_url}/"
        status_code = check_reachability(client, root_url)
        logger.info(
            "✓ Keycloak is accessible!",
            extra={"url": root_url, "http_status": status_code},
        )

        logger.info("Testing Keycloak health endpoint...")
        health_url = f"{base_url}{health_path}"
        healthy, observed = check_health(client, health_url)
        if healthy:
            logger.info("✓ Keycloak health check passed!", extra={"url": health_url})
        else:
            logger.warning(
                f"Keycloak health check returned: {observed}", extra={"url": health_url}
            )
    finally:
        if owns_client:
            client.close()

    return EndpointReport(
        status_code=status_code, healthy=healthy, health_status=observed
    )
