"""
Kubernetes utilities for the verification harness.

This module provides helper functions for interacting with the Kubernetes API
of the provisioned cluster.

Key functionality:
- Kubernetes client creation for a specific kubeconfig context
- Condition queries for nodes, deployments and custom resources
- Namespace and TLS secret management
- Admin credential retrieval
"""

import base64
import json
import logging
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from keycloak_e2e.constants import (
    CONDITION_AVAILABLE,
    CONDITION_READY,
    PERMANENT_API_REASONS,
    PERMANENT_API_STATUSES,
)
from keycloak_e2e.models import AdminCredentials, ConditionObservation, ConditionStatus
from keycloak_e2e.models.readiness import ConditionQuery

logger = logging.getLogger(__name__)


def get_kubernetes_client(context: str | None = None) -> client.ApiClient:
    """
    Get a Kubernetes API client for a kubeconfig context.

    Args:
        context: kubeconfig context name, or None for the current context

    Returns:
        Configured Kubernetes API client
    """
    try:
        api_client = config.new_client_from_config(context=context)
        logger.debug(f"Loaded kubeconfig context {context or '(current)'}")
    except config.ConfigException as e:
        logger.error(f"Failed to load Kubernetes configuration: {e}")
        raise

    return api_client


def _status_reason(exc: ApiException) -> str | None:
    """Return the ``reason`` of the Status object in an API error body, if any."""
    body = exc.body
    if isinstance(body, bytes):
        body = body.decode(errors="replace")
    if not body:
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("reason"), str):
        return payload["reason"]
    return None


def is_permanent_api_error(exc: BaseException) -> str | None:
    """
    Classify a condition query failure.

    ``ApiException.reason`` is the HTTP reason phrase; the Kubernetes reason
    (e.g. ``Invalid``) is read from the Status object in the body.

    Args:
        exc: Exception raised by a condition query

    Returns:
        A failure reason if polling can never recover from the error,
        None if the error is transient (not found, connection refused, ...)
    """
    if not isinstance(exc, ApiException):
        return None
    status_reason = _status_reason(exc)
    if exc.status in PERMANENT_API_STATUSES or status_reason in PERMANENT_API_REASONS:
        return f"Kubernetes API error {exc.status} ({status_reason or exc.reason})"
    return None


def _find_condition(
    conditions: list[Any] | None, condition_type: str
) -> tuple[str | None, str | None] | None:
    """Return (status, message) for the condition of the given type, if present.

    Accepts both kubernetes model objects and plain dicts.
    """
    for condition in conditions or []:
        if isinstance(condition, dict):
            if condition.get("type") == condition_type:
                return condition.get("status"), condition.get("message")
        elif getattr(condition, "type", None) == condition_type:
            return condition.status, getattr(condition, "message", None)
    return None


def node_readiness_query(core_v1: client.CoreV1Api) -> ConditionQuery:
    """Build a query that reports True once every node has Ready=True."""

    def _query() -> ConditionObservation:
        nodes = core_v1.list_node()
        if not nodes.items:
            return ConditionObservation.unknown("no nodes registered yet")

        not_ready = []
        for node in nodes.items:
            found = _find_condition(node.status.conditions, CONDITION_READY)
            if found is None:
                return ConditionObservation.unknown(
                    f"node {node.metadata.name} has no Ready condition yet"
                )
            status, message = found
            if status != "True":
                not_ready.append(f"{node.metadata.name}: {message or status}")

        if not_ready:
            return ConditionObservation(
                ConditionStatus.FALSE, "; ".join(not_ready)
            )
        return ConditionObservation(ConditionStatus.TRUE)

    return _query


def deployment_condition_query(
    apps_v1: client.AppsV1Api,
    name: str,
    namespace: str,
    condition_type: str = CONDITION_AVAILABLE,
) -> ConditionQuery:
    """Build a query for a deployment status condition (default Available)."""

    def _query() -> ConditionObservation:
        deployment = apps_v1.read_namespaced_deployment(name=name, namespace=namespace)
        conditions = deployment.status.conditions if deployment.status else None
        found = _find_condition(conditions, condition_type)
        if found is None:
            return ConditionObservation.unknown()
        status, message = found
        return ConditionObservation(ConditionStatus.parse(status), message)

    return _query


def custom_resource_condition_query(
    custom_objects: client.CustomObjectsApi,
    group: str,
    version: str,
    plural: str,
    name: str,
    namespace: str,
    condition_type: str = CONDITION_READY,
) -> ConditionQuery:
    """Build a query for a custom resource status condition (default Ready)."""

    def _query() -> ConditionObservation:
        resource = custom_objects.get_namespaced_custom_object(
            group=group,
            version=version,
            namespace=namespace,
            plural=plural,
            name=name,
        )
        status = resource.get("status", {}) or {}
        found = _find_condition(status.get("conditions"), condition_type)
        if found is None:
            return ConditionObservation.unknown()
        condition_status, message = found
        return ConditionObservation(ConditionStatus.parse(condition_status), message)

    return _query


def ensure_namespace(core_v1: client.CoreV1Api, name: str) -> None:
    """Create a namespace, ignoring AlreadyExists."""
    namespace = client.V1Namespace(metadata=client.V1ObjectMeta(name=name))
    try:
        core_v1.create_namespace(namespace)
        logger.info(f"Created namespace {name}")
    except ApiException as e:
        if e.status != 409:
            raise
        logger.debug(f"Namespace {name} already exists")


def apply_tls_secret(
    core_v1: client.CoreV1Api,
    name: str,
    namespace: str,
    cert_pem: str,
    key_pem: str,
) -> None:
    """
    Create or replace a kubernetes.io/tls secret.

    Args:
        core_v1: Core V1 API client
        name: Secret name
        namespace: Target namespace
        cert_pem: PEM encoded certificate
        key_pem: PEM encoded private key
    """
    secret = client.V1Secret(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        type="kubernetes.io/tls",
        string_data={"tls.crt": cert_pem, "tls.key": key_pem},
    )

    try:
        core_v1.create_namespaced_secret(namespace=namespace, body=secret)
        logger.info(f"Created TLS secret {name} in namespace {namespace}")
    except ApiException as e:
        if e.status != 409:
            raise
        core_v1.replace_namespaced_secret(name=name, namespace=namespace, body=secret)
        logger.info(f"Replaced TLS secret {name} in namespace {namespace}")


def read_admin_credentials(
    core_v1: client.CoreV1Api, secret_name: str, namespace: str
) -> AdminCredentials:
    """
    Get generated admin credentials from a cluster-managed secret.

    Args:
        core_v1: Core V1 API client
        secret_name: Name of the secret holding username and password
        namespace: Namespace of the secret

    Returns:
        Decoded admin credentials

    Raises:
        ApiException: If the secret cannot be read
        KeyError: If a credential field is missing
    """
    try:
        secret = core_v1.read_namespaced_secret(name=secret_name, namespace=namespace)
    except ApiException as e:
        logger.error(f"Failed to read admin credentials from secret {secret_name}: {e}")
        raise

    data = secret.data or {}
    try:
        username = base64.b64decode(data["username"]).decode()
        password = base64.b64decode(data["password"]).decode()
    except KeyError as e:
        logger.error(f"Missing credential field in secret {secret_name}: {e}")
        raise

    return AdminCredentials(username=username, password=password)
