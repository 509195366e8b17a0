"""Centralized run settings using pydantic-settings.

This module provides a single immutable source of truth for one verification
run. Values load from environment variables (``KEYCLOAK_E2E_*``) and may be
overridden from the command line via ``RunSettings.with_overrides``. Every
stage receives the same frozen instance instead of reading globals.
"""

from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RunSettings(BaseSettings):
    """Configuration for a single deployment verification run.

    All settings default to the values the minimal Keycloak deployment
    expects. Override via environment variables as documented per field.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # Cluster and namespaces
    cluster_name: str = Field(
        default="keycloak-test",
        description="Name of the ephemeral kind cluster created for this run",
        validation_alias="KEYCLOAK_E2E_CLUSTER_NAME",
    )
    namespace: str = Field(
        default="keycloak",
        description="Namespace where Keycloak and PostgreSQL are deployed",
        validation_alias="KEYCLOAK_E2E_NAMESPACE",
    )
    operator_namespace: str = Field(
        default="default",
        description="Namespace the operator manifest deploys into",
        validation_alias="KEYCLOAK_E2E_OPERATOR_NAMESPACE",
    )
    keycloak_name: str = Field(
        default="keycloak",
        description="Name of the Keycloak custom resource in the minimal manifest",
        validation_alias="KEYCLOAK_E2E_KEYCLOAK_NAME",
    )

    # Manifests
    manifest_dir: Path = Field(
        default=Path(".."),
        description="Root directory holding operator/ and configs/minimal/ manifests",
        validation_alias="KEYCLOAK_E2E_MANIFEST_DIR",
    )

    # Readiness barriers
    timeout: int = Field(
        default=600,
        gt=0,
        description="Seconds to wait for the Keycloak resource to report Ready",
        validation_alias="KEYCLOAK_E2E_TIMEOUT",
    )
    poll_interval: int = Field(
        default=10,
        gt=0,
        description="Seconds between readiness polls",
        validation_alias="KEYCLOAK_E2E_POLL_INTERVAL",
    )
    node_timeout: int = Field(
        default=120,
        gt=0,
        description="Seconds to wait for all cluster nodes to become Ready",
        validation_alias="KEYCLOAK_E2E_NODE_TIMEOUT",
    )
    operator_timeout: int = Field(
        default=120,
        gt=0,
        description="Seconds to wait for the operator deployment to become Available",
        validation_alias="KEYCLOAK_E2E_OPERATOR_TIMEOUT",
    )
    database_timeout: int = Field(
        default=180,
        gt=0,
        description="Seconds to wait for the database deployment to become Available",
        validation_alias="KEYCLOAK_E2E_DATABASE_TIMEOUT",
    )
    barrier_poll_interval: int = Field(
        default=2,
        gt=0,
        description="Seconds between polls for node, operator and database barriers",
        validation_alias="KEYCLOAK_E2E_BARRIER_POLL_INTERVAL",
    )

    # Tunnel and endpoint probes
    local_port: int = Field(
        default=8443,
        description="Local port the port-forward listens on",
        validation_alias="KEYCLOAK_E2E_LOCAL_PORT",
    )
    remote_port: int = Field(
        default=8443,
        description="Service port Keycloak serves HTTPS on",
        validation_alias="KEYCLOAK_E2E_REMOTE_PORT",
    )
    tunnel_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Seconds to wait for the port-forward to accept connections",
        validation_alias="KEYCLOAK_E2E_TUNNEL_TIMEOUT",
    )
    http_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Per-request timeout for endpoint probes",
        validation_alias="KEYCLOAK_E2E_HTTP_TIMEOUT",
    )
    health_path: str = Field(
        default="/health/ready",
        description="Readiness endpoint probed after the root endpoint",
        validation_alias="KEYCLOAK_E2E_HEALTH_PATH",
    )

    # Teardown
    keep_cluster_seconds: int = Field(
        default=0,
        ge=0,
        description="Grace window before cluster deletion for manual inspection",
        validation_alias="KEYCLOAK_E2E_KEEP_CLUSTER_SECONDS",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="KEYCLOAK_E2E_LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=False,
        validation_alias="KEYCLOAK_E2E_JSON_LOGS",
        description="Emit JSON log lines instead of level-tagged console lines",
    )

    # Reporting
    report_path: Path | None = Field(
        default=None,
        validation_alias="KEYCLOAK_E2E_REPORT",
        description="Optional path for a JSON run report",
    )

    @property
    def kube_context(self) -> str:
        """kubeconfig context kind registers for the cluster."""
        return f"kind-{self.cluster_name}"

    @property
    def base_url(self) -> str:
        """HTTPS base URL of the tunnelled Keycloak service."""
        return f"https://localhost:{self.local_port}"

    def manifest(self, relative_path: str) -> Path:
        """Resolve a manifest path against the manifest root."""
        return self.manifest_dir / relative_path

    def with_overrides(self, **overrides: Any) -> "RunSettings":
        """Return a copy with the non-None overrides applied and re-validated.

        Args:
            **overrides: Field names mapped to new values; None values are ignored

        Returns:
            New frozen settings instance
        """
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return type(self).model_validate(values)
