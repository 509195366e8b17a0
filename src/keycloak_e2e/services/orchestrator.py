"""
Deployment verification orchestrator.

Drives the pipeline from "not yet provisioned" to "verified healthy" or
"failed":

    prerequisites -> cluster -> nodes Ready -> CRDs + operator -> operator
    Available -> TLS secret -> Keycloak manifest -> database Available ->
    Keycloak Ready -> admin credentials -> port-forward -> endpoint checks

Every fatal failure aborts the remaining stages and unwinds through the same
teardown: the tunnel is stopped, then the cluster guard deletes the cluster.
Interruption takes the same path and only changes the exit code.
"""

import logging
import shutil
import time
from collections.abc import Callable
from functools import partial

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from keycloak_e2e.constants import (
    ADMIN_SECRET_NAME,
    APPLICATION_LOG_TAIL,
    CONDITION_AVAILABLE,
    CONDITION_READY,
    CRD_MANIFESTS,
    DATABASE_DEPLOYMENT,
    DATABASE_LABEL_SELECTOR,
    DEPLOYMENT_LOG_TAIL,
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
    KEYCLOAK_CR_GROUP,
    KEYCLOAK_CR_KIND,
    KEYCLOAK_CR_PLURAL,
    KEYCLOAK_CR_VERSION,
    KEYCLOAK_LABEL_SELECTOR,
    KEYCLOAK_MANIFEST,
    KEYCLOAK_SERVICE,
    OPERATOR_DEPLOYMENT,
    OPERATOR_LABEL_SELECTOR,
    OPERATOR_MANIFEST,
    REQUIRED_TOOLS,
    TLS_SECRET_NAME,
)
from keycloak_e2e.errors import (
    ApplicationNotReadyError,
    DependencyInstallError,
    PreconditionError,
    ProvisioningError,
    RunInterrupted,
    VerificationError,
)
from keycloak_e2e.models import (
    ReadinessCondition,
    RunReport,
    Stage,
    SubjectKind,
    TestRun,
)
from keycloak_e2e.models.readiness import ConditionQuery
from keycloak_e2e.models.run import CHECKS, CheckResult
from keycloak_e2e.observability.logging import generate_run_id, set_run_id, set_stage
from keycloak_e2e.services.cluster import KindCluster, ProvisionedCluster
from keycloak_e2e.settings import RunSettings
from keycloak_e2e.utils.commands import Kubectl, find_missing_tools
from keycloak_e2e.utils.diagnostics import DiagnosticCollector
from keycloak_e2e.utils.endpoints import verify_endpoints
from keycloak_e2e.utils.kubernetes import (
    apply_tls_secret,
    custom_resource_condition_query,
    deployment_condition_query,
    ensure_namespace,
    get_kubernetes_client,
    node_readiness_query,
    read_admin_credentials,
)
from keycloak_e2e.utils.readiness import wait_for_condition
from keycloak_e2e.utils.tls import generate_self_signed_certificate
from keycloak_e2e.utils.tunnel import PortForward

logger = logging.getLogger(__name__)


class VerificationOrchestrator:
    """Runs one deployment verification against a fresh kind cluster."""

    def __init__(
        self,
        settings: RunSettings,
        *,
        cluster: KindCluster | None = None,
        kubectl: Kubectl | None = None,
        api_client_factory: Callable[[str], client.ApiClient] = get_kubernetes_client,
        which: Callable[[str], str | None] = shutil.which,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Frozen run settings shared by every stage
            cluster: Kind cluster handle, defaults to one named by settings
            kubectl: kubectl wrapper, defaults to the cluster's kind context
            api_client_factory: Builds a Kubernetes API client for a context
            which: PATH lookup used by the prerequisite check
            clock: Monotonic clock for readiness barriers
            sleep: Sleep function for readiness barriers and teardown grace
        """
        self.settings = settings
        self.cluster = cluster or KindCluster(settings.cluster_name)
        self.kubectl = kubectl or Kubectl(context=settings.kube_context)
        self.api_client_factory = api_client_factory
        self.which = which
        self.clock = clock
        self.sleep = sleep
        self.diagnostics = DiagnosticCollector(self.kubectl)

        self.core_v1: client.CoreV1Api | None = None
        self.apps_v1: client.AppsV1Api | None = None
        self.custom_objects: client.CustomObjectsApi | None = None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self) -> int:
        """
        Execute the full pipeline.

        Returns:
            Process exit code: 0 success, 1 fatal failure, 130 interrupted
        """
        settings = self.settings
        run_id = set_run_id(generate_run_id())
        test_run = TestRun(
            cluster_name=settings.cluster_name,
            namespace=settings.namespace,
            timeout=settings.timeout,
        )
        error_message: str | None = None

        logger.info(
            "Starting Keycloak minimal configuration test...",
            extra={"cluster_name": settings.cluster_name},
        )

        try:
            self._check_prerequisites(test_run)

            def _mark_cleanup() -> None:
                test_run.cleanup_executed = True

            guard = ProvisionedCluster(
                self.cluster,
                grace_seconds=settings.keep_cluster_seconds,
                sleep=self.sleep,
                on_release=_mark_cleanup,
            )
            self._enter(test_run, Stage.PROVISION_CLUSTER)
            try:
                with guard:
                    test_run.record("cluster", True)
                    try:
                        self._execute(test_run)
                    finally:
                        self._stop_tunnel(test_run)
                    self._enter(test_run, Stage.COMPLETE)
                    # Before the grace window so the cluster is still up
                    self._log_results(test_run)
                    self._log_access_instructions(test_run)
            except ProvisioningError:
                if test_run.results["cluster"] is CheckResult.UNKNOWN:
                    test_run.record("cluster", False)
                raise

            exit_code = EXIT_SUCCESS
        except VerificationError as e:
            error_message = str(e)
            logger.error(
                f"Stage {test_run.stage.value} failed: {e}",
                extra={"error_type": type(e).__name__, "exit_code": EXIT_FAILURE},
            )
            exit_code = EXIT_FAILURE
        except (KeyboardInterrupt, RunInterrupted) as e:
            error_message = f"Interrupted during {test_run.stage.value}"
            logger.error(
                f"Run interrupted during {test_run.stage.value}",
                extra={"error_type": type(e).__name__, "exit_code": EXIT_INTERRUPTED},
            )
            exit_code = EXIT_INTERRUPTED
        except Exception as e:
            error_message = f"Unexpected {type(e).__name__}: {e}"
            logger.error(
                f"Stage {test_run.stage.value} failed unexpectedly: {e}",
                exc_info=True,
                extra={"error_type": type(e).__name__, "exit_code": EXIT_FAILURE},
            )
            exit_code = EXIT_FAILURE

        self._summarize(test_run, exit_code)
        self._write_report(test_run, run_id, exit_code, error_message)
        return exit_code

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _enter(self, test_run: TestRun, stage: Stage) -> None:
        test_run.stage = stage
        set_stage(stage.value)

    def _execute(self, test_run: TestRun) -> None:
        self._connect_api()

        self._enter(test_run, Stage.NODES_READY)
        self._wait_for_nodes()

        self._enter(test_run, Stage.INSTALL_OPERATOR)
        self._install_operator()

        self._enter(test_run, Stage.OPERATOR_READY)
        self._wait_for_operator(test_run)

        self._enter(test_run, Stage.TLS_SECRET)
        self._create_tls_secret()

        self._enter(test_run, Stage.DEPLOY_APPLICATION)
        logger.info("Deploying minimal Keycloak configuration...")
        self.kubectl.apply(
            self.settings.manifest(KEYCLOAK_MANIFEST),
            stage=Stage.DEPLOY_APPLICATION.value,
        )

        self._enter(test_run, Stage.DATABASE_READY)
        self._wait_for_database(test_run)

        self._enter(test_run, Stage.APPLICATION_READY)
        self._wait_for_keycloak(test_run)

        self._enter(test_run, Stage.CREDENTIALS)
        self._retrieve_credentials(test_run)

        self._enter(test_run, Stage.TUNNEL)
        self._open_tunnel(test_run)

        self._enter(test_run, Stage.ENDPOINTS)
        self._verify_endpoints(test_run)

    def _check_prerequisites(self, test_run: TestRun) -> None:
        self._enter(test_run, Stage.PREREQUISITES)
        logger.info("Checking prerequisites...")

        missing = find_missing_tools(REQUIRED_TOOLS, which=self.which)
        if missing:
            raise PreconditionError(
                f"{', '.join(missing)} not installed. Please install "
                f"{', '.join(missing)} first."
            )

        manifests = [*CRD_MANIFESTS, OPERATOR_MANIFEST, KEYCLOAK_MANIFEST]
        absent = [
            str(self.settings.manifest(path))
            for path in manifests
            if not self.settings.manifest(path).is_file()
        ]
        if absent:
            raise PreconditionError(
                f"Manifest files not found: {', '.join(absent)}",
                user_action="Point --manifest-dir at the directory holding "
                "operator/ and configs/minimal/",
            )

    def _connect_api(self) -> None:
        context = self.settings.kube_context
        try:
            api_client = self.api_client_factory(context)
        except config.ConfigException as e:
            raise ProvisioningError(
                f"No usable kubeconfig context {context}: {e}", cause=e
            ) from e
        self.core_v1 = client.CoreV1Api(api_client)
        self.apps_v1 = client.AppsV1Api(api_client)
        self.custom_objects = client.CustomObjectsApi(api_client)

    def _barrier(
        self,
        condition: ReadinessCondition,
        query: ConditionQuery,
        diagnostics: Callable[[], object],
        error_factory: Callable[[str], VerificationError],
    ) -> None:
        """Run one readiness barrier; raise the stage's fatal error unless Ready."""
        result = wait_for_condition(
            condition,
            query,
            diagnostics=diagnostics,
            clock=self.clock,
            sleep=self.sleep,
        )
        if not result.ready:
            raise error_factory(result.describe(condition))

    def _wait_for_nodes(self) -> None:
        logger.info("Waiting for cluster to be ready...")
        self._barrier(
            ReadinessCondition(
                subject="nodes",
                kind=SubjectKind.NODES,
                condition_type=CONDITION_READY,
                interval=self.settings.barrier_poll_interval,
                deadline=self.settings.node_timeout,
            ),
            node_readiness_query(self.core_v1),
            self.diagnostics.nodes,
            ProvisioningError,
        )

    def _install_operator(self) -> None:
        stage = Stage.INSTALL_OPERATOR.value
        logger.info("Installing Keycloak operator CRDs...")
        for crd in CRD_MANIFESTS:
            self.kubectl.apply(self.settings.manifest(crd), stage=stage)

        logger.info("Installing Keycloak operator...")
        self.kubectl.apply(self.settings.manifest(OPERATOR_MANIFEST), stage=stage)

    def _wait_for_operator(self, test_run: TestRun) -> None:
        logger.info("Waiting for operator to be ready...")
        namespace = self.settings.operator_namespace
        try:
            self._barrier(
                ReadinessCondition(
                    subject=f"deployment/{OPERATOR_DEPLOYMENT}",
                    kind=SubjectKind.DEPLOYMENT,
                    condition_type=CONDITION_AVAILABLE,
                    interval=self.settings.barrier_poll_interval,
                    deadline=self.settings.operator_timeout,
                ),
                deployment_condition_query(
                    self.apps_v1, OPERATOR_DEPLOYMENT, namespace
                ),
                partial(
                    self.diagnostics.deployment,
                    OPERATOR_DEPLOYMENT,
                    namespace,
                    OPERATOR_LABEL_SELECTOR,
                    DEPLOYMENT_LOG_TAIL,
                ),
                lambda message: DependencyInstallError(
                    f"Operator failed to become ready: {message}",
                    stage=Stage.OPERATOR_READY.value,
                ),
            )
        except VerificationError:
            test_run.record("operator", False)
            raise
        test_run.record("operator", True)

    def _create_tls_secret(self) -> None:
        material = generate_self_signed_certificate()
        namespace = self.settings.namespace
        try:
            ensure_namespace(self.core_v1, namespace)
            apply_tls_secret(
                self.core_v1,
                TLS_SECRET_NAME,
                namespace,
                material.cert_pem,
                material.key_pem,
            )
        except ApiException as e:
            raise DependencyInstallError(
                f"Failed to create TLS secret {TLS_SECRET_NAME}: {e.reason}",
                stage=Stage.TLS_SECRET.value,
                cause=e,
            ) from e

    def _wait_for_database(self, test_run: TestRun) -> None:
        logger.info("Waiting for PostgreSQL to be ready...")
        namespace = self.settings.namespace
        try:
            self._barrier(
                ReadinessCondition(
                    subject=f"deployment/{DATABASE_DEPLOYMENT}",
                    kind=SubjectKind.DEPLOYMENT,
                    condition_type=CONDITION_AVAILABLE,
                    interval=self.settings.barrier_poll_interval,
                    deadline=self.settings.database_timeout,
                ),
                deployment_condition_query(
                    self.apps_v1, DATABASE_DEPLOYMENT, namespace
                ),
                partial(
                    self.diagnostics.deployment,
                    DATABASE_DEPLOYMENT,
                    namespace,
                    DATABASE_LABEL_SELECTOR,
                    DEPLOYMENT_LOG_TAIL,
                ),
                lambda message: DependencyInstallError(
                    f"PostgreSQL failed to become ready: {message}",
                    stage=Stage.DATABASE_READY.value,
                ),
            )
        except VerificationError:
            test_run.record("database", False)
            raise
        test_run.record("database", True)

    def _wait_for_keycloak(self, test_run: TestRun) -> None:
        logger.info(
            "Waiting for Keycloak to be ready (this may take several minutes)..."
        )
        settings = self.settings
        try:
            self._barrier(
                ReadinessCondition(
                    subject=f"{KEYCLOAK_CR_KIND}/{settings.keycloak_name}",
                    kind=SubjectKind.CUSTOM_RESOURCE,
                    condition_type=CONDITION_READY,
                    interval=settings.poll_interval,
                    deadline=settings.timeout,
                ),
                custom_resource_condition_query(
                    self.custom_objects,
                    group=KEYCLOAK_CR_GROUP,
                    version=KEYCLOAK_CR_VERSION,
                    plural=KEYCLOAK_CR_PLURAL,
                    name=settings.keycloak_name,
                    namespace=settings.namespace,
                ),
                partial(
                    self.diagnostics.custom_resource,
                    KEYCLOAK_CR_KIND,
                    settings.keycloak_name,
                    settings.namespace,
                    KEYCLOAK_LABEL_SELECTOR,
                    APPLICATION_LOG_TAIL,
                ),
                lambda message: ApplicationNotReadyError(
                    f"Timeout waiting for Keycloak to be ready: {message}"
                ),
            )
        except VerificationError:
            test_run.record("keycloak", False)
            raise
        test_run.record("keycloak", True)

    def _retrieve_credentials(self, test_run: TestRun) -> None:
        logger.info("Retrieving admin credentials...")
        try:
            credentials = read_admin_credentials(
                self.core_v1, ADMIN_SECRET_NAME, self.settings.namespace
            )
        except (ApiException, KeyError, ValueError) as e:
            raise VerificationError(
                f"Could not read admin credentials from secret "
                f"{ADMIN_SECRET_NAME}: {e}",
                stage=Stage.CREDENTIALS.value,
                user_action="Check that the operator created the initial admin secret",
                cause=e,
            ) from e

        test_run.credentials = credentials
        logger.info("Admin credentials:")
        logger.info(f"  Username: {credentials.username}")
        logger.info(f"  Password: {credentials.password}")

    def _open_tunnel(self, test_run: TestRun) -> None:
        settings = self.settings
        tunnel = PortForward(
            self.kubectl,
            namespace=settings.namespace,
            service=KEYCLOAK_SERVICE,
            local_port=settings.local_port,
            remote_port=settings.remote_port,
        )
        test_run.tunnel = tunnel
        tunnel.start()
        tunnel.wait_until_ready(timeout=settings.tunnel_timeout)

    def _verify_endpoints(self, test_run: TestRun) -> None:
        try:
            report = verify_endpoints(
                self.settings.base_url,
                self.settings.health_path,
                timeout=self.settings.http_timeout,
            )
        except VerificationError:
            test_run.record("reachability", False)
            raise
        finally:
            self._stop_tunnel(test_run)

        test_run.record("reachability", True)
        test_run.record("health", report.healthy)

    def _stop_tunnel(self, test_run: TestRun) -> None:
        if test_run.tunnel is not None:
            test_run.tunnel.stop()

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _log_results(self, test_run: TestRun) -> None:
        marks = {
            CheckResult.PASS: "✓",
            CheckResult.FAIL: "✗",
            CheckResult.UNKNOWN: "-",
        }

        logger.info("=========================================")
        logger.info("Test Summary")
        logger.info("=========================================")
        for check, description in CHECKS.items():
            result = test_run.results[check]
            logger.info(f"{marks[result]} {description}")
        logger.info("=========================================")

    def _log_access_instructions(self, test_run: TestRun) -> None:
        """Tell the user how to reach Keycloak while the cluster still exists."""
        settings = self.settings
        logger.info("To access Keycloak manually (while the cluster is running):")
        logger.info(
            f"  kubectl --context {settings.kube_context} port-forward "
            f"-n {settings.namespace} svc/{KEYCLOAK_SERVICE} "
            f"{settings.local_port}:{settings.remote_port}"
        )
        logger.info(f"  Then visit: {settings.base_url}")
        if test_run.credentials is not None:
            logger.info(f"  Username: {test_run.credentials.username}")
            logger.info(f"  Password: {test_run.credentials.password}")

    def _summarize(self, test_run: TestRun, exit_code: int) -> None:
        """Final pass/fail block, logged after teardown."""
        self._log_results(test_run)
        if exit_code != EXIT_SUCCESS:
            logger.error(f"Verification failed at stage {test_run.stage.value}")

    def _write_report(
        self,
        test_run: TestRun,
        run_id: str,
        exit_code: int,
        error_message: str | None,
    ) -> None:
        path = self.settings.report_path
        if path is None:
            return

        report = RunReport.from_run(test_run, run_id, exit_code, error_message)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(report.model_dump_json(indent=2) + "\n")
            logger.info(f"Run report written to {path}")
        except OSError as e:
            logger.warning(f"Failed to write run report to {path}: {e}")
