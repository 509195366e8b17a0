"""
Constants used throughout the Keycloak deployment verification harness.

This module defines the fixed names the harness relies on:
- Resource names created by the Keycloak operator and minimal manifests
- Manifest locations relative to the manifest root
- Condition types and statuses (following Kubernetes conventions)
- Process exit codes
"""

# External tools that must be on PATH before anything is provisioned
REQUIRED_TOOLS = ("kind", "kubectl", "openssl")

# Manifest paths relative to the manifest root directory
KEYCLOAKS_CRD_MANIFEST = "operator/keycloaks-crd.yml"
REALM_IMPORTS_CRD_MANIFEST = "operator/keycloakrealmimports-crd.yml"
OPERATOR_MANIFEST = "operator/operator.yml"
KEYCLOAK_MANIFEST = "configs/minimal/keycloak.yml"

CRD_MANIFESTS = (KEYCLOAKS_CRD_MANIFEST, REALM_IMPORTS_CRD_MANIFEST)

# Keycloak custom resource (official Keycloak operator API)
KEYCLOAK_CR_GROUP = "k8s.keycloak.org"
KEYCLOAK_CR_VERSION = "v2alpha1"
KEYCLOAK_CR_PLURAL = "keycloaks"
KEYCLOAK_CR_KIND = "keycloak"

# Workloads created by the manifests
OPERATOR_DEPLOYMENT = "keycloak-operator"
OPERATOR_LABEL_SELECTOR = "app.kubernetes.io/name=keycloak-operator"
DATABASE_DEPLOYMENT = "postgres-db"
DATABASE_LABEL_SELECTOR = "app=postgres"
KEYCLOAK_LABEL_SELECTOR = "app=keycloak-app"
KEYCLOAK_SERVICE = "keycloak-service"

# Secrets
TLS_SECRET_NAME = "keycloak-tls-secret"
TLS_COMMON_NAME = "keycloak.local"
TLS_KEY_BITS = 2048
TLS_VALIDITY_DAYS = 365
ADMIN_SECRET_NAME = "keycloak-initial-admin"

# Condition type constants
CONDITION_READY = "Ready"
CONDITION_AVAILABLE = "Available"

# Condition status constants
CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"

# Kubernetes API failures that polling can never recover from
PERMANENT_API_STATUSES = frozenset({401, 403})
# Matched against the Status object's `reason` in the response body
PERMANENT_API_REASONS = frozenset({"Unauthorized", "Forbidden", "Invalid"})

# Diagnostic log tails
DEPLOYMENT_LOG_TAIL = 50
APPLICATION_LOG_TAIL = 100

# Process exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

# Health endpoint marker
HEALTH_STATUS_UP = "UP"
