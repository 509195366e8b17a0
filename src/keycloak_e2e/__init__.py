"""
Keycloak deployment verification harness.

Provisions an ephemeral kind cluster, installs the Keycloak operator and a
minimal Keycloak deployment, then verifies it end to end:
- Readiness barriers with bounded deadlines and diagnostics on failure
- Managed port-forward tunnel with guaranteed shutdown
- Reachability and health checks over HTTPS
- Cluster teardown on every exit path
"""

__version__ = "0.1.0"
