"""
Service layer for the verification harness.

This module provides the cluster lifecycle guard and the orchestrator that
drives a verification run stage by stage.
"""

from .cluster import KindCluster, ProvisionedCluster
from .orchestrator import VerificationOrchestrator

__all__ = [
    "KindCluster",
    "ProvisionedCluster",
    "VerificationOrchestrator",
]
