"""
Tests package - Unit test suite for the Keycloak deployment verification harness.

Contains:
- unit/: Unit tests for individual components, run without a cluster
"""
