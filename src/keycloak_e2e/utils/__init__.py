"""Utilities for driving kind, kubectl, openssl and the Kubernetes API."""
