"""Logging and run-context tracking for verification runs."""

from .logging import set_run_id, set_stage, setup_structured_logging

__all__ = ["set_run_id", "set_stage", "setup_structured_logging"]
