"""
SniProbe — Telemetry

Structured logging setup.
"""

from sniprobe.telemetry.logging import bind_run_context, setup_logging

__all__ = ["bind_run_context", "setup_logging"]
