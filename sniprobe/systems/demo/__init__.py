"""
SniProbe — Demo

Public interface:
  DemoOrchestrator — scripted two-pass connection sequence
  classify         — requested vs. observed verdict
  render_report    — human-readable report text
"""

from sniprobe.systems.demo.orchestrator import DEFAULT_HOSTNAMES, DemoOrchestrator
from sniprobe.systems.demo.report import classify, render_entry, render_report

__all__ = [
    "DEFAULT_HOSTNAMES",
    "DemoOrchestrator",
    "classify",
    "render_entry",
    "render_report",
]
