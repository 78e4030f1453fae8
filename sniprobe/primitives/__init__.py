"""
SniProbe — Primitives

Data types shared by every system. Import from here.
"""

from sniprobe.primitives.common import (
    Identified,
    ProbeBaseModel,
    Timestamped,
    new_id,
    utc_now,
)
from sniprobe.primitives.probe import (
    ACK_BYTE,
    ConnectionIntent,
    ConnectionParameters,
    CredentialBundle,
    DemoReport,
    ProbeResult,
    ReportEntry,
    SniObservation,
    SniPolicy,
    SniVerdict,
    validate_host_name,
)

__all__ = [
    "ACK_BYTE",
    "ConnectionIntent",
    "ConnectionParameters",
    "CredentialBundle",
    "DemoReport",
    "Identified",
    "ProbeBaseModel",
    "ProbeResult",
    "ReportEntry",
    "SniObservation",
    "SniPolicy",
    "SniVerdict",
    "Timestamped",
    "new_id",
    "utc_now",
    "validate_host_name",
]
