"""
SniProbe — Probe Primitives

The data that flows between the probing client, the observation server
and the demo orchestrator:

  ConnectionParameters — mutable per-connection TLS settings (server names)
  ConnectionIntent     — what the orchestrator asked one connection to do
  ProbeResult          — what the client actually did on that connection
  SniObservation       — what the server saw on one accepted connection
  ReportEntry          — one {intent, observation} pair plus its verdict
  DemoReport           — the ordered result of a demo run
"""

from __future__ import annotations

import enum
import ipaddress
from datetime import datetime
from pathlib import Path

from pydantic import Field, field_validator

from sniprobe.primitives.common import (
    Identified,
    ProbeBaseModel,
    Timestamped,
    new_id,
    utc_now,
)

# The single application byte the server writes after every handshake.
ACK_BYTE: bytes = b"\xff"

# RFC 6066 caps host_name at 2^16 - 1 bytes; DNS caps it much lower.
_MAX_HOST_NAME_LENGTH = 253


def validate_host_name(name: str) -> str:
    """
    Check that ``name`` can travel in an SNI host_name entry.

    The extension carries ASCII DNS names only; IP literals are not
    permitted and are silently dropped by OpenSSL, so they are refused here.
    """
    if not name:
        raise ValueError("SNI host name must not be empty")
    if not name.isascii():
        raise ValueError(f"SNI host name must be ASCII: {name!r}")
    if len(name) > _MAX_HOST_NAME_LENGTH:
        raise ValueError(f"SNI host name too long ({len(name)} chars)")
    try:
        ipaddress.ip_address(name)
    except ValueError:
        return name
    raise ValueError(f"SNI host name must not be an IP literal: {name!r}")


# ─── Credentials ──────────────────────────────────────────────────


class CredentialBundle(ProbeBaseModel):
    """
    Identity and trust material shared by the server and the client.

    Materialised from a password-protected key store. The certificate and
    the encrypted private key live as PEM files because ``ssl`` only loads
    certificate chains from disk.
    """

    model_config = {"frozen": True}

    keystore_path: Path
    cert_path: Path
    key_path: Path
    password: str
    trust_pem: str
    subject: str
    fingerprint_sha256: str


# ─── Connection Parameters ────────────────────────────────────────


class SniPolicy(str, enum.Enum):
    """
    How a client context handle treats per-connection server names.

    PER_CONNECTION is what Python's ``ssl`` actually does. STICKY_FIRST
    reproduces stacks that cache the first connection's server names inside
    the shared context and ignore every later per-connection setting.
    """

    PER_CONNECTION = "per_connection"
    STICKY_FIRST = "sticky_first"


class ConnectionParameters(ProbeBaseModel):
    """
    Per-connection TLS parameters, handed out by a client context handle.

    ``server_names`` is ``None`` when unset. An empty list means the same
    thing and is normalised to ``None``: in both cases the SNI extension is
    omitted from the ClientHello.
    """

    model_config = {"validate_assignment": True}

    server_names: list[str] | None = None

    @field_validator("server_names")
    @classmethod
    def _check_server_names(cls, value: list[str] | None) -> list[str] | None:
        if not value:
            return None
        return [validate_host_name(name) for name in value]


# ─── Client Side ──────────────────────────────────────────────────


class ConnectionIntent(Identified, Timestamped):
    """One probing attempt as scripted by the orchestrator."""

    sequence: int
    host: str
    port: int
    requested_sni: str | None = None
    reuse_context: bool = True


class ProbeResult(ProbeBaseModel):
    """The client's side of one completed connection."""

    requested_sni: str | None = None
    # What the handle's parameters already carried before this connection set anything
    inherited_server_names: list[str] | None = None
    sent_sni: str | None = None
    ack: bytes = b""
    tls_version: str | None = None
    cipher: str | None = None
    context_generation: int = 0

    @property
    def acknowledged(self) -> bool:
        return self.ack == ACK_BYTE


# ─── Server Side ──────────────────────────────────────────────────


class SniObservation(ProbeBaseModel):
    """
    The server's record of one accepted connection.

    Written exactly once, after the handshake outcome is known. ``index``
    is the record's position in the observation log.
    """

    index: int
    connection_id: str = Field(default_factory=new_id)
    peer: str = ""
    observer_installed: bool = True
    sni_observed: bool = False
    observed_sni: str | None = None
    handshake_completed: bool = False
    tls_version: str | None = None
    cipher: str | None = None
    error: str | None = None
    observed_at: datetime = Field(default_factory=utc_now)


# ─── Report ───────────────────────────────────────────────────────


class SniVerdict(str, enum.Enum):
    """How an observation compares to the request that produced it."""

    MATCH = "match"                # Server saw exactly what was requested
    LEAKED = "leaked"              # Server saw something else (stale or foreign name)
    UNOBSERVED = "unobserved"      # Client succeeded but the server kept no record
    NOT_OBSERVED = "not_observed"  # Server ran without an SNI observer
    FAILED = "failed"              # Client-side handshake or acknowledgement failure


class ReportEntry(ProbeBaseModel):
    intent: ConnectionIntent
    result: ProbeResult | None = None
    observation: SniObservation | None = None
    verdict: SniVerdict
    error: str | None = None
    # Sequence number of the earlier connection whose hostname showed up here
    leaked_from: int | None = None

    @property
    def observed_sni(self) -> str | None:
        return self.observation.observed_sni if self.observation else None


class DemoReport(ProbeBaseModel):
    """Ordered {intent, observation} pairs of a complete demo run."""

    sni_policy: SniPolicy = SniPolicy.PER_CONNECTION
    entries: list[ReportEntry] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime | None = None

    def pass_entries(self, reuse_context: bool) -> list[ReportEntry]:
        return [e for e in self.entries if e.intent.reuse_context is reuse_context]

    def requested(self, reuse_context: bool) -> list[str | None]:
        return [e.intent.requested_sni for e in self.pass_entries(reuse_context)]

    def observed(self, reuse_context: bool) -> list[str | None]:
        return [e.observed_sni for e in self.pass_entries(reuse_context)]

    def leaks(self) -> list[ReportEntry]:
        return [e for e in self.entries if e.verdict == SniVerdict.LEAKED]

    def failures(self) -> list[ReportEntry]:
        return [e for e in self.entries if e.verdict == SniVerdict.FAILED]

    def not_observed(self) -> list[ReportEntry]:
        return [e for e in self.entries if e.verdict == SniVerdict.NOT_OBSERVED]

    @property
    def defect_reproduced(self) -> bool:
        """
        True when reusing a context leaked SNI state and fresh contexts did not.

        With only the reuse pass present, any leak in it counts.
        """
        reused_leaks = [
            e for e in self.pass_entries(True) if e.verdict == SniVerdict.LEAKED
        ]
        fresh_leaks = [
            e for e in self.pass_entries(False) if e.verdict == SniVerdict.LEAKED
        ]
        return bool(reused_leaks) and not fresh_leaks
