"""
SniProbe — Error Hierarchy

All exceptions raised by the harness.

Severity guide:
  CredentialLoadError   FATAL   -- key store unreadable; startup aborts
  BindError             FATAL   -- listener could not bind; startup aborts
  HandshakeError        PER-CONNECTION -- recorded in the report, sequence continues
  AcknowledgementError  PER-CONNECTION -- recorded in the report, sequence continues
  AcceptError           PER-CONNECTION -- logged by the server, accept loop continues
"""

from __future__ import annotations


class SniProbeError(RuntimeError):
    """Base for all harness errors."""


class CredentialLoadError(SniProbeError):
    """
    The key store could not be read or parsed.

    Raised for a missing file, a wrong password or a malformed store, and
    when ``ssl`` refuses the extracted certificate or key.
    """


class BindError(SniProbeError):
    """The observation server could not bind its listening socket."""


class HandshakeError(SniProbeError):
    """A TLS connection did not get through its handshake."""


class AcknowledgementError(SniProbeError):
    """The handshake completed but the acknowledgement byte never arrived."""


class AcceptError(SniProbeError):
    """The server failed to accept or serve a connection outside the handshake."""
