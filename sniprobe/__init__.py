"""
SniProbe — SNI state leakage harness

A loopback TLS server that records the SNI host name of every connection,
and a client that probes it through shared or fresh TLS contexts to show
whether per-connection server names bleed into later connections.
"""

__version__ = "0.1.0"
