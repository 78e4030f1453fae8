"""
SniProbe — Client Side

Public interface:
  TLSContextManager   — cached or fresh client context handles
  ClientContextHandle — SSLContext plus its explicit SNI caching state
  SniProbingClient    — one TLS connection per call, reads the acknowledgement
"""

from sniprobe.systems.client.context import ClientContextHandle, TLSContextManager
from sniprobe.systems.client.prober import SniProbingClient

__all__ = ["ClientContextHandle", "SniProbingClient", "TLSContextManager"]
