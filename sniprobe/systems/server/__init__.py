"""
SniProbe — Observation Server

Accepts TLS connections on loopback and records, per connection, which SNI
host name the client presented. This is the reference side of the demo and
keeps no TLS state between connections.

Public interface:
  SniObservationServer — accept loop, handshake, observation, acknowledgement
  SniObserver          — one-shot per-connection SNI notification
  ObservationLog       — ordered, append-only record of accepted connections
"""

from sniprobe.systems.server.observer import ObservationLog, SniObserver
from sniprobe.systems.server.service import SniObservationServer

__all__ = ["ObservationLog", "SniObservationServer", "SniObserver"]
