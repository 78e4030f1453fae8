"""
SniProbe — SNI Observer and Observation Log

SniObserver is a one-shot, per-connection notification: it resolves exactly
once, either with the host name the client presented or with "no SNI" when
the handshake completes without one. It is installed as the ``sni_callback``
of a server context that exists for a single connection only, so nothing
it sees can bleed into another connection.

ObservationLog is the append-only, ordered record of every accepted
connection, shared between the server thread and the orchestrator.
"""

from __future__ import annotations

import ssl
import threading
from concurrent.futures import Future
from typing import Any, Iterator

from sniprobe.primitives.probe import SniObservation


class SniObserver:
    """
    Single-resolution SNI notification for one accepted connection.

    ``on_server_name`` is the ``sni_callback`` entry point. OpenSSL invokes it
    with ``server_name=None`` when the client sent no extension; that case
    is left to ``on_handshake_complete`` so the outcome is always decided by
    whichever event fires first with information.
    """

    def __init__(self) -> None:
        self._future: Future[str | None] = Future()
        self.invocations = 0

    def on_server_name(
        self,
        ssl_socket: ssl.SSLSocket | ssl.SSLObject,
        server_name: str | None,
        ssl_context: ssl.SSLContext,
    ) -> None:
        # Returning None lets the handshake continue for any name, known or not
        self.invocations += 1
        if server_name is not None:
            self._resolve(server_name)

    def on_handshake_complete(self) -> None:
        self._resolve(None)

    def _resolve(self, server_name: str | None) -> None:
        if not self._future.done():
            self._future.set_result(server_name)

    @property
    def resolved(self) -> bool:
        return self._future.done()

    @property
    def sni_observed(self) -> bool:
        return self.resolved and self._future.result() is not None

    def result(self, timeout: float | None = None) -> str | None:
        """The presented host name, or None when the client sent none."""
        return self._future.result(timeout=timeout)


class ObservationLog:
    """
    Thread-safe, append-only sequence of SniObservation records.

    The record's ``index`` is assigned on append and equals its position,
    so the orchestrator can pair connections with observations by order.
    """

    def __init__(self) -> None:
        self._records: list[SniObservation] = []
        self._cond = threading.Condition()

    def append(self, **fields: Any) -> SniObservation:
        with self._cond:
            record = SniObservation(index=len(self._records), **fields)
            self._records.append(record)
            self._cond.notify_all()
        return record

    def wait_for(self, index: int, timeout: float) -> SniObservation | None:
        """Block until the record at ``index`` exists; None on timeout."""
        with self._cond:
            if self._cond.wait_for(lambda: len(self._records) > index, timeout):
                return self._records[index]
        return None

    def snapshot(self) -> list[SniObservation]:
        with self._cond:
            return list(self._records)

    def __len__(self) -> int:
        with self._cond:
            return len(self._records)

    def __getitem__(self, index: int) -> SniObservation:
        with self._cond:
            return self._records[index]

    def __iter__(self) -> Iterator[SniObservation]:
        return iter(self.snapshot())
