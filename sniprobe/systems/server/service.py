"""
SniProbe — SNI Observation Server

The control side of the demo. Accepts TLS connections on a loopback port,
one at a time, and records which SNI host name (if any) each connection
presented.

Every accepted connection gets its own server SSLContext with its own
one-shot SniObserver as ``sni_callback``. The server therefore keeps no
TLS state across connections: whatever it observes is what the client
sent on that connection.

Per connection:
  1. Wrap the raw socket, handshake under a timeout
  2. Resolve the observer (host name, or "no SNI" on handshake completion)
  3. Append an SniObservation to the log
  4. Write the single acknowledgement byte and close

Handshake failures are recorded and logged; nothing a client does can stop
the accept loop.
"""

from __future__ import annotations

import contextvars
import socket
import ssl
import threading
from types import TracebackType
from typing import TYPE_CHECKING

import structlog

from sniprobe.credentials import load_identity
from sniprobe.errors import AcceptError, BindError, CredentialLoadError, HandshakeError
from sniprobe.primitives.probe import ACK_BYTE, SniObservation
from sniprobe.systems.server.observer import ObservationLog, SniObserver

if TYPE_CHECKING:
    from sniprobe.config import ServerConfig
    from sniprobe.primitives.probe import CredentialBundle

logger = structlog.get_logger("sniprobe.systems.server.service")


class SniObservationServer:
    """
    Sequential TLS server that observes SNI per accepted connection.

    Use ``start()`` + ``accept_loop()`` to drive it from your own thread, or
    ``run_in_background()`` / the context manager protocol to get a daemon
    thread.
    """

    system_id: str = "sni_observation_server"

    def __init__(
        self,
        credentials: CredentialBundle,
        host: str = "127.0.0.1",
        port: int = 0,
        backlog: int = 50,
        handshake_timeout_s: float = 10.0,
        accept_poll_interval_s: float = 0.2,
        observe_sni: bool = True,
    ) -> None:
        self._credentials = credentials
        self._host = host
        self._requested_port = port
        self._backlog = backlog
        self._handshake_timeout_s = handshake_timeout_s
        self._accept_poll_interval_s = accept_poll_interval_s
        self._observe_sni = observe_sni
        self._sock: socket.socket | None = None
        self._port: int = 0
        self._thread: threading.Thread | None = None
        self._stopping = threading.Event()
        self._log = ObservationLog()
        self._logger = logger.bind(component="sni_server")

    @classmethod
    def from_config(
        cls, config: ServerConfig, credentials: CredentialBundle
    ) -> SniObservationServer:
        return cls(
            credentials,
            host=config.host,
            port=config.port,
            backlog=config.backlog,
            handshake_timeout_s=config.handshake_timeout_s,
            accept_poll_interval_s=config.accept_poll_interval_s,
            observe_sni=config.observe_sni,
        )

    # ─── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> int:
        """Bind the listening socket and return the bound port."""
        if self._sock is not None:
            return self._port

        try:
            sock = socket.create_server(
                (self._host, self._requested_port),
                backlog=self._backlog,
            )
        except OSError as exc:
            raise BindError(
                f"Cannot bind {self._host}:{self._requested_port}: {exc}"
            ) from exc

        # Wake up periodically so stop() is noticed
        sock.settimeout(self._accept_poll_interval_s)
        self._sock = sock
        self._port = sock.getsockname()[1]
        self._stopping.clear()
        self._logger.info("server_bound", host=self._host, port=self._port)
        return self._port

    def accept_loop(self) -> None:
        """Accept and serve connections one at a time until stop()."""
        sock = self._sock
        if sock is None:
            raise BindError("Server must be started before accepting connections")

        self._logger.info("accept_loop_started", port=self._port)
        while not self._stopping.is_set():
            try:
                raw, peer = sock.accept()
            except TimeoutError:
                continue
            except OSError as exc:
                if self._stopping.is_set():
                    break
                error = AcceptError(f"accept() on port {self._port} failed: {exc}")
                self._logger.warning("accept_failed", error=str(error))
                continue
            self._serve_connection(raw, f"{peer[0]}:{peer[1]}")
        self._logger.info("accept_loop_stopped", observations=len(self._log))

    def run_in_background(self) -> int:
        """
        Start the server and run the accept loop on a daemon thread.

        The thread runs in a copy of the caller's context, so log context
        bound before the call (run id, SNI policy) reaches server events too.
        """
        port = self.start()
        if self._thread is None or not self._thread.is_alive():
            context = contextvars.copy_context()
            self._thread = threading.Thread(
                target=context.run,
                args=(self.accept_loop,),
                name="sni-observation-server",
                daemon=True,
            )
            self._thread.start()
        return port

    def stop(self) -> None:
        """Stop accepting and release the listening socket."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join(
                timeout=self._accept_poll_interval_s + self._handshake_timeout_s + 1.0
            )
            self._thread = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        self._logger.info("server_stopped", observations=len(self._log))

    def __enter__(self) -> SniObservationServer:
        self.run_in_background()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    # ─── Connection Handling ────────────────────────────────────────

    def _connection_context(self, observer: SniObserver) -> ssl.SSLContext:
        """A server context that lives for exactly one connection."""
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        load_identity(context, self._credentials)
        if self._observe_sni:
            context.sni_callback = observer.on_server_name
        return context

    def _serve_connection(self, raw: socket.socket, peer: str) -> None:
        observer = SniObserver()
        log = self._logger.bind(peer=peer)

        with raw:
            raw.settimeout(self._handshake_timeout_s)
            try:
                context = self._connection_context(observer)
            except CredentialLoadError as exc:
                error = AcceptError(f"No TLS context for {peer}: {exc}")
                record = self._record(peer, observer, handshake_completed=False, error=error)
                log.error("connection_context_failed", index=record.index, error=str(error))
                return

            try:
                tls = context.wrap_socket(
                    raw, server_side=True, do_handshake_on_connect=False,
                )
            except OSError as exc:
                error = AcceptError(f"Could not wrap connection from {peer}: {exc}")
                record = self._record(peer, observer, handshake_completed=False, error=error)
                log.warning("wrap_failed", index=record.index, error=str(error))
                return

            # tls now owns the file descriptor
            with tls:
                try:
                    tls.do_handshake()
                except OSError as exc:
                    error = HandshakeError(f"Server handshake with {peer} failed: {exc}")
                    record = self._record(
                        peer, observer, handshake_completed=False, error=error,
                    )
                    log.warning(
                        "server_handshake_failed",
                        index=record.index,
                        server_name=record.observed_sni,
                        error=str(error),
                    )
                    return

                observer.on_handshake_complete()
                cipher = tls.cipher()
                record = self._record(
                    peer,
                    observer,
                    handshake_completed=True,
                    tls_version=tls.version(),
                    cipher=cipher[0] if cipher else None,
                )
                if record.sni_observed:
                    log.info(
                        "sni_received",
                        index=record.index,
                        server_name=record.observed_sni,
                        tls_version=record.tls_version,
                    )
                elif self._observe_sni:
                    log.info("sni_not_received", index=record.index)
                else:
                    log.info("sni_not_observed", index=record.index)

                try:
                    tls.sendall(ACK_BYTE)
                except OSError as exc:
                    error = AcceptError(f"Could not acknowledge {peer}: {exc}")
                    log.warning("ack_failed", index=record.index, error=str(error))

    def _record(
        self,
        peer: str,
        observer: SniObserver,
        handshake_completed: bool,
        error: Exception | None = None,
        tls_version: str | None = None,
        cipher: str | None = None,
    ) -> SniObservation:
        observed = observer.result(timeout=0) if observer.resolved else None
        return self._log.append(
            peer=peer,
            observer_installed=self._observe_sni,
            sni_observed=observed is not None,
            observed_sni=observed,
            handshake_completed=handshake_completed,
            tls_version=tls_version,
            cipher=cipher,
            error=str(error) if error else None,
        )

    # ─── Introspection ──────────────────────────────────────────────

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def observations(self) -> ObservationLog:
        return self._log

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
