"""
SniProbe — SNI Probing Client

Opens one TLS connection per call, optionally declaring an SNI host name,
completes the handshake and reads the server's single acknowledgement byte.
Sockets are closed on every exit path.
"""

from __future__ import annotations

import socket
import ssl
from typing import TYPE_CHECKING

import structlog

from sniprobe.errors import AcknowledgementError, HandshakeError
from sniprobe.primitives.probe import ACK_BYTE, ProbeResult

if TYPE_CHECKING:
    from sniprobe.systems.client.context import ClientContextHandle

logger = structlog.get_logger("sniprobe.systems.client.prober")


def _read_exactly(tls: ssl.SSLSocket, size: int) -> bytes:
    """Read ``size`` bytes, or fewer if the peer closes first."""
    buf = bytearray()
    while len(buf) < size:
        chunk = tls.recv(size - len(buf))
        if not chunk:
            break
        buf += chunk
    return bytes(buf)


class SniProbingClient:
    """Drives single TLS connections against the observation server."""

    def __init__(self, connect_timeout_s: float = 10.0) -> None:
        self._connect_timeout_s = connect_timeout_s
        self._logger = logger.bind(component="sni_client")

    def connect(
        self,
        handle: ClientContextHandle,
        server_address: str,
        server_port: int,
        sni_hostname: str | None = None,
    ) -> ProbeResult:
        """
        Connect, handshake and read the acknowledgement.

        The server name list is set to ``[sni_hostname]`` only when a name is
        given; otherwise the parameters are left as the handle seeded them.

        Raises HandshakeError if the host name cannot travel in SNI or the
        connection or handshake fails, and AcknowledgementError if the
        acknowledgement byte does not arrive.
        """
        target = f"{server_address}:{server_port}"
        parameters = handle.connection_parameters()
        inherited = parameters.server_names
        if sni_hostname is not None:
            try:
                parameters.server_names = [sni_hostname]
            except ValueError as exc:
                # Refused before any socket is opened or the handle is touched
                raise HandshakeError(
                    f"Cannot offer SNI {sni_hostname!r} to {target}: {exc}"
                ) from exc
        sent_sni = handle.apply(parameters)

        log = self._logger.bind(
            target=target,
            generation=handle.generation,
            requested_sni=sni_hostname,
        )
        log.info(
            "client_connecting",
            current_server_names=inherited,
            server_names=parameters.server_names,
            sent_sni=sent_sni,
        )

        try:
            raw = socket.create_connection(
                (server_address, server_port), timeout=self._connect_timeout_s,
            )
        except OSError as exc:
            raise HandshakeError(f"Cannot connect to {target}: {exc}") from exc

        with raw:
            try:
                tls = handle.ssl_context.wrap_socket(
                    raw, server_hostname=sent_sni, do_handshake_on_connect=False,
                )
            except OSError as exc:
                raise HandshakeError(f"Cannot start TLS with {target}: {exc}") from exc

            with tls:
                try:
                    tls.do_handshake()
                except OSError as exc:
                    raise HandshakeError(
                        f"Handshake with {target} failed (sni={sent_sni!r}): {exc}"
                    ) from exc

                cipher = tls.cipher()
                tls_version = tls.version()

                try:
                    ack = _read_exactly(tls, len(ACK_BYTE))
                except OSError as exc:
                    raise AcknowledgementError(
                        f"Reading acknowledgement from {target} failed: {exc}"
                    ) from exc

        if ack != ACK_BYTE:
            raise AcknowledgementError(
                f"Expected acknowledgement {ACK_BYTE!r} from {target}, got {ack!r}"
            )

        log.info("client_acknowledged", sent_sni=sent_sni, tls_version=tls_version)
        return ProbeResult(
            requested_sni=sni_hostname,
            inherited_server_names=inherited,
            sent_sni=sent_sni,
            ack=ack,
            tls_version=tls_version,
            cipher=cipher[0] if cipher else None,
            context_generation=handle.generation,
        )
