"""
SniProbe — TLS Context Manager

Builds client-side TLS contexts bound to the credential bundle, either
once (cached and reused for the whole demo run) or fresh on every call.

Python's ``ssl`` never stores a connection's server name in the
SSLContext. To make the reuse defect observable on any stack, each context
is wrapped in a ClientContextHandle whose SNI caching is an explicit,
inspectable policy instead of a hidden platform internal:

  PER_CONNECTION — each connection sends what it asked for
  STICKY_FIRST   — the first connection through the handle pins whether and
                   which server names are sent; later settings are ignored
"""

from __future__ import annotations

import itertools
import ssl
from typing import TYPE_CHECKING, Any

import structlog

from sniprobe.credentials import load_identity
from sniprobe.errors import CredentialLoadError
from sniprobe.primitives.probe import ConnectionParameters, SniPolicy

if TYPE_CHECKING:
    from sniprobe.primitives.probe import CredentialBundle

logger = structlog.get_logger("sniprobe.systems.client.context")


class ClientContextHandle:
    """
    A client SSLContext plus the SNI state it carries between connections.

    ``generation`` identifies the handle among all handles minted by one
    TLSContextManager. ``pinned_server_names`` is the cached per-connection
    override under STICKY_FIRST and stays None under PER_CONNECTION.
    """

    def __init__(
        self,
        ssl_context: ssl.SSLContext,
        policy: SniPolicy,
        generation: int,
    ) -> None:
        self.ssl_context = ssl_context
        self.policy = policy
        self.generation = generation
        self.connections = 0
        self._pinned = False
        self._pinned_server_names: list[str] | None = None

    @property
    def pinned(self) -> bool:
        return self._pinned

    @property
    def pinned_server_names(self) -> list[str] | None:
        if self._pinned_server_names is None:
            return None
        return list(self._pinned_server_names)

    def connection_parameters(self) -> ConnectionParameters:
        """Fresh parameters for the next connection, seeded from the handle."""
        if self.policy == SniPolicy.STICKY_FIRST and self._pinned:
            return ConnectionParameters(server_names=self.pinned_server_names)
        return ConnectionParameters()

    def apply(self, parameters: ConnectionParameters) -> str | None:
        """
        Bind ``parameters`` to the next connection.

        Returns the host name that connection will send, or None when the
        SNI extension is to be omitted.
        """
        self.connections += 1
        names = parameters.server_names
        if self.policy == SniPolicy.STICKY_FIRST:
            if not self._pinned:
                self._pinned = True
                self._pinned_server_names = list(names) if names else None
            names = self._pinned_server_names
        # RFC 6066 allows one host_name per ClientHello
        return names[0] if names else None

    def __repr__(self) -> str:
        return (
            f"ClientContextHandle(generation={self.generation}, "
            f"policy={self.policy.value}, connections={self.connections}, "
            f"pinned_server_names={self._pinned_server_names!r})"
        )


class TLSContextManager:
    """
    Hands out client context handles, cached or fresh.

    Performs no network I/O.
    """

    def __init__(
        self,
        credentials: CredentialBundle,
        policy: SniPolicy = SniPolicy.PER_CONNECTION,
        verify_peer: bool = True,
    ) -> None:
        self._credentials = credentials
        self._policy = policy
        self._verify_peer = verify_peer
        self._cached: ClientContextHandle | None = None
        self._generations = itertools.count(1)
        self._minted = 0
        self._logger = logger.bind(component="context_manager", policy=policy.value)

    @property
    def policy(self) -> SniPolicy:
        return self._policy

    def get_or_create_context(self, reuse: bool) -> ClientContextHandle:
        """
        Return the cached handle when ``reuse`` is set (creating it on first
        use), otherwise a brand-new handle.

        Raises CredentialLoadError if the credentials cannot be loaded.
        """
        if not reuse:
            return self._mint()
        if self._cached is None:
            self._cached = self._mint()
            self._logger.info("context_cached", generation=self._cached.generation)
        return self._cached

    def reset(self) -> None:
        """Forget the cached handle; the next reuse call mints a new one."""
        self._cached = None

    def _mint(self) -> ClientContextHandle:
        handle = ClientContextHandle(
            ssl_context=self._build_ssl_context(),
            policy=self._policy,
            generation=next(self._generations),
        )
        self._minted += 1
        self._logger.debug("context_created", generation=handle.generation)
        return handle

    # ─── SSL Context ────────────────────────────────────────────────

    def _build_ssl_context(self) -> ssl.SSLContext:
        """
        Client context trusting the bundle certificate and presenting the
        bundle identity (the demo shares one keypair between both ends).
        """
        try:
            ctx = ssl.create_default_context(
                purpose=ssl.Purpose.SERVER_AUTH,
                cadata=self._credentials.trust_pem,
            )
        except ssl.SSLError as exc:
            raise CredentialLoadError(
                f"Trust anchors from {self._credentials.keystore_path} rejected: {exc}"
            ) from exc

        load_identity(ctx, self._credentials)

        # SNI names are arbitrary and never match the certificate
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_REQUIRED if self._verify_peer else ssl.CERT_NONE

        return ctx

    # ─── Stats ──────────────────────────────────────────────────────

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "policy": self._policy.value,
            "verify_peer": self._verify_peer,
            "contexts_minted": self._minted,
            "cached_generation": self._cached.generation if self._cached else None,
            "cached_pinned_server_names": (
                self._cached.pinned_server_names if self._cached else None
            ),
        }
