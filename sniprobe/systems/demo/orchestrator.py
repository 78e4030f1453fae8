"""
SniProbe — Demo Orchestrator

Runs the scripted connection sequence and builds the DemoReport.

For each reuse mode (reused context first, then a fresh context per
connection) and for each scripted host name: obtain a context handle,
connect, then read the server observation whose log index equals the log
length captured just before the attempt. Connections are issued one at a
time and each waits for its acknowledgement, so the server sees them in
issue order.

Client-side failures are recorded in the report and the sequence goes on.
Nothing is retried.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

import structlog

from sniprobe.errors import AcknowledgementError, HandshakeError
from sniprobe.primitives.common import utc_now
from sniprobe.primitives.probe import (
    ConnectionIntent,
    DemoReport,
    ReportEntry,
    SniVerdict,
)
from sniprobe.systems.demo.report import classify

if TYPE_CHECKING:
    from sniprobe.systems.client.context import TLSContextManager
    from sniprobe.systems.client.prober import SniProbingClient
    from sniprobe.systems.server.service import SniObservationServer

logger = structlog.get_logger("sniprobe.systems.demo.orchestrator")

DEFAULT_HOSTNAMES: tuple[str | None, ...] = ("alpha.example", "beta.example", None)


class DemoOrchestrator:
    """Sequences probing connections and pairs them with server observations."""

    def __init__(
        self,
        server: SniObservationServer,
        contexts: TLSContextManager,
        client: SniProbingClient,
        hostnames: Sequence[str | None] = DEFAULT_HOSTNAMES,
        prime_without_sni: bool = False,
        observation_timeout_s: float = 2.0,
    ) -> None:
        self._server = server
        self._contexts = contexts
        self._client = client
        self._hostnames = list(hostnames)
        self._prime_without_sni = prime_without_sni
        self._observation_timeout_s = observation_timeout_s
        self._sequence = 0
        self._logger = logger.bind(component="demo_orchestrator")

    @property
    def script(self) -> list[str | None]:
        """Host names requested by one pass, in order."""
        if self._prime_without_sni:
            return [None, *self._hostnames]
        return list(self._hostnames)

    def run(self, reuse_modes: Iterable[bool] = (True, False)) -> DemoReport:
        report = DemoReport(sni_policy=self._contexts.policy)
        for reuse in reuse_modes:
            report.entries.extend(self.run_pass(reuse))
        report.finished_at = utc_now()

        self._logger.info(
            "demo_finished",
            connections=len(report.entries),
            leaks=len(report.leaks()),
            failures=len(report.failures()),
            defect_reproduced=report.defect_reproduced,
        )
        return report

    def run_pass(self, reuse_context: bool) -> list[ReportEntry]:
        """One scripted pass with a single reuse mode."""
        self._logger.info(
            "demo_pass_started",
            reuse_context=reuse_context,
            script=self.script,
        )
        entries: list[ReportEntry] = []
        for requested in self.script:
            entries.append(self._probe(requested, reuse_context, entries))
        self._logger.info(
            "demo_pass_finished",
            reuse_context=reuse_context,
            requested=[e.intent.requested_sni for e in entries],
            observed=[e.observed_sni for e in entries],
        )
        return entries

    def _probe(
        self,
        requested: str | None,
        reuse_context: bool,
        earlier: list[ReportEntry],
    ) -> ReportEntry:
        intent = ConnectionIntent(
            sequence=self._sequence,
            host=self._server.host,
            port=self._server.port,
            requested_sni=requested,
            reuse_context=reuse_context,
        )
        self._sequence += 1
        log = self._logger.bind(
            sequence=intent.sequence,
            reuse_context=reuse_context,
            requested_sni=requested,
        )

        observations = self._server.observations
        index = len(observations)
        handle = self._contexts.get_or_create_context(reuse_context)

        try:
            result = self._client.connect(handle, intent.host, intent.port, requested)
        except (HandshakeError, AcknowledgementError) as exc:
            phase = "handshake" if isinstance(exc, HandshakeError) else "acknowledgement"
            observation = observations.wait_for(index, self._observation_timeout_s)
            log.warning(
                "probe_failed",
                phase=phase,
                error=str(exc),
                server_index=observation.index if observation else None,
            )
            return ReportEntry(
                intent=intent,
                observation=observation,
                verdict=SniVerdict.FAILED,
                error=str(exc),
            )

        observation = observations.wait_for(index, self._observation_timeout_s)
        verdict, leaked_from = classify(requested, observation, earlier)
        entry = ReportEntry(
            intent=intent,
            result=result,
            observation=observation,
            verdict=verdict,
            leaked_from=leaked_from,
        )

        if verdict == SniVerdict.UNOBSERVED:
            log.error("observation_missing", server_index=index)
        elif verdict == SniVerdict.NOT_OBSERVED:
            log.info("sni_not_checked", sent_sni=result.sent_sni, server_index=index)
        elif verdict == SniVerdict.LEAKED:
            log.warning(
                "sni_leaked",
                observed_sni=entry.observed_sni,
                sent_sni=result.sent_sni,
                leaked_from=leaked_from,
                generation=result.context_generation,
            )
        else:
            log.info(
                "sni_matched",
                observed_sni=entry.observed_sni,
                generation=result.context_generation,
            )
        return entry
