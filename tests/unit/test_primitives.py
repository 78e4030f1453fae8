"""
Unit tests for probe primitives: connection parameter validation and
DemoReport queries.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from sniprobe.primitives.probe import (
    ACK_BYTE,
    ConnectionIntent,
    ConnectionParameters,
    DemoReport,
    ProbeResult,
    ReportEntry,
    SniObservation,
    SniVerdict,
    validate_host_name,
)


def _entry(
    sequence: int,
    requested: str | None,
    observed: str | None,
    verdict: SniVerdict,
    reuse: bool = True,
) -> ReportEntry:
    return ReportEntry(
        intent=ConnectionIntent(
            sequence=sequence,
            host="127.0.0.1",
            port=4433,
            requested_sni=requested,
            reuse_context=reuse,
        ),
        observation=SniObservation(
            index=sequence,
            sni_observed=observed is not None,
            observed_sni=observed,
            handshake_completed=True,
        ),
        verdict=verdict,
    )


# ─── Connection Parameters ───────────────────────────────────────


class TestConnectionParameters:
    def test_unset_by_default(self):
        assert ConnectionParameters().server_names is None

    def test_empty_list_means_unset(self):
        assert ConnectionParameters(server_names=[]).server_names is None

    def test_assignment_is_validated(self):
        params = ConnectionParameters()
        params.server_names = ["alpha.example"]
        assert params.server_names == ["alpha.example"]
        with pytest.raises(ValidationError):
            params.server_names = ["10.0.0.1"]

    @pytest.mark.parametrize("name", ["", "::1", "192.168.1.1", "bücher.example"])
    def test_rejects_names_sni_cannot_carry(self, name: str):
        with pytest.raises(ValueError):
            validate_host_name(name)

    def test_accepts_plain_dns_names(self):
        assert validate_host_name("snihostname") == "snihostname"
        assert validate_host_name("xn--bcher-kva.example") == "xn--bcher-kva.example"


# ─── Probe Result ────────────────────────────────────────────────


class TestProbeResult:
    def test_acknowledged_only_for_ack_byte(self):
        assert ProbeResult(ack=ACK_BYTE).acknowledged
        assert not ProbeResult(ack=b"").acknowledged
        assert not ProbeResult(ack=b"\x00").acknowledged


# ─── Demo Report ─────────────────────────────────────────────────


class TestDemoReport:
    def test_requested_and_observed_per_pass(self):
        report = DemoReport(entries=[
            _entry(0, "alpha.example", "alpha.example", SniVerdict.MATCH, reuse=True),
            _entry(1, None, "alpha.example", SniVerdict.LEAKED, reuse=True),
            _entry(2, "alpha.example", "alpha.example", SniVerdict.MATCH, reuse=False),
            _entry(3, None, None, SniVerdict.MATCH, reuse=False),
        ])
        assert report.requested(True) == ["alpha.example", None]
        assert report.observed(True) == ["alpha.example", "alpha.example"]
        assert report.observed(False) == ["alpha.example", None]
        assert [e.intent.sequence for e in report.leaks()] == [1]

    def test_defect_reproduced_only_when_fresh_contexts_are_clean(self):
        clean_fresh = DemoReport(entries=[
            _entry(0, None, "alpha.example", SniVerdict.LEAKED, reuse=True),
            _entry(1, None, None, SniVerdict.MATCH, reuse=False),
        ])
        assert clean_fresh.defect_reproduced

        leaky_fresh = DemoReport(entries=[
            _entry(0, None, "alpha.example", SniVerdict.LEAKED, reuse=True),
            _entry(1, None, "alpha.example", SniVerdict.LEAKED, reuse=False),
        ])
        assert not leaky_fresh.defect_reproduced

        no_leaks = DemoReport(entries=[
            _entry(0, None, None, SniVerdict.MATCH, reuse=True),
        ])
        assert not no_leaks.defect_reproduced

    def test_observed_is_none_without_observation(self):
        entry = ReportEntry(
            intent=ConnectionIntent(sequence=0, host="127.0.0.1", port=1),
            verdict=SniVerdict.FAILED,
            error="boom",
        )
        assert entry.observed_sni is None
        assert DemoReport(entries=[entry]).failures() == [entry]
