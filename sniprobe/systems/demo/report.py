"""
SniProbe — Report Classification & Rendering

Compares what each connection requested with what the server observed,
and renders a finished DemoReport as human-readable trace lines. The text
layout is for people, not for parsing.
"""

from __future__ import annotations

from sniprobe.primitives.probe import (
    DemoReport,
    ReportEntry,
    SniObservation,
    SniVerdict,
)


def classify(
    requested: str | None,
    observation: SniObservation | None,
    earlier: list[ReportEntry],
) -> tuple[SniVerdict, int | None]:
    """
    Verdict for one successful connection, plus the sequence number of the
    earliest prior connection in the same pass that requested the host name
    the server actually saw (only for LEAKED).

    A server without an SNI observer records no host name at all, so its
    records cannot be compared and yield NOT_OBSERVED.
    """
    if observation is None:
        return SniVerdict.UNOBSERVED, None
    if not observation.observer_installed:
        return SniVerdict.NOT_OBSERVED, None
    if observation.observed_sni == requested:
        return SniVerdict.MATCH, None
    for entry in earlier:
        if entry.intent.requested_sni == observation.observed_sni:
            return SniVerdict.LEAKED, entry.intent.sequence
    return SniVerdict.LEAKED, None


def _fmt(name: str | None) -> str:
    return name if name is not None else "<none>"


def render_entry(entry: ReportEntry) -> str:
    intent = entry.intent
    line = (
        f"#{intent.sequence:<3} reuse={str(intent.reuse_context).lower():<5} "
        f"requested={_fmt(intent.requested_sni):<20} "
    )
    if entry.verdict == SniVerdict.FAILED:
        return line + f"FAILED: {entry.error}"
    if entry.verdict == SniVerdict.UNOBSERVED:
        return line + "UNOBSERVED: server kept no record"
    if entry.verdict == SniVerdict.NOT_OBSERVED:
        return line + "NOT OBSERVED: server had no SNI observer"

    line += f"observed={_fmt(entry.observed_sni):<20} {entry.verdict.value.upper()}"
    if entry.leaked_from is not None:
        line += f" (from #{entry.leaked_from})"
    return line


def render_report(report: DemoReport) -> str:
    lines = [f"**** SNI REPORT (sni_policy={report.sni_policy.value}) ****"]
    for reuse in (True, False):
        entries = report.pass_entries(reuse)
        if not entries:
            continue
        lines.append("")
        lines.append(f"-- reuseContext={str(reuse).lower()} --")
        lines.extend(render_entry(e) for e in entries)

    lines.append("")
    leaks = report.leaks()
    if report.defect_reproduced:
        lines.append(
            f"Defect reproduced: {len(leaks)} connection(s) on a reused context "
            "presented another connection's SNI state."
        )
    elif leaks:
        lines.append(
            f"{len(leaks)} connection(s) presented unexpected SNI state, "
            "including on fresh contexts."
        )
    elif any(e.verdict == SniVerdict.MATCH for e in report.entries):
        lines.append("No SNI state leaked between connections.")
    else:
        lines.append("No connection could be checked for SNI state.")
    failures = report.failures()
    if failures:
        lines.append(f"{len(failures)} connection(s) failed.")
    unchecked = report.not_observed()
    if unchecked:
        lines.append(
            f"{len(unchecked)} connection(s) not checked: "
            "the server ran without an SNI observer."
        )
    return "\n".join(lines)
