"""Unit tests for run summaries."""

import io

from rich.console import Console

from dns_roundrobin.models import (
    AddressFailure,
    FamilyOutcome,
    ProbeFailure,
    ProbeType,
    ReconciliationOutcome,
    RecordFamily,
)
from dns_roundrobin.report import (
    EXIT_FAILED,
    EXIT_OK,
    EXIT_PARTIAL,
    exit_code,
    render_table,
    summarize,
)


def outcome(zone: str, name: str, **kwargs) -> ReconciliationOutcome:
    return ReconciliationOutcome(zone=zone, name=name, ttl=60, **kwargs)


def test_summarize_sorts_by_zone_then_name() -> None:
    outcomes = [
        outcome("fabrikam.com", "web"),
        outcome("contoso.com", "www"),
        outcome("contoso.com", "api"),
    ]

    summary = summarize(outcomes)

    assert [(r.zone, r.name) for r in summary.rows] == [
        ("contoso.com", "api"),
        ("contoso.com", "www"),
        ("fabrikam.com", "web"),
    ]


def test_summarize_counts_per_family() -> None:
    outcomes = [
        outcome(
            "contoso.com",
            "web",
            ipv4=FamilyOutcome(added=["10.0.0.2"], kept=["10.0.0.1"], removed=["10.0.0.9"]),
            ipv6=FamilyOutcome(added=["2001:db8::1", "2001:db8::2"]),
        ),
        outcome("contoso.com", "api", ipv4=FamilyOutcome(kept=["10.0.1.1"])),
    ]

    totals = summarize(outcomes).totals

    assert totals["records"] == 2
    assert (totals["added4"], totals["kept4"], totals["removed4"]) == (1, 2, 1)
    assert (totals["added6"], totals["kept6"], totals["removed6"]) == (2, 0, 0)
    assert totals["ok"] == 2


def test_summarize_does_not_mutate_input_order() -> None:
    outcomes = [outcome("b.com", "x"), outcome("a.com", "x")]

    summarize(outcomes)

    assert [o.zone for o in outcomes] == ["b.com", "a.com"]


def test_failures_are_enumerated_by_address() -> None:
    row = outcome(
        "contoso.com",
        "web",
        address_failures=[AddressFailure(RecordFamily.A, "10.0.0.2", "add", "refused")],
        probe_failures=[ProbeFailure("10.0.0.3", ProbeType.TCP, 443)],
    )

    failures = summarize([row]).failures

    assert {f["address"] for f in failures} == {"10.0.0.2", "10.0.0.3"}
    assert all(f["record"] == "web.contoso.com" for f in failures)


def test_exit_codes() -> None:
    ok = outcome("contoso.com", "web", probe_failures=[ProbeFailure("10.0.0.3", ProbeType.TCP, 443)])
    partial = outcome(
        "contoso.com",
        "api",
        address_failures=[AddressFailure(RecordFamily.A, "10.0.0.2", "remove", "refused")],
    )
    failed = outcome("contoso.com", "www", error="backend unreachable")

    assert exit_code(summarize([ok])) == EXIT_OK
    assert exit_code(summarize([ok, partial])) == EXIT_PARTIAL
    assert exit_code(summarize([ok, partial, failed])) == EXIT_FAILED
    assert exit_code(summarize([ok], aborted=True)) == EXIT_FAILED


def test_to_dict_is_json_ready() -> None:
    row = outcome("contoso.com", "web", ipv4=FamilyOutcome(final=["10.0.0.1"]))

    document = summarize([row]).to_dict()

    assert document["records"][0]["final4"] == ["10.0.0.1"]
    assert document["records"][0]["status"] == "ok"
    assert document["aborted"] is False


def test_render_table_lists_records_and_failures() -> None:
    buffer = io.StringIO()
    console = Console(file=buffer, width=200, color_system=None)
    row = outcome(
        "contoso.com",
        "web",
        ipv4=FamilyOutcome(added=["10.0.0.2"], final=["10.0.0.2"]),
        address_failures=[AddressFailure(RecordFamily.A, "10.0.0.9", "add", "refused")],
    )

    render_table(summarize([row]), console)

    text = buffer.getvalue()
    assert "contoso.com" in text
    assert "10.0.0.2" in text
    assert "10.0.0.9" in text
    assert "partial" in text
