"""Run summaries: aggregation, table rendering and exit codes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dns_roundrobin.models import OutcomeStatus, ReconciliationOutcome

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_PARTIAL = 3

_COUNTED = ("added4", "kept4", "removed4", "added6", "kept6", "removed6")


@dataclass
class RunSummary:
    rows: List[ReconciliationOutcome] = field(default_factory=list)
    totals: Dict[str, int] = field(default_factory=dict)
    aborted: bool = False

    @property
    def failures(self) -> List[Dict[str, str]]:
        """Every failure in the run, one entry per address or record."""
        failures: List[Dict[str, str]] = []
        for row in self.rows:
            record = f"{row.name}.{row.zone}" if row.name != "@" else row.zone
            if row.error:
                failures.append({"record": record, "address": "", "reason": row.error})
            for f in row.address_failures:
                failures.append(
                    {
                        "record": record,
                        "address": f.address,
                        "reason": f"{f.operation} {f.family.value}: {f.reason}",
                    }
                )
            for p in row.probe_failures:
                failures.append({"record": record, "address": p.address, "reason": p.describe()})
        return failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "aborted": self.aborted,
            "totals": dict(self.totals),
            "records": [row.to_dict() for row in self.rows],
            "failures": self.failures,
        }


def summarize(outcomes: Iterable[ReconciliationOutcome], *, aborted: bool = False) -> RunSummary:
    """Aggregate outcomes into a summary sorted by zone, then name."""
    rows = sorted(outcomes, key=lambda o: (o.zone, o.name))
    totals = {key: 0 for key in _COUNTED}
    totals.update({"records": len(rows), "probe_failures": 0, "backend_failures": 0})
    for status in OutcomeStatus:
        totals[status.value] = 0

    for row in rows:
        for key in _COUNTED:
            totals[key] += len(getattr(row, key))
        totals["probe_failures"] += len(row.probe_failures)
        totals["backend_failures"] += len(row.address_failures)
        totals[row.status.value] += 1

    return RunSummary(rows=rows, totals=totals, aborted=aborted)


def exit_code(summary: RunSummary) -> int:
    """0 on success, 1 if any record failed, 3 if only per-address changes failed."""
    if summary.aborted or summary.totals.get(OutcomeStatus.FAILED.value, 0):
        return EXIT_FAILED
    if summary.totals.get(OutcomeStatus.PARTIAL.value, 0):
        return EXIT_PARTIAL
    return EXIT_OK


def _fmt(addresses: List[str]) -> str:
    return "\n".join(addresses) if addresses else "-"


_STATUS_STYLES = {
    OutcomeStatus.OK: "[green]",
    OutcomeStatus.PARTIAL: "[yellow]",
    OutcomeStatus.FAILED: "[red]",
    OutcomeStatus.SKIPPED: "[dim]",
}


def render_table(summary: RunSummary, console: Console) -> None:
    title = "Round-robin reconciliation"
    if summary.rows and summary.rows[0].dry_run:
        title += " (dry run)"

    table = Table(title=title)
    table.add_column("Zone", style="cyan")
    table.add_column("Name", style="cyan")
    table.add_column("TTL", justify="right")
    table.add_column("Status")
    table.add_column("Added")
    table.add_column("Kept")
    table.add_column("Removed")
    table.add_column("Final")

    for row in summary.rows:
        status = row.status
        table.add_row(
            row.zone,
            row.name,
            str(row.ttl),
            f"{_STATUS_STYLES[status]}{status.value}[/]",
            _fmt(row.added4 + row.added6),
            _fmt(row.kept4 + row.kept6),
            _fmt(row.removed4 + row.removed6),
            _fmt(row.final4 + row.final6),
        )
    console.print(table)

    t = summary.totals
    console.print(
        f"Records: {t['records']}  "
        f"A +{t['added4']} ={t['kept4']} -{t['removed4']}  "
        f"AAAA +{t['added6']} ={t['kept6']} -{t['removed6']}"
    )

    failures = summary.failures
    if failures:
        console.print(f"\n[bold]Failures ({len(failures)}):[/]")
        for f in failures:
            address = f" {f['address']}" if f["address"] else ""
            console.print(f"  [red]✗[/] {escape(f['record'] + address)}: {escape(f['reason'])}")
    if summary.aborted:
        console.print("[red]Plan aborted after first error[/]")
