#!/usr/bin/env python3
"""dns-roundrobin - Declarative round-robin DNS record sets

Reconciles A/AAAA round-robin record sets against a DNS zone backend, with
optional health probing of candidate addresses before they are published.

Supported DNS Backends:
    - powerdns: PowerDNS Authoritative Server HTTP API
    - file:     local JSON zone file

Commands:
    apply        Reconcile a single record from command line flags
    apply-plan   Reconcile every record in a CSV, JSON or YAML plan
    show         Print the addresses currently published for a name

Environment variables:

    Backend Selection:
        DNS_BACKEND            "powerdns" or "file" (default: powerdns)

    PowerDNS Backend:
        PDNS_URL               API base URL (default: http://127.0.0.1:8081)
        PDNS_API_KEY           X-API-Key value (optional)
        PDNS_SERVER_ID         Server id (default: localhost)

    Zone File Backend:
        ZONE_FILE_PATH         JSON zone file path (default: zones.json)

    Health Probes:
        PROBE_TIMEOUT_MS       Per-probe timeout (default: 1500)
        PROBE_WORKERS          Concurrent probes per record family (default: 16)

    Runtime:
        LOG_LEVEL              DEBUG, INFO, WARNING, ERROR (default: INFO)

Plan format (CSV columns, or keys of JSON/YAML objects):
    ZoneName, RecordName, IPv4, IPv6, TTL, ReplaceExisting,
    HealthProbe, ProbeType, ProbePort, ProbePath

    IPv4/IPv6 are semicolon-joined in CSV and lists in JSON/YAML. Global
    flags (--ttl, --replace/--merge, --health-probe, --probe-*) override
    every per-record value.

Exit status:
    0  all records reconciled
    1  at least one record failed, or the plan was stopped early
    2  configuration or validation error, nothing was changed
    3  some per-address changes failed
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from dns_roundrobin import config
from dns_roundrobin.backends import DNSBackend, create_dns_backend
from dns_roundrobin.errors import BackendOperationError, ConfigError, ZoneNotFound
from dns_roundrobin.models import PlanOverrides, ProbeType, RecordFamily, RecordIntent
from dns_roundrobin.plan import build_intent, load_plan
from dns_roundrobin.reconciler import Reconciler
from dns_roundrobin.report import EXIT_CONFIG_ERROR, exit_code, render_table, summarize

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="dns-roundrobin",
    help="Reconcile health-gated round-robin A/AAAA record sets",
    no_args_is_help=True,
)

console = Console()


class OutputFormat(str, Enum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"


class BackendKind(str, Enum):
    POWERDNS = "powerdns"
    FILE = "file"


class ProbeKind(str, Enum):
    TCP = "TCP"
    HTTP = "HTTP"


_DEFAULT_BACKEND = BackendKind.FILE if config.DNS_BACKEND == "file" else BackendKind.POWERDNS


@dataclass
class GlobalOptions:
    backend: str = config.DNS_BACKEND
    endpoint: str = ""
    api_key: str = config.PDNS_API_KEY
    server_id: str = config.PDNS_SERVER_ID

    def create_backend(self) -> DNSBackend:
        endpoint = self.endpoint or config.default_endpoint(self.backend)
        return create_dns_backend(self.backend, endpoint, self.api_key, self.server_id)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    backend: BackendKind = typer.Option(
        _DEFAULT_BACKEND, "--backend", "-b", help="DNS backend type"
    ),
    endpoint: str = typer.Option(
        "", "--endpoint", "-e", help="PowerDNS API URL or zone file path"
    ),
    api_key: str = typer.Option(config.PDNS_API_KEY, "--api-key", help="PowerDNS API key"),
    server_id: str = typer.Option(config.PDNS_SERVER_ID, "--server-id", help="PowerDNS server id"),
    log_level: str = typer.Option(config.LOG_LEVEL, "--log-level", help="Logging level"),
):
    """Reconcile health-gated round-robin A/AAAA record sets."""
    _setup_logging(log_level)
    ctx.obj = GlobalOptions(
        backend=backend.value, endpoint=endpoint, api_key=api_key, server_id=server_id
    )


def _overrides(
    ttl: Optional[int],
    replace: Optional[bool],
    health_probe: Optional[bool],
    probe_type: Optional[ProbeKind],
    probe_port: Optional[int],
    probe_path: Optional[str],
) -> PlanOverrides:
    return PlanOverrides(
        ttl=ttl,
        replace_existing=replace,
        health_probe=health_probe,
        probe_type=ProbeType(probe_type.value) if probe_type else None,
        probe_port=probe_port,
        probe_path=probe_path,
    )


def _emit(summary, output: OutputFormat, report_file: Optional[Path]) -> None:
    document = json.dumps(summary.to_dict(), indent=2)
    if report_file:
        report_file.parent.mkdir(parents=True, exist_ok=True)
        report_file.write_text(document + "\n", "utf-8")
        logger.info(f"Report written to {report_file}")
    if output == OutputFormat.JSON:
        typer.echo(document)
    else:
        render_table(summary, console)


def _run(
    options: GlobalOptions,
    intents: List[RecordIntent],
    *,
    dry_run: bool,
    stop_on_error: bool,
    probe_timeout_ms: int,
    probe_workers: int,
    output: OutputFormat,
    report_file: Optional[Path],
) -> None:
    try:
        backend = options.create_backend()
    except ConfigError as e:
        logger.error(str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR)
    logger.info(f"DNS backend: {backend.name}")
    if dry_run:
        logger.info("Dry run: no changes will be made")

    if not backend.test_connection():
        logger.error(f"Cannot connect to {backend.name}. Exiting.")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    reconciler = Reconciler(
        backend,
        dry_run=dry_run,
        stop_on_error=stop_on_error,
        probe_timeout_ms=probe_timeout_ms,
        probe_workers=probe_workers,
    )
    try:
        result = reconciler.run_plan(intents)
    except ZoneNotFound as e:
        logger.error(str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR)
    except BackendOperationError as e:
        logger.error(f"Plan validation failed: {e}")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    summary = summarize(result.outcomes, aborted=result.aborted)
    _emit(summary, output, report_file)
    raise typer.Exit(exit_code(summary))


@app.command("apply")
def apply_record(
    ctx: typer.Context,
    zone: str = typer.Option(..., "--zone", "-z", help="DNS zone, e.g. contoso.com"),
    name: str = typer.Option(..., "--name", "-n", help="Record name, '@' for the apex"),
    ipv4: List[str] = typer.Option([], "--ipv4", help="IPv4 address (repeatable)"),
    ipv6: List[str] = typer.Option([], "--ipv6", help="IPv6 address (repeatable)"),
    ttl: Optional[int] = typer.Option(None, "--ttl", help="Record TTL in seconds (default 60)"),
    replace: Optional[bool] = typer.Option(
        None, "--replace/--merge", help="Remove published addresses not in the desired set"
    ),
    health_probe: Optional[bool] = typer.Option(
        None, "--health-probe/--no-health-probe", help="Probe candidates before publishing"
    ),
    probe_type: Optional[ProbeKind] = typer.Option(
        None, "--probe-type", case_sensitive=False, help="TCP or HTTP"
    ),
    probe_port: Optional[int] = typer.Option(None, "--probe-port", help="Probe port"),
    probe_path: Optional[str] = typer.Option(None, "--probe-path", help="HTTP probe path"),
    probe_timeout_ms: int = typer.Option(config.PROBE_TIMEOUT_MS, "--probe-timeout-ms", min=1),
    probe_workers: int = typer.Option(config.PROBE_WORKERS, "--probe-workers", min=1),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report changes without applying"),
    stop_on_error: bool = typer.Option(False, "--stop-on-error"),
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o"),
    report_file: Optional[Path] = typer.Option(None, "--report-file", help="Write JSON report"),
):
    """Reconcile a single round-robin record."""
    row = {
        "ZoneName": zone,
        "RecordName": name,
        "IPv4": ";".join(ipv4),
        "IPv6": ";".join(ipv6),
    }
    try:
        intent = build_intent(
            row, _overrides(ttl, replace, health_probe, probe_type, probe_port, probe_path)
        )
    except ConfigError as e:
        logger.error(str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR)

    _run(
        ctx.obj,
        [intent],
        dry_run=dry_run,
        stop_on_error=stop_on_error,
        probe_timeout_ms=probe_timeout_ms,
        probe_workers=probe_workers,
        output=output,
        report_file=report_file,
    )


@app.command("apply-plan")
def apply_plan(
    ctx: typer.Context,
    plan_path: Path = typer.Argument(..., help="CSV, JSON or YAML plan file"),
    ttl: Optional[int] = typer.Option(None, "--ttl", help="Override TTL for every record"),
    replace: Optional[bool] = typer.Option(
        None, "--replace/--merge", help="Override replace mode for every record"
    ),
    health_probe: Optional[bool] = typer.Option(
        None, "--health-probe/--no-health-probe", help="Override probing for every record"
    ),
    probe_type: Optional[ProbeKind] = typer.Option(None, "--probe-type", case_sensitive=False),
    probe_port: Optional[int] = typer.Option(None, "--probe-port"),
    probe_path: Optional[str] = typer.Option(None, "--probe-path"),
    probe_timeout_ms: int = typer.Option(config.PROBE_TIMEOUT_MS, "--probe-timeout-ms", min=1),
    probe_workers: int = typer.Option(config.PROBE_WORKERS, "--probe-workers", min=1),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report changes without applying"),
    stop_on_error: bool = typer.Option(False, "--stop-on-error"),
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o"),
    report_file: Optional[Path] = typer.Option(None, "--report-file", help="Write JSON report"),
):
    """Reconcile every record in a plan file."""
    try:
        intents = load_plan(
            str(plan_path),
            _overrides(ttl, replace, health_probe, probe_type, probe_port, probe_path),
        )
    except ConfigError as e:
        logger.error(str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR)

    _run(
        ctx.obj,
        intents,
        dry_run=dry_run,
        stop_on_error=stop_on_error,
        probe_timeout_ms=probe_timeout_ms,
        probe_workers=probe_workers,
        output=output,
        report_file=report_file,
    )


@app.command("show")
def show_record(
    ctx: typer.Context,
    zone: str = typer.Option(..., "--zone", "-z"),
    name: str = typer.Option(..., "--name", "-n"),
    output: OutputFormat = typer.Option(OutputFormat.TABLE, "--output", "-o"),
):
    """Show the A/AAAA addresses currently published for a name."""
    options: GlobalOptions = ctx.obj
    try:
        backend = options.create_backend()
        if not backend.zone_exists(zone):
            raise ZoneNotFound(zone)
        published = {
            family.value: sorted(backend.list_records(zone, name, family))
            for family in RecordFamily
        }
    except (ConfigError, ZoneNotFound, BackendOperationError) as e:
        logger.error(str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR)

    if output == OutputFormat.JSON:
        typer.echo(json.dumps({"zone": zone, "name": name, **published}, indent=2))
        return

    table = Table(title=f"{name}.{zone}" if name != "@" else zone)
    table.add_column("Type", style="cyan")
    table.add_column("Address")
    for family, addresses in published.items():
        for address in addresses:
            table.add_row(family, address)
    console.print(table)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
