"""Round-robin record set reconciliation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, Iterable, List, Optional

from dns_roundrobin.backends import DNSBackend
from dns_roundrobin.errors import BackendOperationError, RoundRobinError
from dns_roundrobin.models import (
    AddressFailure,
    ReconciliationOutcome,
    RecordDelta,
    RecordFamily,
    RecordIntent,
)
from dns_roundrobin.plan import validate_zones
from dns_roundrobin.probes import (
    DEFAULT_PROBE_TIMEOUT_MS,
    DEFAULT_PROBE_WORKERS,
    Prober,
    filter_healthy,
    probe,
)

logger = logging.getLogger(__name__)


def compute_delta(
    desired: AbstractSet[str], current: AbstractSet[str], replace_existing: bool
) -> RecordDelta:
    """Split desired vs. current into add/keep/drop sets."""
    return RecordDelta(
        to_add=frozenset(desired - current),
        to_keep=frozenset(desired & current),
        to_drop=frozenset(current - desired) if replace_existing else frozenset(),
    )


@dataclass
class PlanResult:
    outcomes: List[ReconciliationOutcome] = field(default_factory=list)
    aborted: bool = False


class Reconciler:
    """Applies record intents to a DNS backend.

    Backend calls are sequential; only health probes run concurrently.
    """

    def __init__(
        self,
        backend: DNSBackend,
        *,
        dry_run: bool = False,
        stop_on_error: bool = False,
        probe_timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS,
        probe_workers: int = DEFAULT_PROBE_WORKERS,
        prober: Prober = probe,
    ):
        self.backend = backend
        self.dry_run = dry_run
        self.stop_on_error = stop_on_error
        self.probe_timeout_ms = probe_timeout_ms
        self.probe_workers = probe_workers
        self.prober = prober

    def _apply_change(
        self,
        intent: RecordIntent,
        family: RecordFamily,
        address: str,
        operation: str,
        outcome: ReconciliationOutcome,
    ) -> bool:
        try:
            if operation == "add":
                self.backend.add_record(intent.zone, intent.name, family, address, intent.ttl)
            else:
                self.backend.remove_record(intent.zone, intent.name, family, address)
            return True
        except BackendOperationError as e:
            logger.error(f"Failed to {operation} {family.value} {intent.fqdn} -> {address}: {e}")
            outcome.address_failures.append(
                AddressFailure(family=family, address=address, operation=operation, reason=str(e))
            )
            if self.stop_on_error:
                raise
            return False

    def _reconcile_family(
        self, intent: RecordIntent, family: RecordFamily, outcome: ReconciliationOutcome
    ) -> None:
        result = outcome.family(family)
        candidates = intent.desired(family)

        if not candidates:
            # Family not managed by this intent; report what is there.
            result.final = sorted(self.backend.list_records(intent.zone, intent.name, family))
            return

        health = filter_healthy(
            candidates,
            enabled=intent.health_probe,
            probe_type=intent.probe_type,
            port=intent.probe_port,
            path=intent.probe_path,
            timeout_ms=self.probe_timeout_ms,
            workers=self.probe_workers,
            prober=self.prober,
        )
        outcome.probe_failures.extend(health.rejected)
        desired = set(health.healthy)
        if not desired:
            logger.warning(
                f"{family.value} {intent.fqdn}: no healthy candidates out of {len(candidates)}"
            )

        current = self.backend.list_records(intent.zone, intent.name, family)
        delta = compute_delta(desired, current, intent.replace_existing)
        result.kept = sorted(delta.to_keep)

        logger.debug(
            f"{family.value} {intent.fqdn}: add={sorted(delta.to_add)} "
            f"keep={sorted(delta.to_keep)} drop={sorted(delta.to_drop)}"
        )

        if self.dry_run:
            result.added = sorted(delta.to_add)
            result.removed = sorted(delta.to_drop)
            result.final = sorted(current)
            for address in result.added:
                logger.info(f"[dry-run] Would add {family.value} {intent.fqdn} -> {address}")
            for address in result.removed:
                logger.info(f"[dry-run] Would remove {family.value} {intent.fqdn} -> {address}")
            return

        # Additions before removals so the name never goes without an address.
        for address in sorted(delta.to_add):
            if self._apply_change(intent, family, address, "add", outcome):
                result.added.append(address)
        for address in sorted(delta.to_drop):
            if self._apply_change(intent, family, address, "remove", outcome):
                result.removed.append(address)

        result.final = sorted(self.backend.list_records(intent.zone, intent.name, family))

    def reconcile(
        self, intent: RecordIntent, outcome: Optional[ReconciliationOutcome] = None
    ) -> ReconciliationOutcome:
        """Reconcile one intent, family by family.

        Per-address backend failures are recorded on the outcome. Anything
        else (e.g. the backend failing to list records) propagates; changes
        applied before the failure stay recorded on the passed-in outcome.
        """
        if outcome is None:
            outcome = self._new_outcome(intent)
        for family in RecordFamily:
            self._reconcile_family(intent, family, outcome)
        return outcome

    def _new_outcome(self, intent: RecordIntent, **kwargs) -> ReconciliationOutcome:
        return ReconciliationOutcome(
            zone=intent.zone, name=intent.name, ttl=intent.ttl, dry_run=self.dry_run, **kwargs
        )

    def run_plan(self, intents: Iterable[RecordIntent]) -> PlanResult:
        """Validate zones, then reconcile every intent in order.

        ZoneNotFound aborts before any change is made. A failing record is
        reported and the plan moves on, unless stop_on_error is set, in which
        case the remaining records are reported as skipped.
        """
        intents = list(intents)
        validate_zones(intents, self.backend)

        result = PlanResult()
        for index, intent in enumerate(intents):
            outcome = self._new_outcome(intent)
            result.outcomes.append(outcome)
            try:
                self.reconcile(intent, outcome)
            except RoundRobinError as e:
                logger.error(f"Record {intent.fqdn} failed: {e}")
                outcome.error = str(e)
                if self.stop_on_error:
                    result.aborted = True
                    for skipped in intents[index + 1 :]:
                        result.outcomes.append(self._new_outcome(skipped, skipped=True))
                    logger.error("Stopping plan after first error")
                    break
                continue

            if outcome.probe_failures or outcome.address_failures:
                logger.warning(
                    f"Record {intent.fqdn}: {len(outcome.probe_failures)} probe failure(s), "
                    f"{len(outcome.address_failures)} backend failure(s)"
                )
        return result
