"""Record intents, probe diagnostics and reconciliation outcomes."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from dns_roundrobin.errors import MissingProbePort, PlanError

DEFAULT_TTL = 60
MAX_TTL = 86400
DEFAULT_HTTP_PORT = 80
DEFAULT_PROBE_PATH = "/"

# =============================================================================
# Enums
# =============================================================================


class RecordFamily(Enum):
    """Address family of a round-robin record set."""

    A = "A"
    AAAA = "AAAA"

    @property
    def ip_version(self) -> int:
        return 4 if self is RecordFamily.A else 6


class ProbeType(Enum):
    TCP = "TCP"
    HTTP = "HTTP"

    @classmethod
    def parse(cls, value: Any) -> "ProbeType":
        if isinstance(value, ProbeType):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise PlanError(f"Unknown probe type '{value}' (expected TCP or HTTP)") from None


class OutcomeStatus(Enum):
    """Per-record result of a plan run.

    OK:      every change applied (or planned, in dry-run).
    PARTIAL: some per-address add/remove calls failed.
    FAILED:  the record could not be reconciled at all.
    SKIPPED: not processed because an earlier record halted the plan.
    """

    OK = "ok"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


# =============================================================================
# Helpers
# =============================================================================


def trim_dns_name(value: str) -> str:
    return str(value or "").strip().rstrip(".")


def normalize_addresses(values: Iterable[str], family: RecordFamily) -> FrozenSet[str]:
    """Parse and canonicalize addresses of one family.

    IPv6 addresses are compressed so set comparisons against backend data are
    insensitive to notation.
    """
    normalized = set()
    for raw in values:
        item = str(raw).strip()
        if not item:
            continue
        try:
            address = ipaddress.ip_address(item)
        except ValueError:
            raise PlanError(f"'{item}' is not a valid IP address") from None
        if address.version != family.ip_version:
            raise PlanError(f"'{item}' is not an IPv{family.ip_version} address")
        normalized.add(address.compressed)
    return frozenset(normalized)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class RecordIntent:
    """One desired round-robin configuration for a single name."""

    zone: str
    name: str
    desired_ipv4: FrozenSet[str] = frozenset()
    desired_ipv6: FrozenSet[str] = frozenset()
    ttl: int = DEFAULT_TTL
    replace_existing: bool = False
    health_probe: bool = False
    probe_type: ProbeType = ProbeType.TCP
    probe_port: Optional[int] = None
    probe_path: str = DEFAULT_PROBE_PATH

    def __post_init__(self) -> None:
        zone = trim_dns_name(self.zone).lower()
        name = trim_dns_name(self.name)
        if not zone:
            raise PlanError("Zone name is required")
        if not name:
            raise PlanError(f"Record name is required (zone {zone})")
        object.__setattr__(self, "zone", zone)
        object.__setattr__(self, "name", name)
        object.__setattr__(
            self, "desired_ipv4", normalize_addresses(self.desired_ipv4, RecordFamily.A)
        )
        object.__setattr__(
            self, "desired_ipv6", normalize_addresses(self.desired_ipv6, RecordFamily.AAAA)
        )

        if not self.desired_ipv4 and not self.desired_ipv6:
            raise PlanError(f"{self.fqdn}: at least one IPv4 or IPv6 address is required")
        if not 1 <= self.ttl <= MAX_TTL:
            raise PlanError(f"{self.fqdn}: TTL {self.ttl} out of range 1-{MAX_TTL}")

        if self.probe_port is None and self.probe_type is ProbeType.HTTP:
            object.__setattr__(self, "probe_port", DEFAULT_HTTP_PORT)
        if self.probe_port is not None and not 1 <= self.probe_port <= 65535:
            raise PlanError(f"{self.fqdn}: probe port {self.probe_port} out of range")
        if self.health_probe and self.probe_type is ProbeType.TCP and self.probe_port is None:
            raise MissingProbePort(zone, name)

        if not self.probe_path.startswith("/"):
            object.__setattr__(self, "probe_path", "/" + self.probe_path)

    @property
    def fqdn(self) -> str:
        if self.name == "@":
            return self.zone
        return f"{self.name}.{self.zone}"

    def desired(self, family: RecordFamily) -> FrozenSet[str]:
        return self.desired_ipv4 if family is RecordFamily.A else self.desired_ipv6


@dataclass(frozen=True)
class PlanOverrides:
    """Global values that win over every per-record value when set."""

    ttl: Optional[int] = None
    replace_existing: Optional[bool] = None
    health_probe: Optional[bool] = None
    probe_type: Optional[ProbeType] = None
    probe_port: Optional[int] = None
    probe_path: Optional[str] = None


@dataclass(frozen=True)
class ProbeFailure:
    """A candidate address rejected by health probing."""

    address: str
    probe_type: ProbeType
    port: Optional[int]
    path: str = ""
    reason: str = "unreachable"

    def describe(self) -> str:
        target = f"{self.address}:{self.port}"
        if self.probe_type is ProbeType.HTTP:
            target += self.path
        return f"{self.probe_type.value} {target} {self.reason}"


@dataclass(frozen=True)
class AddressFailure:
    """A per-address backend change that did not apply."""

    family: RecordFamily
    address: str
    operation: str
    reason: str


@dataclass(frozen=True)
class RecordDelta:
    to_add: FrozenSet[str]
    to_keep: FrozenSet[str]
    to_drop: FrozenSet[str]


@dataclass
class FamilyOutcome:
    added: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    final: List[str] = field(default_factory=list)


@dataclass
class ReconciliationOutcome:
    """Result of reconciling one RecordIntent against the backend."""

    zone: str
    name: str
    ttl: int
    ipv4: FamilyOutcome = field(default_factory=FamilyOutcome)
    ipv6: FamilyOutcome = field(default_factory=FamilyOutcome)
    dry_run: bool = False
    probe_failures: List[ProbeFailure] = field(default_factory=list)
    address_failures: List[AddressFailure] = field(default_factory=list)
    error: str = ""
    skipped: bool = False

    @property
    def status(self) -> OutcomeStatus:
        if self.skipped:
            return OutcomeStatus.SKIPPED
        if self.error:
            return OutcomeStatus.FAILED
        if self.address_failures:
            return OutcomeStatus.PARTIAL
        return OutcomeStatus.OK

    def family(self, family: RecordFamily) -> FamilyOutcome:
        return self.ipv4 if family is RecordFamily.A else self.ipv6

    # Flat accessors matching the report columns.
    @property
    def added4(self) -> List[str]:
        return self.ipv4.added

    @property
    def kept4(self) -> List[str]:
        return self.ipv4.kept

    @property
    def removed4(self) -> List[str]:
        return self.ipv4.removed

    @property
    def final4(self) -> List[str]:
        return self.ipv4.final

    @property
    def added6(self) -> List[str]:
        return self.ipv6.added

    @property
    def kept6(self) -> List[str]:
        return self.ipv6.kept

    @property
    def removed6(self) -> List[str]:
        return self.ipv6.removed

    @property
    def final6(self) -> List[str]:
        return self.ipv6.final

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone": self.zone,
            "name": self.name,
            "ttl": self.ttl,
            "status": self.status.value,
            "dry_run": self.dry_run,
            "added4": self.added4,
            "kept4": self.kept4,
            "removed4": self.removed4,
            "final4": self.final4,
            "added6": self.added6,
            "kept6": self.kept6,
            "removed6": self.removed6,
            "final6": self.final6,
            "probe_failures": [
                {
                    "address": f.address,
                    "probe_type": f.probe_type.value,
                    "port": f.port,
                    "path": f.path,
                    "reason": f.reason,
                }
                for f in self.probe_failures
            ],
            "address_failures": [
                {
                    "family": f.family.value,
                    "address": f.address,
                    "operation": f.operation,
                    "reason": f.reason,
                }
                for f in self.address_failures
            ],
            "error": self.error,
        }
