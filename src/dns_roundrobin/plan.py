"""Plan loading: CSV, JSON and YAML record plans into RecordIntent values."""

from __future__ import annotations

import csv
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from dns_roundrobin.backends import DNSBackend
from dns_roundrobin.errors import PlanError, ZoneNotFound
from dns_roundrobin.models import (
    DEFAULT_PROBE_PATH,
    DEFAULT_TTL,
    PlanOverrides,
    ProbeType,
    RecordIntent,
)

logger = logging.getLogger(__name__)

FIELDS = (
    "ZoneName",
    "RecordName",
    "IPv4",
    "IPv6",
    "TTL",
    "ReplaceExisting",
    "HealthProbe",
    "ProbeType",
    "ProbePort",
    "ProbePath",
)

_ADDRESS_SPLIT_RE = re.compile(r"[;,\s]+")
_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}

# =============================================================================
# Field Parsing
# =============================================================================


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_bool(value: Any, *, default: bool, field: str = "") -> bool:
    if _is_blank(value):
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise PlanError(f"{field or 'value'}: '{value}' is not a boolean")


def _parse_int(value: Any, *, field: str) -> Optional[int]:
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise PlanError(f"{field}: '{value}' is not an integer")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise PlanError(f"{field}: '{value}' is not an integer") from None


def _parse_addresses(value: Any) -> List[str]:
    """Accept a delimited string (tabular plans) or a list (structured plans)."""
    if _is_blank(value):
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if not _is_blank(v)]
    return [item for item in _ADDRESS_SPLIT_RE.split(str(value).strip()) if item]


def _normalize_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Map arbitrary-case column names onto the canonical field names."""
    canonical = {f.lower(): f for f in FIELDS}
    normalized: Dict[str, Any] = {}
    for key, value in row.items():
        if key is None:
            continue
        name = canonical.get(str(key).strip().lower())
        if name is None:
            logger.debug(f"Ignoring unknown plan field '{key}'")
            continue
        normalized[name] = value
    return normalized


# =============================================================================
# Intent Construction
# =============================================================================


def build_intent(row: Mapping[str, Any], overrides: Optional[PlanOverrides] = None) -> RecordIntent:
    """Build a RecordIntent from one plan row.

    Precedence per field: override (when not None) > row value > default.
    """
    overrides = overrides or PlanOverrides()
    fields = _normalize_row(row)

    ttl = overrides.ttl
    if ttl is None:
        ttl = _parse_int(fields.get("TTL"), field="TTL")
    if ttl is None:
        ttl = DEFAULT_TTL

    replace_existing = overrides.replace_existing
    if replace_existing is None:
        replace_existing = _parse_bool(
            fields.get("ReplaceExisting"), default=False, field="ReplaceExisting"
        )

    health_probe = overrides.health_probe
    if health_probe is None:
        health_probe = _parse_bool(fields.get("HealthProbe"), default=False, field="HealthProbe")

    probe_type = overrides.probe_type
    if probe_type is None:
        raw_type = fields.get("ProbeType")
        probe_type = ProbeType.TCP if _is_blank(raw_type) else ProbeType.parse(raw_type)

    probe_port = overrides.probe_port
    if probe_port is None:
        probe_port = _parse_int(fields.get("ProbePort"), field="ProbePort")

    probe_path = overrides.probe_path
    if _is_blank(probe_path):
        probe_path = fields.get("ProbePath")
    if _is_blank(probe_path):
        probe_path = DEFAULT_PROBE_PATH

    return RecordIntent(
        zone=str(fields.get("ZoneName") or ""),
        name=str(fields.get("RecordName") or ""),
        desired_ipv4=frozenset(_parse_addresses(fields.get("IPv4"))),
        desired_ipv6=frozenset(_parse_addresses(fields.get("IPv6"))),
        ttl=ttl,
        replace_existing=replace_existing,
        health_probe=health_probe,
        probe_type=probe_type,
        probe_port=probe_port,
        probe_path=str(probe_path).strip(),
    )


def build_intents(
    rows: Iterable[Mapping[str, Any]], overrides: Optional[PlanOverrides] = None
) -> List[RecordIntent]:
    intents: List[RecordIntent] = []
    for index, row in enumerate(rows, start=1):
        if not isinstance(row, Mapping):
            raise PlanError(f"Record {index}: expected an object, got {type(row).__name__}")
        try:
            intents.append(build_intent(row, overrides))
        except PlanError as e:
            raise PlanError(f"Record {index}: {e}") from e
    return intents


# =============================================================================
# Plan Files
# =============================================================================


def _read_csv(path: Path) -> List[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            return [
                row for row in csv.DictReader(f) if any(not _is_blank(v) for v in row.values())
            ]
    except (UnicodeDecodeError, csv.Error, OSError) as e:
        raise PlanError(f"Failed to read plan {path}: {e}") from e


def _read_structured(path: Path) -> List[Any]:
    try:
        text = path.read_text("utf-8-sig")
    except (UnicodeDecodeError, OSError) as e:
        raise PlanError(f"Failed to read plan {path}: {e}") from e
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise PlanError(f"Failed to parse plan {path}: {e}") from e

    if isinstance(data, dict) and "records" in data:
        data = data["records"]
    if data is None:
        return []
    if not isinstance(data, list):
        raise PlanError(f"Plan {path} must be a list of records or an object with 'records'")
    return data


def load_plan(path: str, overrides: Optional[PlanOverrides] = None) -> List[RecordIntent]:
    """Load a plan file into record intents.

    The format is chosen by extension: .csv is tabular, .json/.yaml/.yml are
    structured documents.
    """
    plan_path = Path(path)
    if not plan_path.is_file():
        raise PlanError(f"Plan file not found: {path}")

    suffix = plan_path.suffix.lower()
    if suffix == ".csv":
        rows: List[Any] = _read_csv(plan_path)
    elif suffix in (".json", ".yaml", ".yml"):
        rows = _read_structured(plan_path)
    else:
        raise PlanError(f"Unsupported plan format '{suffix}' (use .csv, .json, .yaml)")

    intents = build_intents(rows, overrides)
    if not intents:
        raise PlanError(f"Plan {path} contains no records")
    logger.info(f"Loaded {len(intents)} record(s) from {plan_path.name}")
    return intents


def validate_zones(intents: Iterable[RecordIntent], backend: DNSBackend) -> None:
    """Check once, up front, that every zone in the plan exists on the backend."""
    for zone in sorted({intent.zone for intent in intents}):
        if not backend.zone_exists(zone):
            raise ZoneNotFound(zone)
        logger.debug(f"Zone {zone} found on {backend.name}")
