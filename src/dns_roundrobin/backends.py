"""DNS backend interface and implementations.

A backend owns the published record set. The reconciler only ever talks to it
through the four operations of DNSBackend; failures surface as
BackendOperationError.
"""

from __future__ import annotations

import ipaddress
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import requests

from dns_roundrobin.errors import BackendOperationError, ConfigError
from dns_roundrobin.models import RecordFamily, trim_dns_name

logger = logging.getLogger(__name__)


def record_fqdn(zone: str, name: str) -> str:
    """Absolute (dot-terminated) owner name for a record in a zone."""
    zone = trim_dns_name(zone).lower()
    name = trim_dns_name(name).lower()
    if name in ("@", "", zone):
        return f"{zone}."
    if name.endswith("." + zone):
        return f"{name}."
    return f"{name}.{zone}."


def _canonical_address(value: str) -> str:
    try:
        return ipaddress.ip_address(value.strip()).compressed
    except ValueError:
        return value.strip()


# =============================================================================
# DNS Backend Interface
# =============================================================================


class DNSBackend(ABC):
    """Abstract base class for DNS zone backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the backend name for logging."""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test connection to the DNS backend."""
        pass

    @abstractmethod
    def zone_exists(self, zone: str) -> bool:
        pass

    @abstractmethod
    def list_records(self, zone: str, name: str, family: RecordFamily) -> Set[str]:
        """Return the addresses currently published for (zone, name, family)."""
        pass

    @abstractmethod
    def add_record(
        self, zone: str, name: str, family: RecordFamily, address: str, ttl: int
    ) -> None:
        pass

    @abstractmethod
    def remove_record(self, zone: str, name: str, family: RecordFamily, address: str) -> None:
        pass


# =============================================================================
# PowerDNS Authoritative HTTP API
# =============================================================================


class PowerDNSBackend(DNSBackend):
    """PowerDNS Authoritative Server backend (HTTP API v1)."""

    def __init__(
        self,
        url: str,
        api_key: str = "",
        server_id: str = "localhost",
        timeout_seconds: float = 5.0,
    ):
        self._url = url.rstrip("/")
        self._server_id = server_id or "localhost"
        self._timeout = timeout_seconds
        self._session = requests.Session()
        if api_key:
            self._session.headers.update({"X-API-Key": api_key})

    @property
    def name(self) -> str:
        return "PowerDNS"

    def _server_url(self) -> str:
        return f"{self._url}/api/v1/servers/{self._server_id}"

    def _zone_url(self, zone: str) -> str:
        return f"{self._server_url()}/zones/{trim_dns_name(zone).lower()}."

    def test_connection(self) -> bool:
        try:
            response = self._session.get(self._server_url(), timeout=self._timeout)
            response.raise_for_status()
            logger.info(f"{self.name} connection successful")
            return True
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            return False

    def zone_exists(self, zone: str) -> bool:
        try:
            response = self._session.get(
                self._zone_url(zone), params={"rrsets": "false"}, timeout=self._timeout
            )
            if response.status_code in (404, 422):
                return False
            response.raise_for_status()
            return True
        except requests.exceptions.RequestException as e:
            raise BackendOperationError(f"Failed to look up zone {zone}: {e}") from e

    def _get_rrset(
        self, zone: str, name: str, family: RecordFamily
    ) -> Tuple[Optional[int], List[Dict[str, Any]]]:
        fqdn = record_fqdn(zone, name)
        try:
            response = self._session.get(self._zone_url(zone), timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, json.JSONDecodeError) as e:
            raise BackendOperationError(
                f"Failed to read {family.value} records for {fqdn}: {e}"
            ) from e

        for rrset in data.get("rrsets") or []:
            if not isinstance(rrset, dict):
                continue
            if str(rrset.get("name", "")).lower() != fqdn or rrset.get("type") != family.value:
                continue
            records = [
                {
                    "content": _canonical_address(str(r.get("content", ""))),
                    "disabled": bool(r.get("disabled", False)),
                }
                for r in rrset.get("records") or []
                if isinstance(r, dict) and r.get("content")
            ]
            return rrset.get("ttl"), records
        return None, []

    def _patch_rrset(self, zone: str, rrset: Dict[str, Any]) -> None:
        try:
            response = self._session.patch(
                self._zone_url(zone), json={"rrsets": [rrset]}, timeout=self._timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise BackendOperationError(
                f"Failed to update {rrset['type']} rrset {rrset['name']}: {e}"
            ) from e

    def list_records(self, zone: str, name: str, family: RecordFamily) -> Set[str]:
        _, records = self._get_rrset(zone, name, family)
        return {r["content"] for r in records if not r["disabled"]}

    def add_record(
        self, zone: str, name: str, family: RecordFamily, address: str, ttl: int
    ) -> None:
        fqdn = record_fqdn(zone, name)
        _, records = self._get_rrset(zone, name, family)
        match = next((r for r in records if r["content"] == address), None)
        if match is not None and not match["disabled"]:
            logger.debug(f"{family.value} {fqdn} -> {address} already present")
            return
        if match is not None:
            match["disabled"] = False
        else:
            records.append({"content": address, "disabled": False})
        self._patch_rrset(
            zone,
            {
                "name": fqdn,
                "type": family.value,
                "ttl": ttl,
                "changetype": "REPLACE",
                "records": records,
            },
        )
        logger.info(f"Added {family.value} record: {fqdn} -> {address} (ttl {ttl})")

    def remove_record(self, zone: str, name: str, family: RecordFamily, address: str) -> None:
        fqdn = record_fqdn(zone, name)
        ttl, records = self._get_rrset(zone, name, family)
        remaining = [r for r in records if r["content"] != address]
        if len(remaining) == len(records):
            logger.debug(f"{family.value} {fqdn} -> {address} already absent")
            return

        # The last record of an rrset cannot be REPLACEd with an empty list.
        if remaining:
            rrset = {
                "name": fqdn,
                "type": family.value,
                "ttl": ttl,
                "changetype": "REPLACE",
                "records": remaining,
            }
        else:
            rrset = {"name": fqdn, "type": family.value, "changetype": "DELETE"}
        self._patch_rrset(zone, rrset)
        logger.info(f"Removed {family.value} record: {fqdn} -> {address}")


# =============================================================================
# Local Zone File
# =============================================================================


class ZoneFileBackend(DNSBackend):
    """Zones kept in a local JSON document.

    Layout::

        {"version": 1,
         "zones": {"contoso.com": {"web": {"A": {"ttl": 60, "addresses": [...]}}}}}

    Writes go to a temp file that is renamed over the original.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    @property
    def name(self) -> str:
        return f"zone file {self.path}"

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"version": 1, "zones": {}}
        try:
            data = json.loads(self.path.read_text("utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BackendOperationError(f"Failed to load zone file {self.path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("zones", {}), dict):
            raise BackendOperationError(f"Zone file {self.path} has no 'zones' mapping")
        data.setdefault("version", 1)
        data.setdefault("zones", {})
        return data

    def save(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), "utf-8")
            tmp_path.replace(self.path)
        except OSError as e:
            raise BackendOperationError(f"Failed to write zone file {self.path}: {e}") from e

    @staticmethod
    def _key(zone: str, name: str) -> Tuple[str, str]:
        zone = trim_dns_name(zone).lower()
        fqdn = record_fqdn(zone, name)[:-1]
        label = "@" if fqdn == zone else fqdn[: -(len(zone) + 1)]
        return zone, label

    def test_connection(self) -> bool:
        try:
            self.load()
            return True
        except BackendOperationError as e:
            logger.error(str(e))
            return False

    def zone_exists(self, zone: str) -> bool:
        return trim_dns_name(zone).lower() in self.load()["zones"]

    def _zone(self, data: Dict[str, Any], zone: str) -> Dict[str, Any]:
        try:
            return data["zones"][zone]
        except KeyError:
            raise BackendOperationError(f"Zone {zone} does not exist in {self.path}") from None

    def list_records(self, zone: str, name: str, family: RecordFamily) -> Set[str]:
        zone, label = self._key(zone, name)
        rrset = self._zone(self.load(), zone).get(label, {}).get(family.value, {})
        return {_canonical_address(a) for a in rrset.get("addresses", [])}

    def add_record(
        self, zone: str, name: str, family: RecordFamily, address: str, ttl: int
    ) -> None:
        zone, label = self._key(zone, name)
        address = _canonical_address(address)
        data = self.load()
        rrset = self._zone(data, zone).setdefault(label, {}).setdefault(
            family.value, {"ttl": ttl, "addresses": []}
        )
        stored = {_canonical_address(a) for a in rrset["addresses"]}
        if address in stored:
            return
        rrset["addresses"] = sorted(stored | {address})
        rrset["ttl"] = ttl
        self.save(data)
        logger.info(f"Added {family.value} record: {record_fqdn(zone, name)} -> {address}")

    def remove_record(self, zone: str, name: str, family: RecordFamily, address: str) -> None:
        zone, label = self._key(zone, name)
        address = _canonical_address(address)
        data = self.load()
        names = self._zone(data, zone)
        rrset = names.get(label, {}).get(family.value)
        if not rrset:
            return
        remaining = [a for a in rrset.get("addresses", []) if _canonical_address(a) != address]
        if len(remaining) == len(rrset.get("addresses", [])):
            return
        rrset["addresses"] = remaining
        if not rrset["addresses"]:
            del names[label][family.value]
            if not names[label]:
                del names[label]
        self.save(data)
        logger.info(f"Removed {family.value} record: {record_fqdn(zone, name)} -> {address}")


# =============================================================================
# Backend Registry
# =============================================================================

SUPPORTED_BACKENDS = ("powerdns", "file")


def create_dns_backend(
    kind: str, endpoint: str, api_key: str = "", server_id: str = "localhost"
) -> DNSBackend:
    """Factory function to create the configured DNS backend."""
    kind = (kind or "").lower().strip()
    if not endpoint:
        raise ConfigError(f"An endpoint is required for the '{kind}' backend")
    if kind == "powerdns":
        return PowerDNSBackend(endpoint, api_key=api_key, server_id=server_id)
    if kind == "file":
        return ZoneFileBackend(endpoint)
    raise ConfigError(
        f"Unsupported DNS backend: '{kind}'. Supported backends: {', '.join(SUPPORTED_BACKENDS)}"
    )
