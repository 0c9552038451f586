"""Exception hierarchy for dns-roundrobin."""

from __future__ import annotations


class RoundRobinError(Exception):
    """Base class for all dns-roundrobin errors."""


class ConfigError(RoundRobinError):
    """Invalid configuration. Fatal, raised before any backend call."""


class MissingProbePort(ConfigError):
    """TCP health probing was requested without a port."""

    def __init__(self, zone: str = "", name: str = ""):
        target = f" for {name}.{zone}" if zone and name else ""
        super().__init__(f"TCP health probe requires a probe port{target}")
        self.zone = zone
        self.name = name


class PlanError(ConfigError):
    """A plan row or field could not be parsed."""


class ZoneNotFound(RoundRobinError):
    """A zone referenced by the plan does not exist on the backend."""

    def __init__(self, zone: str):
        super().__init__(f"Zone '{zone}' not found on DNS backend")
        self.zone = zone


class BackendOperationError(RoundRobinError):
    """A DNS backend list/add/remove call failed."""
