"""Health probes used to gate which addresses get published."""

from __future__ import annotations

import ipaddress
import logging
import socket
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

import requests

from dns_roundrobin.errors import MissingProbePort
from dns_roundrobin.models import DEFAULT_HTTP_PORT, ProbeFailure, ProbeType

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT_MS = 1500
DEFAULT_PROBE_WORKERS = 16

Prober = Callable[[str, ProbeType, Optional[int], Optional[str], int], bool]

# =============================================================================
# Prober
# =============================================================================


def _host_for_url(address: str) -> str:
    try:
        if ipaddress.ip_address(address).version == 6:
            return f"[{address}]"
    except ValueError:
        pass
    return address


def probe_url(address: str, port: int, path: Optional[str]) -> str:
    """Build the HTTP probe URL for an address."""
    path = path or "/"
    if not path.startswith("/"):
        path = "/" + path
    return f"http://{_host_for_url(address)}:{port}{path}"


def probe_tcp(address: str, port: int, timeout_ms: int) -> bool:
    try:
        with socket.create_connection((address, port), timeout=timeout_ms / 1000.0):
            return True
    except OSError as e:
        logger.debug(f"TCP probe {address}:{port} failed: {e}")
        return False


def probe_http(address: str, port: int, path: Optional[str], timeout_ms: int) -> bool:
    """Single GET; healthy iff the status is 2xx or 3xx. Redirects are not followed."""
    url = probe_url(address, port, path)
    try:
        response = requests.get(url, timeout=timeout_ms / 1000.0, allow_redirects=False)
    except requests.exceptions.RequestException as e:
        logger.debug(f"HTTP probe {url} failed: {e}")
        return False
    healthy = 200 <= response.status_code < 400
    if not healthy:
        logger.debug(f"HTTP probe {url} returned {response.status_code}")
    return healthy


def probe(
    address: str,
    probe_type: ProbeType,
    port: Optional[int],
    path: Optional[str] = None,
    timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS,
) -> bool:
    """Run one reachability check. Network failures yield False, never raise."""
    if probe_type is ProbeType.HTTP:
        return probe_http(address, port or DEFAULT_HTTP_PORT, path, timeout_ms)
    if port is None:
        raise MissingProbePort()
    return probe_tcp(address, port, timeout_ms)


# =============================================================================
# Health Filter
# =============================================================================


@dataclass
class HealthFilterResult:
    healthy: List[str] = field(default_factory=list)
    rejected: List[ProbeFailure] = field(default_factory=list)


def filter_healthy(
    addresses: Iterable[str],
    *,
    enabled: bool,
    probe_type: ProbeType = ProbeType.TCP,
    port: Optional[int] = None,
    path: str = "/",
    timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS,
    workers: int = DEFAULT_PROBE_WORKERS,
    prober: Prober = probe,
) -> HealthFilterResult:
    """Return the subset of addresses that pass the probe, sorted.

    Disabled probing and empty input pass through untouched without calling
    the prober. Probes run concurrently on a bounded thread pool.
    """
    candidates = sorted(set(addresses))
    if not enabled or not candidates:
        return HealthFilterResult(healthy=candidates)

    if probe_type is ProbeType.TCP and port is None:
        raise MissingProbePort()
    if probe_type is ProbeType.HTTP and port is None:
        port = DEFAULT_HTTP_PORT

    max_workers = max(1, min(workers, len(candidates)))
    with ThreadPoolExecutor(max_workers=max_workers) as ex:
        results = list(
            ex.map(lambda address: prober(address, probe_type, port, path, timeout_ms), candidates)
        )

    result = HealthFilterResult()
    for address, healthy in zip(candidates, results):
        if healthy:
            result.healthy.append(address)
            continue
        failure = ProbeFailure(
            address=address,
            probe_type=probe_type,
            port=port,
            path=path if probe_type is ProbeType.HTTP else "",
        )
        result.rejected.append(failure)
        logger.warning(f"Excluding {address}: {failure.describe()}")
    return result
