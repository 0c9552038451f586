"""Environment configuration.

Values here are defaults for the command line; explicit flags win.
"""

import os

# Backend selection
DNS_BACKEND = os.getenv("DNS_BACKEND", "powerdns").lower().strip()

# PowerDNS configuration
PDNS_URL = os.getenv("PDNS_URL", "http://127.0.0.1:8081")
PDNS_API_KEY = os.getenv("PDNS_API_KEY", "")
PDNS_SERVER_ID = os.getenv("PDNS_SERVER_ID", "localhost")

# Zone file backend
ZONE_FILE_PATH = os.getenv("ZONE_FILE_PATH", "zones.json")

# Health probes
PROBE_TIMEOUT_MS = int(os.getenv("PROBE_TIMEOUT_MS", "1500"))
PROBE_WORKERS = int(os.getenv("PROBE_WORKERS", "16"))

# Runtime
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def default_endpoint(backend: str) -> str:
    """Endpoint used when --endpoint is not given."""
    if backend == "file":
        return ZONE_FILE_PATH
    return PDNS_URL
