"""HTTP timeout policy for completion and endpoint calls."""

from __future__ import annotations

import httpx

DEFAULT_CONNECT_TIMEOUT_SEC = 10.0
DEFAULT_WRITE_TIMEOUT_SEC = 30.0
DEFAULT_POOL_TIMEOUT_SEC = 10.0

# Endpoint utilities (model listing, connection test) are short calls.
ENDPOINT_READ_TIMEOUT_SEC = 30.0


def build_httpx_timeout(read_timeout: float | None = None) -> httpx.Timeout:
    """Build an ``httpx.Timeout`` for AI calls.

    Reads are unbounded by default: streaming responses can idle between
    chunks for as long as the model needs.
    """
    return httpx.Timeout(
        connect=DEFAULT_CONNECT_TIMEOUT_SEC,
        read=read_timeout,
        write=DEFAULT_WRITE_TIMEOUT_SEC,
        pool=DEFAULT_POOL_TIMEOUT_SEC,
    )


# Model listing retries transient transport failures only.
STANDARD_RETRY_ATTEMPTS = 3
RETRY_BACKOFF_INITIAL_SEC = 0.5
RETRY_BACKOFF_MAX_SEC = 4.0
