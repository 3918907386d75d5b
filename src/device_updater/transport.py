"""HTTP transport construction."""

from typing import Optional, Tuple, Union

import httpx

from device_updater.trust import TrustStore

# Bounded connect, no read/write deadline: flashing a large image can keep the
# device busy well past any fixed per-read timeout.
DEFAULT_TIMEOUT = httpx.Timeout(None, connect=30.0)

USER_AGENT = "device-updater/0.1.0"


def create_http_client(
    trust_store: TrustStore,
    auth: Optional[Tuple[str, str]] = None,
    timeout: Union[float, httpx.Timeout, None] = DEFAULT_TIMEOUT
) -> httpx.Client:
    """Create an HTTP client that trusts exactly the given store.

    Everything else (redirect policy, connection pooling) keeps the httpx
    defaults. The client never retries.

    Args:
        trust_store: Certificate authorities to verify the device against
        auth: Optional basic auth (user, password)
        timeout: Request timeout; the default bounds only connection setup

    Returns:
        Configured HTTP client, owned by the caller
    """
    return httpx.Client(
        verify=trust_store.ssl_context,
        auth=auth,
        timeout=timeout,
        headers={"User-Agent": USER_AGENT}
    )
