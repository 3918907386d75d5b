"""Remote scheme probing.

Before credentials or image data go over the wire, the device is asked over
plain HTTP, without credentials, whether it redirects to HTTPS.
"""

import logging
from typing import Optional

import httpx

from device_updater.errors import ProbeError

logger = logging.getLogger(__name__)


def probe_remote_scheme(host: str, client: Optional[httpx.Client] = None) -> str:
    """Find out which scheme the device wants to be spoken to with.

    Args:
        host: Bare device host, optionally with port
        client: HTTP client to probe with (a throwaway one by default);
            it must not follow redirects and must not carry credentials

    Returns:
        Scheme of the redirect target, e.g. ``"https"``

    Raises:
        ProbeError: If the request fails or carries no redirect location
    """
    owns_client = client is None
    if owns_client:
        client = httpx.Client(follow_redirects=False)

    try:
        response = client.get(f"http://{host}", follow_redirects=False)
    except httpx.HTTPError as e:
        raise ProbeError(f"probing url for https: {e}") from e
    finally:
        if owns_client:
            client.close()

    location = response.headers.get("location")
    if not location:
        raise ProbeError(
            f"getting probe url for https: no Location header "
            f"(HTTP status {response.status_code})"
        )

    try:
        target = response.request.url.join(location)
    except httpx.InvalidURL as e:
        raise ProbeError(f"getting probe url for https: {e}") from e

    logger.debug(f"{host} redirects to {target}")
    return target.scheme
