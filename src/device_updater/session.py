"""Update session for a single device.

Wraps the device's update endpoints: image uploads, partition switch, reboot
and feature discovery. Operations are issued sequentially by the caller and
each blocks until its HTTP round-trip completes.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, Dict, List, Optional, Tuple, Union

import httpx

from device_updater.config import hostname_specific_config_dir
from device_updater.errors import TransportError, UnexpectedStatusError
from device_updater.probe import probe_remote_scheme
from device_updater.transport import DEFAULT_TIMEOUT, create_http_client
from device_updater.trust import resolve_trust
from device_updater.uploader import UploadResult, stream_to

logger = logging.getLogger(__name__)


class UpdatePhase(str, Enum):
    """Phases of a device update run."""

    PROBING = "probing"
    TRUST_ESTABLISHED = "trust_established"
    UPLOADING_ROOT = "uploading_root"
    UPLOADING_BOOT = "uploading_boot"
    UPLOADING_MBR = "uploading_mbr"
    SWITCHED = "switched"
    REBOOTED = "rebooted"


class UpdateSession:
    """Talks to the update endpoints of one device.

    Example:
        >>> session, _ = connect("https://router-7/", "self-signed")
        >>> with session, open("root.img", "rb") as f:
        ...     session.update_root(f)
        ...     session.switch_partitions()
        ...     session.reboot()
    """

    def __init__(self, base_url: Union[str, httpx.URL], client: httpx.Client):
        """Initialize update session.

        Args:
            base_url: Device base URL; a trailing slash is added if missing
            client: HTTP client from ``create_http_client``
        """
        base = str(base_url)
        if not base.endswith("/"):
            base += "/"
        self.base_url = base
        self.client = client
        self.phase: Optional[UpdatePhase] = None
        self.history: List[UpdatePhase] = []

    def url(self, path: str) -> str:
        return self.base_url + path

    def update_root(self, stream: BinaryIO) -> UploadResult:
        """Upload a root file system image."""
        return stream_to(self, "update/root", stream)

    def update_boot(self, stream: BinaryIO) -> UploadResult:
        """Upload a boot file system image."""
        return stream_to(self, "update/boot", stream)

    def update_mbr(self, stream: BinaryIO) -> UploadResult:
        """Upload a master boot record."""
        return stream_to(self, "update/mbr", stream)

    def switch_partitions(self) -> None:
        """Make the device boot from the freshly written partition.

        Raises:
            TransportError: On network failure
            UnexpectedStatusError: If the device does not answer 200
        """
        self._post_expect_ok("update/switch")

    def reboot(self) -> None:
        """Reboot the device.

        Raises:
            TransportError: On network failure
            UnexpectedStatusError: If the device does not answer 200
        """
        self._post_expect_ok("reboot")

    def target_supports(self, feature: str) -> bool:
        """Check whether the device advertises a feature.

        Devices predating feature discovery answer 404, which is reported
        as "not supported" rather than an error.

        Args:
            feature: Feature name, e.g. ``partuuid``

        Returns:
            True if the feature is in the device's feature list

        Raises:
            TransportError: On network failure
            UnexpectedStatusError: On any status other than 200 or 404
        """
        response = self._request("GET", "update/features")

        if response.status_code == httpx.codes.NOT_FOUND:
            logger.debug("Target has no feature discovery, assuming no features")
            return False

        if response.status_code != httpx.codes.OK:
            raise UnexpectedStatusError(
                response.status_code, int(httpx.codes.OK), response.content
            )

        supported = [f.strip() for f in response.text.strip().split(",")]
        return feature in supported

    def perform_update(
        self,
        root: Optional[BinaryIO] = None,
        boot: Optional[BinaryIO] = None,
        mbr: Optional[BinaryIO] = None,
        switch: bool = True,
        reboot: bool = True
    ) -> Dict[str, UploadResult]:
        """Upload the given images in order, then activate them.

        Uploads run root, boot, MBR; then the partition switch and reboot.
        Nothing is retried or rolled back: the first failure propagates and
        ``phase`` tells how far the run got.

        Args:
            root: Root file system image
            boot: Boot file system image
            mbr: Master boot record
            switch: Switch partitions after uploading
            reboot: Reboot after switching

        Returns:
            Upload results keyed by image name
        """
        results: Dict[str, UploadResult] = {}
        uploads = [
            ("root", root, UpdatePhase.UPLOADING_ROOT, self.update_root),
            ("boot", boot, UpdatePhase.UPLOADING_BOOT, self.update_boot),
            ("mbr", mbr, UpdatePhase.UPLOADING_MBR, self.update_mbr),
        ]

        for name, stream, phase, upload in uploads:
            if stream is None:
                continue
            self._enter(phase)
            results[name] = upload(stream)

        if switch:
            self.switch_partitions()
            self._enter(UpdatePhase.SWITCHED)

            if reboot:
                self.reboot()
                self._enter(UpdatePhase.REBOOTED)

        return results

    def close(self) -> None:
        """Release the HTTP client."""
        self.client.close()

    def __enter__(self) -> "UpdateSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _enter(self, phase: UpdatePhase) -> None:
        logger.info(f"{self.base_url}: {phase.value}")
        self.phase = phase
        self.history.append(phase)

    def _request(self, method: str, path: str) -> httpx.Response:
        try:
            return self.client.request(method, self.url(path))
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path}: {e}") from e

    def _post_expect_ok(self, path: str) -> None:
        response = self._request("POST", path)
        if response.status_code != httpx.codes.OK:
            raise UnexpectedStatusError(
                response.status_code, int(httpx.codes.OK), response.content
            )


def connect(
    base_url: Union[str, httpx.URL],
    tls_mode: Optional[str],
    auth: Optional[Tuple[str, str]] = None,
    config_dir_resolver: Callable[[str], Path] = hostname_specific_config_dir,
    timeout: Union[float, httpx.Timeout, None] = DEFAULT_TIMEOUT,
    probe: bool = False
) -> Tuple[UpdateSession, bool]:
    """Resolve trust for a device and open a session to it.

    Args:
        base_url: Device base URL
        tls_mode: TLS mode selector, see ``resolve_trust``
        auth: Optional basic auth (user, password)
        config_dir_resolver: Maps a host to its configuration directory
        timeout: Request timeout passed to the transport
        probe: Replace the scheme of ``base_url`` with the one the device
            redirects to (see ``probe_remote_scheme``); no credentials are
            sent before this is known

    Returns:
        The session and whether a stored host certificate matched

    Raises:
        ProbeError: If probing was requested and failed
        CertificateReadError: If a certificate file cannot be read
    """
    url = httpx.URL(str(base_url))
    host = url.netloc.decode("ascii")

    if probe:
        logger.info(f"{host}: {UpdatePhase.PROBING.value}")
        url = url.copy_with(scheme=probe_remote_scheme(host))

    resolution = resolve_trust(tls_mode, host, config_dir_resolver)
    client = create_http_client(resolution.trust_store, auth=auth, timeout=timeout)
    session = UpdateSession(url, client)
    if probe:
        session.history.append(UpdatePhase.PROBING)
    session._enter(UpdatePhase.TRUST_ESTABLISHED)
    return session, resolution.matched
