"""TLS trust resolution.

Builds the set of certificate authorities a session trusts: the platform's
default pool plus either a user-specified certificate or the self-signed
certificate previously stored for the target host.
"""

import logging
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from device_updater.config import hostname_specific_config_dir
from device_updater.errors import CertificateReadError

logger = logging.getLogger(__name__)

SELF_SIGNED = "self-signed"

HOST_CERT_NAME = "cert.pem"


class TrustStore:
    """Certificate authorities trusted by a session.

    Wraps an ``ssl.SSLContext`` that starts from the platform pool. PEM blobs
    are appended in order; the store is handed to the transport once fully
    built and not modified afterwards.
    """

    def __init__(self) -> None:
        self._context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        self._certificates: List[Path] = []
        self.system_pool_loaded = False

        try:
            self._context.load_default_certs(ssl.Purpose.SERVER_AUTH)
            self.system_pool_loaded = True
        except (ssl.SSLError, OSError) as e:
            logger.warning(
                f"initializing system cert pool failed ({e}), "
                f"falling back to empty cert pool"
            )

    @property
    def ssl_context(self) -> ssl.SSLContext:
        return self._context

    @property
    def certificates(self) -> Tuple[Path, ...]:
        """Certificate files appended on top of the platform pool."""
        return tuple(self._certificates)

    def append_pem(self, pem: bytes, source: Path) -> bool:
        """Append PEM-encoded certificates.

        Content is not validated: data the TLS library cannot parse is
        logged and skipped, mirroring the lenient append of trust-store APIs.
        A bundle that fails part-way keeps the certificates parsed before the
        failure, and its source is still recorded in ``certificates``.

        Args:
            pem: Raw file contents
            source: File the data came from

        Returns:
            True if at least one certificate was added
        """
        loaded_before = self._context.cert_store_stats()["x509"]
        try:
            self._context.load_verify_locations(cadata=pem.decode("ascii"))
        except (ValueError, ssl.SSLError) as e:
            added = self._context.cert_store_stats()["x509"] - loaded_before
            if not added:
                logger.warning(f"No certificates appended from {source}: {e}")
                return False
            logger.warning(f"Only {added} certificate(s) appended from {source}: {e}")

        self._certificates.append(source)
        return True


@dataclass(frozen=True)
class TrustResolution:
    """Outcome of trust resolution.

    Attributes:
        trust_store: Trust store to configure the transport with
        matched: Whether a locally stored certificate for the host was found
    """

    trust_store: TrustStore
    matched: bool


def _stored_certificate_exists(path: Path) -> bool:
    # Only absence is silent; any other stat failure is a read failure
    try:
        path.stat()
    except (FileNotFoundError, NotADirectoryError):
        return False
    except OSError as e:
        raise CertificateReadError(path, e) from e
    return True


def _read_certificate(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise CertificateReadError(path, e) from e


def resolve_trust(
    tls_mode: Optional[str],
    host: str,
    config_dir_resolver: Callable[[str], Path] = hostname_specific_config_dir
) -> TrustResolution:
    """Build the trust store for a device.

    Args:
        tls_mode: ``"self-signed"``, a comma-separated list of certificate
            files (only the first is used), or empty for the platform pool only
        host: Device host, used to locate its stored certificate
        config_dir_resolver: Maps a host to its configuration directory

    Returns:
        Trust store and whether a stored host certificate matched

    Raises:
        CertificateReadError: If a certificate file cannot be read
    """
    trust_store = TrustStore()
    matched = False

    if tls_mode == SELF_SIGNED:
        cert_path = Path(config_dir_resolver(host)) / HOST_CERT_NAME
        if _stored_certificate_exists(cert_path):
            matched = True
            logger.info(f"Using certificate {cert_path}")
            trust_store.append_pem(_read_certificate(cert_path), cert_path)
        else:
            logger.debug(f"No stored certificate for {host} at {cert_path}")

    elif tls_mode:
        user_cert = Path(tls_mode.split(",")[0])
        trust_store.append_pem(_read_certificate(user_cert), user_cert)

    return TrustResolution(trust_store=trust_store, matched=matched)
