"""Client-side updater for remote embedded devices.

Provides over-the-network image updates including:
- Resolving TLS trust (user certificates, stored self-signed certificates)
- Probing whether a device redirects to HTTPS
- Streaming root/boot/MBR images with inline SHA-256 verification
- Switching partitions and rebooting the device
"""

from device_updater.errors import (
    CertificateReadError,
    DigestDecodeError,
    DigestMismatchError,
    ProbeError,
    TransportError,
    UnexpectedStatusError,
    UpdateHandlerNotImplemented,
    UpdaterError,
)
from device_updater.probe import probe_remote_scheme
from device_updater.session import UpdatePhase, UpdateSession, connect
from device_updater.transport import create_http_client
from device_updater.trust import TrustResolution, TrustStore, resolve_trust
from device_updater.uploader import HashingReader, UploadResult, stream_to

__all__ = [
    "CertificateReadError",
    "DigestDecodeError",
    "DigestMismatchError",
    "HashingReader",
    "ProbeError",
    "TransportError",
    "TrustResolution",
    "TrustStore",
    "UnexpectedStatusError",
    "UpdateHandlerNotImplemented",
    "UpdatePhase",
    "UpdateSession",
    "UpdaterError",
    "UploadResult",
    "connect",
    "create_http_client",
    "probe_remote_scheme",
    "resolve_trust",
    "stream_to",
]
