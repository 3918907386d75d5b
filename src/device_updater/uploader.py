"""Streaming image upload with inline integrity verification.

Images are streamed to the device while being hashed. The device answers with
the hex SHA-256 of what it received; an upload only succeeds if that digest
matches what was actually sent, which catches truncation, corruption and
proxies rewriting the payload.
"""

import binascii
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO, Iterator

import httpx

from device_updater.errors import (
    DigestDecodeError,
    DigestMismatchError,
    TransportError,
    UnexpectedStatusError,
    UpdateHandlerNotImplemented,
)

if TYPE_CHECKING:
    from device_updater.session import UpdateSession

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

HTML_MARKER = b"<!DOCTYPE html>"


class HashingReader:
    """Read-through wrapper that hashes and counts every byte read.

    The wrapped stream is consumed once, forward only.
    """

    def __init__(self, stream: BinaryIO, chunk_size: int = CHUNK_SIZE):
        self._stream = stream
        self._chunk_size = chunk_size
        self._hash = hashlib.sha256()
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        data = self._stream.read(size)
        if data:
            self._hash.update(data)
            self.bytes_read += len(data)
        return data

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read(self._chunk_size)
            if not chunk:
                return
            yield chunk

    def digest(self) -> bytes:
        """SHA-256 of everything read so far."""
        return self._hash.digest()


@dataclass(frozen=True)
class UploadResult:
    """Statistics of a verified upload.

    Attributes:
        bytes_transferred: Number of bytes sent
        elapsed: Wall-clock duration in seconds
        local_digest: SHA-256 of the bytes sent
    """

    bytes_transferred: int
    elapsed: float
    local_digest: bytes

    @property
    def throughput_mib_s(self) -> float:
        if self.elapsed <= 0:
            return 0.0
        return self.bytes_transferred / self.elapsed / 1024 / 1024


def _read_body_best_effort(response: httpx.Response) -> bytes:
    try:
        return response.read()
    except httpx.HTTPError as e:
        logger.debug(f"Ignoring error reading response body: {e}")
        return b""


def stream_to(session: "UpdateSession", path: str, stream: BinaryIO) -> UploadResult:
    """Stream an image to the device and verify its digest.

    Args:
        session: Session for the target device
        path: Endpoint relative to the session's base URL, e.g. ``update/root``
        stream: Binary file-like object; read once, never rewound

    Returns:
        Upload statistics

    Raises:
        TransportError: On network failure
        UnexpectedStatusError: If the device does not answer 200
        UpdateHandlerNotImplemented: If the device answers with an HTML page
        DigestDecodeError: If the answer is not valid hex
        DigestMismatchError: If the device received different bytes
    """
    start = time.monotonic()
    reader = HashingReader(stream)

    request = session.client.build_request(
        "PUT",
        session.url(path),
        content=reader,
        headers={"Content-Type": "application/octet-stream"}
    )

    try:
        response = session.client.send(request, stream=True)
    except httpx.HTTPError as e:
        raise TransportError(f"PUT {path}: {e}") from e

    try:
        if response.status_code != httpx.codes.OK:
            raise UnexpectedStatusError(
                response.status_code,
                int(httpx.codes.OK),
                _read_body_best_effort(response)
            )

        try:
            remote_hash = response.read()
        except httpx.HTTPError as e:
            raise TransportError(f"reading response of PUT {path}: {e}") from e
    finally:
        response.close()

    if remote_hash.startswith(HTML_MARKER):
        raise UpdateHandlerNotImplemented()

    # unhexlify rejects whitespace, unlike bytes.fromhex
    try:
        decoded = binascii.unhexlify(remote_hash)
    except binascii.Error as e:
        raise DigestDecodeError(remote_hash, e) from e

    local_digest = reader.digest()
    if decoded != local_digest:
        raise DigestMismatchError(got=decoded, want=local_digest)

    result = UploadResult(
        bytes_transferred=reader.bytes_read,
        elapsed=time.monotonic() - start,
        local_digest=local_digest
    )
    logger.info(
        f"{result.bytes_transferred} bytes in {result.elapsed:.2f}s, "
        f"i.e. {result.throughput_mib_s:f} MiB/s"
    )
    return result
