"""Error taxonomy for device updates.

Every failure surfaced by the updater derives from ``UpdaterError`` so callers
can catch the whole family. Nothing is retried internally: each error carries
enough context (status code, body snippet, digests) to be displayed verbatim.
"""

from pathlib import Path
from typing import Union

BODY_SNIPPET_LIMIT = 512


def _snippet(body: bytes) -> str:
    text = body[:BODY_SNIPPET_LIMIT].decode("utf-8", errors="replace")
    if len(body) > BODY_SNIPPET_LIMIT:
        text += "..."
    return text


class UpdaterError(Exception):
    """Base class for all updater errors."""


class CertificateReadError(UpdaterError):
    """A certificate file could not be read."""

    def __init__(self, path: Union[str, Path], reason: object):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"reading certificate {self.path}: {reason}")


class ProbeError(UpdaterError):
    """The scheme probe could not be sent or returned no usable redirect."""


class TransportError(UpdaterError):
    """Network-level failure while talking to the device."""


class UnexpectedStatusError(UpdaterError):
    """The device answered with an unexpected HTTP status code.

    Attributes:
        got: Status code returned by the device
        want: Status code the operation expects
        body: Raw response body (may be empty when it could not be read)
    """

    def __init__(self, got: int, want: int, body: bytes = b""):
        self.got = got
        self.want = want
        self.body = body
        super().__init__(
            f"unexpected HTTP status code: got {got}, want {want} "
            f"(body {_snippet(body)!r})"
        )


class UpdateHandlerNotImplemented(UpdaterError):
    """The device answered with an HTML page instead of a digest.

    Legacy devices without update support serve their status page for every
    path. Callers may branch on this to skip verification or abort gracefully.
    """

    def __init__(self, message: str = "update handler not implemented"):
        super().__init__(message)


class DigestDecodeError(UpdaterError, ValueError):
    """The digest returned by the device is not valid hex."""

    def __init__(self, body: bytes, reason: object):
        self.body = body
        super().__init__(
            f"decoding remote SHA256 hash {_snippet(body)!r}: {reason}"
        )


class DigestMismatchError(UpdaterError):
    """The digest returned by the device differs from what was sent."""

    def __init__(self, got: bytes, want: bytes):
        self.got = got
        self.want = want
        super().__init__(
            f"unexpected SHA256 hash: got {got.hex()}, want {want.hex()}"
        )
