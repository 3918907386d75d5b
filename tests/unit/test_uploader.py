"""Tests for streaming upload with digest verification."""

import hashlib
import io
from unittest.mock import patch

import httpx
import pytest

from device_updater.errors import (
    DigestDecodeError,
    DigestMismatchError,
    TransportError,
    UnexpectedStatusError,
    UpdateHandlerNotImplemented,
)
from device_updater.uploader import HashingReader, UploadResult, stream_to


class TestHashingReader:
    """Test the hashing read-through wrapper."""

    def test_read_hashes_and_counts(self):
        """Test every byte read is hashed and counted."""
        reader = HashingReader(io.BytesIO(b"hello world"))

        assert reader.read(5) == b"hello"
        assert reader.read() == b" world"
        assert reader.read() == b""

        assert reader.bytes_read == 11
        assert reader.digest() == hashlib.sha256(b"hello world").digest()

    def test_iteration_yields_chunks(self):
        """Test iterating yields fixed-size chunks until exhausted."""
        reader = HashingReader(io.BytesIO(b"abcdefghij"), chunk_size=4)

        assert list(reader) == [b"abcd", b"efgh", b"ij"]
        assert reader.bytes_read == 10

    def test_empty_stream(self):
        """Test an empty stream hashes to SHA-256 of nothing."""
        reader = HashingReader(io.BytesIO(b""))

        assert list(reader) == []
        assert reader.bytes_read == 0
        assert reader.digest() == hashlib.sha256(b"").digest()


class TestStreamTo:
    """Test stream_to against a mock device."""

    def test_successful_upload(self, session, mock_device):
        """Test the device-acknowledged digest matches the payload."""
        payload = bytes(range(256)) * 1024

        result = stream_to(session, "update/root", io.BytesIO(payload))

        assert isinstance(result, UploadResult)
        assert result.bytes_transferred == len(payload)
        assert result.local_digest == hashlib.sha256(payload).digest()
        assert result.elapsed >= 0
        assert mock_device.received["update/root"] == payload
        assert mock_device.paths() == ["PUT /update/root"]

    def test_request_is_streamed(self, session, mock_device):
        """Test the body goes out as a chunked stream, not a buffered blob."""
        stream_to(session, "update/boot", io.BytesIO(b"x" * 100))

        request = mock_device.requests[0]
        assert request.headers.get("transfer-encoding") == "chunked"
        assert request.headers["content-type"] == "application/octet-stream"

    def test_empty_payload(self, session, mock_device):
        """Test an empty image still verifies against SHA-256 of nothing."""
        result = stream_to(session, "update/mbr", io.BytesIO(b""))

        assert result.bytes_transferred == 0
        assert result.local_digest == hashlib.sha256(b"").digest()
        assert mock_device.received["update/mbr"] == b""

    def test_corruption_in_transit(self, session, mock_device):
        """Test a proxy flipping one byte is detected."""
        def flip_first_byte(body):
            return bytes([body[0] ^ 0xFF]) + body[1:]

        mock_device.tamper = flip_first_byte
        payload = b"root file system image"

        with pytest.raises(DigestMismatchError) as exc_info:
            stream_to(session, "update/root", io.BytesIO(payload))

        assert exc_info.value.want == hashlib.sha256(payload).digest()
        assert exc_info.value.got == hashlib.sha256(flip_first_byte(payload)).digest()
        assert exc_info.value.want.hex() in str(exc_info.value)

    def test_truncation_in_transit(self, session, mock_device):
        """Test a truncated payload is detected."""
        mock_device.tamper = lambda body: body[:-1]

        with pytest.raises(DigestMismatchError):
            stream_to(session, "update/root", io.BytesIO(b"0123456789"))

    def test_html_response_means_not_implemented(self, session, mock_device):
        """Test a legacy device answering with its status page."""
        mock_device.respond(
            "PUT", "update/root",
            lambda request: httpx.Response(
                200, text="<!DOCTYPE html>\n<html><body>status</body></html>"
            )
        )

        with pytest.raises(UpdateHandlerNotImplemented):
            stream_to(session, "update/root", io.BytesIO(b"image"))

    def test_html_response_is_not_mismatch(self, session, mock_device):
        """Test the not-implemented sentinel is not reported as a mismatch."""
        mock_device.respond(
            "PUT", "update/boot",
            lambda request: httpx.Response(200, text="<!DOCTYPE html><html></html>")
        )

        with pytest.raises(Exception) as exc_info:
            stream_to(session, "update/boot", io.BytesIO(b"image"))

        assert not isinstance(exc_info.value, DigestMismatchError)
        assert isinstance(exc_info.value, UpdateHandlerNotImplemented)

    def test_unexpected_status(self, session, mock_device):
        """Test a non-200 status carries code and body."""
        mock_device.respond(
            "PUT", "update/root",
            lambda request: httpx.Response(401, text="unauthorized")
        )

        with pytest.raises(UnexpectedStatusError) as exc_info:
            stream_to(session, "update/root", io.BytesIO(b"image"))

        assert exc_info.value.got == 401
        assert exc_info.value.want == 200
        assert exc_info.value.body == b"unauthorized"
        assert "unauthorized" in str(exc_info.value)

    def test_malformed_digest(self, session, mock_device):
        """Test a body that is not hex fails to decode."""
        mock_device.respond(
            "PUT", "update/root",
            lambda request: httpx.Response(200, text="not a digest")
        )

        with pytest.raises(DigestDecodeError):
            stream_to(session, "update/root", io.BytesIO(b"image"))

    def test_odd_length_digest(self, session, mock_device):
        """Test an odd number of hex digits fails to decode."""
        mock_device.respond(
            "PUT", "update/root",
            lambda request: httpx.Response(200, text="abc")
        )

        with pytest.raises(DigestDecodeError):
            stream_to(session, "update/root", io.BytesIO(b"image"))

    @pytest.mark.parametrize("separator", [" ", "\n"])
    def test_digest_with_embedded_whitespace(self, session, mock_device, separator):
        """Test a correct digest split by whitespace still fails to decode."""
        def spaced_digest(request):
            hex_digest = hashlib.sha256(request.content).hexdigest()
            pairs = [hex_digest[i:i + 2] for i in range(0, len(hex_digest), 2)]
            return httpx.Response(200, text=separator.join(pairs))

        mock_device.respond("PUT", "update/root", spaced_digest)

        with pytest.raises(DigestDecodeError):
            stream_to(session, "update/root", io.BytesIO(b"image"))

    def test_trailing_newline_is_rejected(self, session, mock_device):
        """Test only bare hex digits are accepted as a digest."""
        mock_device.respond(
            "PUT", "update/root",
            lambda request: httpx.Response(
                200, text=hashlib.sha256(request.content).hexdigest() + "\n"
            )
        )

        with pytest.raises(DigestDecodeError):
            stream_to(session, "update/root", io.BytesIO(b"image"))

    def test_network_failure(self, session):
        """Test connection errors surface as transport errors."""
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        session.client = httpx.Client(transport=httpx.MockTransport(refuse))

        with pytest.raises(TransportError) as exc_info:
            stream_to(session, "update/root", io.BytesIO(b"image"))

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_timing_does_not_affect_outcome(self, session, mock_device):
        """Test a zero elapsed time still reports success."""
        with patch("device_updater.uploader.time.monotonic", return_value=100.0):
            result = stream_to(session, "update/root", io.BytesIO(b"image"))

        assert result.elapsed == 0.0
        assert result.throughput_mib_s == 0.0


class TestUploadResult:
    """Test upload statistics."""

    def test_throughput(self):
        """Test throughput is reported in MiB/s."""
        result = UploadResult(
            bytes_transferred=4 * 1024 * 1024,
            elapsed=2.0,
            local_digest=b"\x00" * 32
        )

        assert result.throughput_mib_s == pytest.approx(2.0)
