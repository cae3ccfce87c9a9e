"""Unit tests for event pack intake: validation, signatures, and loading."""

import json
import time
from unittest.mock import MagicMock

import pytest
import requests

from market_alerts.events import (
    AuthError,
    PackLoader,
    PackSourceError,
    ValidationError,
    compute_signature,
    is_url_source,
    load_event_pack,
    parse_event_pack,
    verify_signature,
)
from market_alerts.events.signature import SIGNATURE_HEADER, TIMESTAMP_HEADER
from market_alerts.events.validator import MAX_EVENTS

from tests.helpers import market_event, pack_document, price_drop, sku_entry

SECRET = "pack-secret"


@pytest.fixture
def pack_dict():
    """A small valid pack document."""
    return pack_document(
        events=[
            price_drop("A1"),
            market_event("GLOBAL_NEW", "B2", marketNew=True),
        ],
        skus={"A1": sku_entry("A1", "Alpha Widget"), "B2": sku_entry("B2", "Beta Gadget")},
        commit_range={"fromSha": "aaa111", "toSha": "bbb222"},
    )


class TestParseEventPack:
    """Tests for parse_event_pack."""

    def test_valid_pack(self, pack_dict):
        """Test that a valid document is accepted as-is."""
        pack = parse_event_pack(pack_dict)

        assert pack.version == 1
        assert pack.generated_at == "2026-01-05T09:00:00Z"
        assert set(pack.skus) == {"A1", "B2"}
        assert len(pack.events) == 2
        assert pack.range.to_sha == "bbb222"
        assert pack.dropped_event_count == 0

    @pytest.mark.parametrize("version", [2, "1", True, None])
    def test_wrong_version(self, pack_dict, version):
        """Test that only the integer 1 is an accepted version."""
        pack_dict["version"] = version
        with pytest.raises(ValidationError) as exc_info:
            parse_event_pack(pack_dict)
        assert any("version" in error for error in exc_info.value.errors)

    def test_missing_generated_at(self, pack_dict):
        """Test that generatedAt is required."""
        del pack_dict["generatedAt"]
        with pytest.raises(ValidationError):
            parse_event_pack(pack_dict)

    def test_collects_all_document_errors(self, pack_dict):
        """Test that every document-level problem is reported at once."""
        pack_dict["skus"] = []
        pack_dict["events"] = {}
        with pytest.raises(ValidationError) as exc_info:
            parse_event_pack(pack_dict)
        assert len(exc_info.value.errors) == 2

    def test_not_an_object(self):
        """Test that a non-object document is rejected."""
        with pytest.raises(ValidationError, match="JSON object"):
            parse_event_pack([1, 2, 3])

    def test_too_many_events(self, pack_dict):
        """Test the event count ceiling."""
        pack_dict["events"] = [{}] * (MAX_EVENTS + 1)
        with pytest.raises(ValidationError):
            parse_event_pack(pack_dict)

    def test_malformed_rows_dropped(self, pack_dict):
        """Test that bad rows are dropped and counted instead of failing the pack."""
        pack_dict["events"].extend(
            [
                {"eventType": "UNKNOWN", "sku": "A1"},
                {"eventType": "PRICE_DROP", "sku": "has space"},
                "not an object",
            ]
        )
        pack_dict["skus"]["bad key"] = sku_entry("C3", "Bad")
        pack_dict["skus"]["D4"] = "not an object"

        pack = parse_event_pack(pack_dict)

        assert len(pack.events) == 2
        assert pack.dropped_event_count == 3
        assert pack.dropped_sku_count == 2
        assert set(pack.skus) == {"A1", "B2"}

    def test_malformed_range_ignored(self, pack_dict):
        """Test that a malformed commit range is dropped."""
        pack_dict["range"] = {"fromSha": 1}
        assert parse_event_pack(pack_dict).range is None

    def test_load_event_pack_rejects_bad_json(self):
        """Test that non-JSON bodies raise ValidationError."""
        with pytest.raises(ValidationError, match="not valid JSON"):
            load_event_pack(b"{not json")

    def test_load_event_pack_bytes(self, pack_dict):
        """Test decoding from raw bytes."""
        pack = load_event_pack(json.dumps(pack_dict).encode("utf-8"))
        assert len(pack.events) == 2


class TestSignature:
    """Tests for pack signature verification."""

    def test_round_trip(self):
        """Test that a freshly signed body verifies."""
        body = b'{"version":1}'
        now = 1_760_000_000
        signature = compute_signature(SECRET, now, body)
        verify_signature(body, str(now), signature, SECRET, now=now + 10)

    def test_signature_is_hex_sha256(self):
        """Test the digest format."""
        signature = compute_signature(SECRET, 1, b"body")
        assert len(signature) == 64
        int(signature, 16)

    def test_uppercase_signature_accepted(self):
        """Test that hex case does not matter."""
        body = b"body"
        signature = compute_signature(SECRET, 100, body).upper()
        verify_signature(body, "100", signature, SECRET, now=100)

    @pytest.mark.parametrize("timestamp,signature", [(None, "abc"), ("100", None), ("", "")])
    def test_missing_headers(self, timestamp, signature):
        """Test that both headers are required."""
        with pytest.raises(AuthError, match="Missing"):
            verify_signature(b"body", timestamp, signature, SECRET, now=100)

    def test_malformed_timestamp(self):
        """Test that a non-integer timestamp is rejected."""
        with pytest.raises(AuthError, match="Malformed"):
            verify_signature(b"body", "yesterday", "abc", SECRET, now=100)

    def test_stale_timestamp(self):
        """Test that timestamps outside the tolerance window are rejected."""
        body = b"body"
        signature = compute_signature(SECRET, 100, body)
        with pytest.raises(AuthError, match="window"):
            verify_signature(body, "100", signature, SECRET, tolerance_seconds=300, now=401)

    def test_future_timestamp(self):
        """Test that skew applies in both directions."""
        body = b"body"
        signature = compute_signature(SECRET, 1000, body)
        with pytest.raises(AuthError):
            verify_signature(body, "1000", signature, SECRET, tolerance_seconds=300, now=600)

    def test_tampered_body(self):
        """Test that changing the body breaks the signature."""
        signature = compute_signature(SECRET, 100, b"body")
        with pytest.raises(AuthError, match="mismatch"):
            verify_signature(b"b0dy", "100", signature, SECRET, now=100)

    def test_wrong_secret(self):
        """Test that a different secret breaks the signature."""
        signature = compute_signature("other", 100, b"body")
        with pytest.raises(AuthError):
            verify_signature(b"body", "100", signature, SECRET, now=100)


def _response(status_code=200, content=b"", headers=None, reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    response.headers = headers or {}
    response.reason = reason
    return response


class TestPackLoader:
    """Tests for PackLoader."""

    def test_is_url_source(self):
        """Test that only http(s) sources are URLs."""
        assert is_url_source("https://example.com/pack.json")
        assert is_url_source("http://example.com/pack.json")
        assert not is_url_source("/var/data/pack.json")
        assert not is_url_source("pack.json")

    def test_load_file(self, tmp_path, pack_dict):
        """Test loading a pack from a file."""
        path = tmp_path / "pack.json"
        path.write_text(json.dumps(pack_dict))

        pack = PackLoader(str(path)).load()

        assert len(pack.events) == 2

    def test_missing_file(self, tmp_path):
        """Test that an unreadable file raises PackSourceError."""
        source = str(tmp_path / "missing.json")
        with pytest.raises(PackSourceError) as exc_info:
            PackLoader(source).load()
        assert exc_info.value.source == source

    def test_file_too_large(self, tmp_path, pack_dict):
        """Test the size ceiling on files."""
        path = tmp_path / "pack.json"
        path.write_text(json.dumps(pack_dict))
        with pytest.raises(PackSourceError, match="limit"):
            PackLoader(str(path), max_bytes=10).load()

    def test_fetch_url_unsigned(self, pack_dict):
        """Test fetching a URL pack when no secret is configured."""
        session = MagicMock()
        session.headers = {}
        session.get.return_value = _response(content=json.dumps(pack_dict).encode())

        loader = PackLoader("https://example.com/pack.json", timeout=7, session=session)
        pack = loader.load()

        assert len(pack.events) == 2
        session.get.assert_called_once_with("https://example.com/pack.json", timeout=7)
        assert session.headers["User-Agent"] == "MarketAlerts/1.0"

    def test_fetch_url_signed(self, pack_dict):
        """Test that a correctly signed URL pack is accepted."""
        body = json.dumps(pack_dict).encode()
        timestamp = str(int(time.time()))
        session = MagicMock()
        session.headers = {}
        session.get.return_value = _response(
            content=body,
            headers={
                TIMESTAMP_HEADER: timestamp,
                SIGNATURE_HEADER: compute_signature(SECRET, timestamp, body),
            },
        )

        pack = PackLoader("https://example.com/pack.json", signing_secret=SECRET, session=session).load()

        assert pack.generated_at == "2026-01-05T09:00:00Z"

    def test_fetch_url_unsigned_rejected_with_secret(self, pack_dict):
        """Test that a missing signature fails when a secret is configured."""
        session = MagicMock()
        session.headers = {}
        session.get.return_value = _response(content=json.dumps(pack_dict).encode())

        loader = PackLoader("https://example.com/pack.json", signing_secret=SECRET, session=session)
        with pytest.raises(AuthError):
            loader.load()

    def test_fetch_http_error(self):
        """Test that HTTP error statuses raise PackSourceError."""
        session = MagicMock()
        session.headers = {}
        session.get.return_value = _response(status_code=503, reason="Service Unavailable")

        with pytest.raises(PackSourceError, match="HTTP 503"):
            PackLoader("https://example.com/pack.json", session=session).load()

    def test_fetch_timeout(self):
        """Test that request timeouts raise PackSourceError."""
        session = MagicMock()
        session.headers = {}
        session.get.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(PackSourceError, match="timed out"):
            PackLoader("https://example.com/pack.json", timeout=5, session=session).load()

    def test_fetch_connection_error(self):
        """Test that connection failures raise PackSourceError."""
        session = MagicMock()
        session.headers = {}
        session.get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(PackSourceError, match="failed"):
            PackLoader("https://example.com/pack.json", session=session).load()

    def test_fetch_body_too_large(self):
        """Test the size ceiling on URL bodies."""
        session = MagicMock()
        session.headers = {}
        session.get.return_value = _response(content=b"x" * 2048)

        with pytest.raises(PackSourceError, match="limit"):
            PackLoader("https://example.com/pack.json", max_bytes=1024, session=session).load()

    def test_fetch_invalid_pack(self):
        """Test that an invalid body raises ValidationError."""
        session = MagicMock()
        session.headers = {}
        session.get.return_value = _response(content=b'{"version": 2}')

        with pytest.raises(ValidationError):
            PackLoader("https://example.com/pack.json", session=session).load()
