"""
Unit tests for the hash engine.
"""

import hashlib

import pytest

from custody.errors import InvalidInput
from custody.hashing import (
    canonical_bytes,
    content_kind_for,
    digest,
    hashes_match,
    hex_digest,
    normalize_hash,
)
from custody.models import ContentKind, EvidenceType


class TestDigest:
    """Tests for digest computation."""

    def test_binary_digest_is_sha256_of_raw_bytes(self) -> None:
        payload = b"\x89PNG\r\n\x1a\n\x00\x01"
        assert digest(payload, ContentKind.BINARY) == hashlib.sha256(payload).digest()
        assert len(digest(payload)) == 32

    def test_text_digest_of_valid_utf8_matches_raw(self) -> None:
        payload = "Witness statement: café\n".encode("utf-8")
        assert hex_digest(payload, ContentKind.TEXT) == hashlib.sha256(payload).hexdigest()

    def test_text_digest_rejects_invalid_encoding(self) -> None:
        with pytest.raises(InvalidInput):
            digest(b"report \xff end", ContentKind.TEXT)

    def test_single_invalid_byte_change_changes_digest(self) -> None:
        original = b"report \xff end"
        mutated = b"report \xfe end"
        kind = content_kind_for(EvidenceType.TEXT, payload=original)

        assert kind == ContentKind.BINARY
        assert hex_digest(original, kind) != hex_digest(mutated, kind)

    def test_text_digest_keeps_line_endings(self) -> None:
        unix = hex_digest(b"line one\nline two\n", ContentKind.TEXT)
        windows = hex_digest(b"line one\r\nline two\r\n", ContentKind.TEXT)
        no_trailing = hex_digest(b"line one\nline two", ContentKind.TEXT)

        assert len({unix, windows, no_trailing}) == 3

    def test_digest_is_deterministic(self) -> None:
        payload = b"same bytes"
        assert digest(payload) == digest(bytearray(payload)) == digest(memoryview(payload))

    @pytest.mark.parametrize("payload", [None, b"", bytearray()])
    def test_empty_payload_rejected(self, payload: bytes | None) -> None:
        with pytest.raises(InvalidInput):
            digest(payload, ContentKind.BINARY)
        with pytest.raises(InvalidInput):
            digest(payload, ContentKind.TEXT)

    def test_non_bytes_payload_rejected(self) -> None:
        with pytest.raises(InvalidInput):
            canonical_bytes("not bytes", ContentKind.TEXT)  # type: ignore[arg-type]


class TestNormalizeHash:
    """Tests for digest normalization and comparison."""

    def test_accepts_prefixed_uppercase_hex(self) -> None:
        value = hashlib.sha256(b"x").hexdigest()
        assert normalize_hash("0x" + value.upper()) == value

    def test_accepts_raw_digest_bytes(self) -> None:
        raw = hashlib.sha256(b"x").digest()
        assert normalize_hash(raw) == raw.hex()

    @pytest.mark.parametrize("value", ["", "0x", "abc", "zz" * 32, "0x" + "a" * 63, b"\x00" * 31])
    def test_malformed_digest_rejected(self, value: str | bytes) -> None:
        with pytest.raises(InvalidInput):
            normalize_hash(value)

    def test_hashes_match_ignores_case_and_prefix(self) -> None:
        value = hashlib.sha256(b"evidence").hexdigest()
        assert hashes_match(value, "0X" + value.upper())
        assert hashes_match(value, "0x" + value.upper())
        assert hashes_match(hashlib.sha256(b"evidence").digest(), value)

    def test_hashes_match_false_for_different_or_missing(self) -> None:
        a = hashlib.sha256(b"a").hexdigest()
        b = hashlib.sha256(b"b").hexdigest()
        assert not hashes_match(a, b)
        assert not hashes_match(a, None)
        assert not hashes_match(a, "garbage")


class TestContentKind:
    """Tests for text/binary classification."""

    def test_text_evidence_type(self) -> None:
        assert content_kind_for(EvidenceType.TEXT) == ContentKind.TEXT

    def test_text_plain_mime_type(self) -> None:
        assert content_kind_for(EvidenceType.OTHER, "text/plain; charset=latin-1") == ContentKind.TEXT

    def test_txt_extension(self) -> None:
        assert content_kind_for(None, None, "NOTES.TXT") == ContentKind.TEXT

    def test_binary_default(self) -> None:
        assert content_kind_for(EvidenceType.IMAGE, "image/jpeg", "scene.jpg") == ContentKind.BINARY
        assert content_kind_for() == ContentKind.BINARY

    def test_valid_utf8_payload_stays_text(self) -> None:
        assert content_kind_for(None, "text/plain", payload="café".encode("utf-8")) == ContentKind.TEXT

    def test_non_utf8_text_payload_falls_back_to_binary(self) -> None:
        assert content_kind_for(None, None, "notes.txt", payload=b"caf\xe9") == ContentKind.BINARY
