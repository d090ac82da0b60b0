"""
Hash Engine
===========

Canonical SHA-256 digests for evidence payloads.

Text evidence is hashed over the UTF-8 encoding of its strictly decoded
text. Line endings are NOT normalized. Everything else is hashed over the
raw bytes. Payloads that are not valid UTF-8 are never hashed as text.

Version: 0.1.0
"""

import hashlib
import re

from custody.errors import InvalidInput
from custody.models.evidence import ContentKind, EvidenceType


DIGEST_SIZE = 32

_HEX = re.compile(r"^[0-9a-f]+$")


def canonical_bytes(payload: bytes | None, content_kind: ContentKind) -> bytes:
    """Bytes that are actually fed to the digest."""
    if payload is None:
        raise InvalidInput("Evidence payload is empty")
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise InvalidInput(f"Evidence payload must be bytes, got {type(payload).__name__}")

    raw = bytes(payload)
    if not raw:
        raise InvalidInput("Evidence payload is empty")
    if content_kind == ContentKind.TEXT:
        try:
            return raw.decode("utf-8").encode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidInput(
                "Text evidence is not valid UTF-8",
                details={"position": e.start},
            ) from None
    return raw


def is_utf8(payload: bytes | None) -> bool:
    """True if ``payload`` decodes strictly as UTF-8."""
    if payload is None:
        return False
    try:
        bytes(payload).decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def digest(payload: bytes | None, content_kind: ContentKind = ContentKind.BINARY) -> bytes:
    """
    Compute the 32-byte content digest of an evidence payload.

    Args:
        payload: Raw evidence bytes
        content_kind: TEXT to hash the decoded text, BINARY for raw bytes

    Returns:
        32-byte SHA-256 digest

    Raises:
        InvalidInput: payload is None or empty, or TEXT that is not UTF-8
    """
    return hashlib.sha256(canonical_bytes(payload, content_kind)).digest()


def hex_digest(payload: bytes | None, content_kind: ContentKind = ContentKind.BINARY) -> str:
    """Lowercase hex form of :func:`digest`."""
    return digest(payload, content_kind).hex()


def normalize_hash(value: str | bytes) -> str:
    """
    Normalize a digest to 64 lowercase hex characters.

    Accepts raw 32-byte digests and hex strings with or without a ``0x``
    prefix, in any case.
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) != DIGEST_SIZE:
            raise InvalidInput(f"Digest must be {DIGEST_SIZE} bytes, got {len(value)}")
        return bytes(value).hex()

    if not isinstance(value, str):
        raise InvalidInput("Digest must be bytes or a hex string")

    text = value.strip().lower()
    if text.startswith("0x"):
        text = text[2:]
    if len(text) != DIGEST_SIZE * 2 or not _HEX.match(text):
        raise InvalidInput(f"Malformed SHA-256 digest: '{value}'")
    return text


def hashes_match(left: str | bytes | None, right: str | bytes | None) -> bool:
    """Case- and ``0x``-insensitive digest comparison. Malformed input never matches."""
    if not left or not right:
        return False
    try:
        return normalize_hash(left) == normalize_hash(right)
    except InvalidInput:
        return False


def content_kind_for(
    evidence_type: EvidenceType | str | None = None,
    mime_type: str | None = None,
    file_name: str | None = None,
    payload: bytes | None = None,
) -> ContentKind:
    """
    Decide whether a payload is hashed as text.

    When ``payload`` is given and is not valid UTF-8 it is always BINARY.
    """
    textual = (
        (evidence_type is not None and str(getattr(evidence_type, "value", evidence_type)) == "text")
        or (bool(mime_type) and mime_type.split(";")[0].strip().lower() == "text/plain")
        or (bool(file_name) and file_name.lower().endswith(".txt"))
    )
    if not textual:
        return ContentKind.BINARY
    if payload is not None and not is_utf8(payload):
        return ContentKind.BINARY
    return ContentKind.TEXT
