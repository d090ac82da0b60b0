"""
Payload Stores
==============

Where the evidence bytes live. The engine only relies on the
put / get / delete contract; locators are opaque strings.

Version: 0.1.0
"""

import asyncio
import re
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any

from custody.errors import InvalidInput, PayloadMissing
from custody.logging import get_logger
from custody.models.evidence import EvidenceType

logger = get_logger(__name__)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")

# Folder and default extension per evidence type
_LAYOUT: dict[EvidenceType, tuple[str, str | None]] = {
    EvidenceType.FINGERPRINT: ("fingerprints", ".jpg"),
    EvidenceType.PDF: ("pdfs", ".pdf"),
    EvidenceType.TEXT: ("texts", ".txt"),
    EvidenceType.IMAGE: ("images", ".jpg"),
    EvidenceType.OTHER: ("other", ".bin"),
}


class PayloadStore(ABC):
    """Abstract evidence byte store."""

    @abstractmethod
    async def put(
        self,
        evidence_id: str,
        data: bytes,
        evidence_type: EvidenceType = EvidenceType.OTHER,
        file_name: str | None = None,
    ) -> str:
        """
        Store evidence bytes.

        Returns:
            Opaque locator for later get/delete
        """
        ...

    @abstractmethod
    async def get(self, locator: str) -> bytes:
        """
        Read evidence bytes.

        Raises:
            PayloadMissing: the bytes cannot be read
        """
        ...

    @abstractmethod
    async def delete(self, locator: str) -> bool:
        """
        Remove evidence bytes.

        Returns:
            True if removed, False if removal failed or nothing was there
            (the caller treats this as ok-with-warning)
        """
        ...

    async def health_check(self) -> dict[str, Any]:
        return {"status": "healthy", "backend": type(self).__name__}


class LocalPayloadStore(PayloadStore):
    """
    Filesystem store.

    Files are laid out as ``<base>/<type folder>/<evidence id>_<millis><ext>``;
    the locator is the path relative to ``base``.
    """

    def __init__(self, base_dir: Path | str) -> None:
        self._base = Path(base_dir).resolve()

    @property
    def base_dir(self) -> Path:
        return self._base

    def _folder_and_extension(self, evidence_type: EvidenceType, file_name: str | None) -> tuple[str, str]:
        folder, default_ext = _LAYOUT[evidence_type]
        if evidence_type in (EvidenceType.PDF, EvidenceType.TEXT):
            return folder, default_ext or ""
        suffix = PurePosixPath(file_name or "").suffix
        if suffix and not _UNSAFE_CHARS.search(suffix[1:]):
            return folder, suffix.lower()
        return folder, default_ext or ""

    def resolve(self, locator: str) -> Path:
        """Absolute path of a locator, refusing anything outside the base."""
        path = (self._base / locator).resolve()
        if not path.is_relative_to(self._base):
            raise InvalidInput(f"Payload locator escapes storage root: '{locator}'")
        return path

    async def put(
        self,
        evidence_id: str,
        data: bytes,
        evidence_type: EvidenceType = EvidenceType.OTHER,
        file_name: str | None = None,
    ) -> str:
        folder, ext = self._folder_and_extension(evidence_type, file_name)
        safe_id = _UNSAFE_CHARS.sub("_", evidence_id)
        locator = f"{folder}/{safe_id}_{int(time.time() * 1000)}{ext}"
        path = self.resolve(locator)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("xb") as fh:
                fh.write(data)

        await asyncio.to_thread(_write)
        logger.debug("payload_stored", evidence_id=evidence_id, locator=locator, size=len(data))
        return locator

    async def get(self, locator: str) -> bytes:
        path = self.resolve(locator)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            logger.warning("payload_read_failed", locator=locator, error=str(e))
            raise PayloadMissing(
                "Evidence file not found on storage",
                details={"locator": locator},
            ) from e

    async def delete(self, locator: str) -> bool:
        path = self.resolve(locator)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            logger.warning("payload_already_missing", locator=locator)
            return False
        except OSError as e:
            logger.warning("payload_delete_failed", locator=locator, error=str(e))
            return False
        logger.debug("payload_deleted", locator=locator)
        return True

    async def health_check(self) -> dict[str, Any]:
        try:
            await asyncio.to_thread(self._base.mkdir, parents=True, exist_ok=True)
            status = "healthy"
        except OSError as e:
            logger.error("payload_store_unhealthy", base_dir=str(self._base), error=str(e))
            status = "unhealthy"
        return {
            "status": status,
            "backend": "local",
            "base_dir": str(self._base),
        }


class InMemoryPayloadStore(PayloadStore):
    """Dictionary-backed store for development and tests."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def put(
        self,
        evidence_id: str,
        data: bytes,
        evidence_type: EvidenceType = EvidenceType.OTHER,
        file_name: str | None = None,
    ) -> str:
        locator = f"mem://{evidence_type.value}/{evidence_id}/{uuid.uuid4().hex}"
        self._blobs[locator] = bytes(data)
        return locator

    async def get(self, locator: str) -> bytes:
        try:
            return self._blobs[locator]
        except KeyError:
            raise PayloadMissing(
                "Evidence payload not found",
                details={"locator": locator},
            ) from None

    async def delete(self, locator: str) -> bool:
        if self._blobs.pop(locator, None) is None:
            logger.warning("payload_already_missing", locator=locator)
            return False
        return True

    # =========================================================================
    # Test Utilities
    # =========================================================================

    def overwrite(self, locator: str, data: bytes) -> None:
        """Replace stored bytes in place."""
        self._blobs[locator] = bytes(data)

    def discard(self, locator: str) -> None:
        """Drop stored bytes without going through delete()."""
        self._blobs.pop(locator, None)

    def __len__(self) -> int:
        return len(self._blobs)
