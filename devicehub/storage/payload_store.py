"""
Payload Store - large per-device payload objects (full scan data and similar)

Keys always live under ``payloads/<device_id>/`` so ownership can be checked
from the key alone.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import List, Optional
import asyncio
import json
import re
import structlog

from devicehub.config import settings

logger = structlog.get_logger()

KEY_PATTERN = re.compile(r"^payloads/[A-Za-z0-9\-]+/[A-Za-z0-9_\-.]+\.json$")


@dataclass
class PayloadObject:
    key: str
    size: int
    uploaded: datetime


def device_prefix(device_id: str) -> str:
    return f"payloads/{device_id}/"


def key_belongs_to(key: str, device_id: str) -> bool:
    """True if ``key`` is a well-formed key under the device's prefix."""
    return key.startswith(device_prefix(device_id)) and bool(KEY_PATTERN.match(key))


class PayloadStore(ABC):
    """Abstract payload store interface."""

    @abstractmethod
    async def put(self, device_id: str, kind: str, data) -> str:
        """
        Store a JSON-serializable payload for a device.

        Args:
            device_id: Owning device
            kind: Short payload kind (e.g. "room", "barcode")
            data: JSON-serializable payload

        Returns:
            Key of the stored object
        """
        pass

    @abstractmethod
    async def list(self, device_id: str, limit: int = 50) -> List[PayloadObject]:
        """List a device's payloads, newest first."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Fetch a payload by key, or None if it does not exist."""
        pass


class LocalDiskPayloadStore(PayloadStore):
    """
    Local disk payload store.
    Stores objects in a volume-mounted directory.
    """

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info("local_payload_store_initialized", path=str(self.base_path))

    async def put(self, device_id: str, kind: str, data) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")
        key = f"{device_prefix(device_id)}{timestamp}-{kind}.json"
        if not KEY_PATTERN.match(key):
            raise ValueError(f"Invalid payload key: {key}")

        content = json.dumps(data, indent=2).encode("utf-8")

        # Offload blocking file I/O to thread pool
        await asyncio.to_thread(self._write_file_sync, self._path_for(key), content)

        logger.info("payload_stored", device_id=device_id, key=key, size_bytes=len(content))
        return key

    async def list(self, device_id: str, limit: int = 50) -> List[PayloadObject]:
        return await asyncio.to_thread(self._list_sync, device_id, limit)

    async def get(self, key: str) -> Optional[bytes]:
        if not KEY_PATTERN.match(key):
            return None
        return await asyncio.to_thread(self._read_file_sync, self._path_for(key))

    def _path_for(self, key: str) -> Path:
        return self.base_path / key

    def _write_file_sync(self, file_path: Path, content: bytes):
        """Synchronous file write (called from thread pool)."""
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "wb") as f:
            f.write(content)

    def _read_file_sync(self, file_path: Path) -> Optional[bytes]:
        """Synchronous file read (called from thread pool)."""
        if not file_path.is_file():
            return None
        with open(file_path, "rb") as f:
            return f.read()

    def _list_sync(self, device_id: str, limit: int) -> List[PayloadObject]:
        directory = self._path_for(device_prefix(device_id))
        if not directory.is_dir():
            return []

        objects = []
        for path in directory.glob("*.json"):
            stat = path.stat()
            objects.append(PayloadObject(
                key=f"{device_prefix(device_id)}{path.name}",
                size=stat.st_size,
                uploaded=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).replace(tzinfo=None),
            ))
        # Key names start with the upload timestamp
        objects.sort(key=lambda obj: obj.key, reverse=True)
        return objects[:limit]


@lru_cache
def get_payload_store() -> PayloadStore:
    """Dependency returning the configured payload store."""
    return LocalDiskPayloadStore(settings.PAYLOAD_STORAGE_PATH)
