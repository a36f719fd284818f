"""
Key-value persistence used for device-local storage, plus the retry policy
applied to every persistence call made by the habit store
"""

import asyncio
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, TypeVar
from urllib.parse import quote
import logging

from habitcontrol.core.config import settings
from habitcontrol.core.errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyValueStore(ABC):
    """Device-scoped byte storage: ``load(key) -> bytes | None``, ``save(key, data) -> bool``"""

    @abstractmethod
    async def load(self, key: str) -> Optional[bytes]:
        ...

    @abstractmethod
    async def save(self, key: str, data: bytes) -> bool:
        ...

    @abstractmethod
    async def remove(self, key: str) -> bool:
        ...


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})

    async def load(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def save(self, key: str, data: bytes) -> bool:
        self._data[key] = bytes(data)
        return True

    async def remove(self, key: str) -> bool:
        self._data.pop(key, None)
        return True

    def keys(self):
        return list(self._data.keys())


class FileKeyValueStore(KeyValueStore):
    """One file per key under ``base_dir``; writes go through a temp file and ``os.replace``"""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.data_dir)

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{quote(key, safe='')}.json"

    def _read(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def _write(self, key: str, data: bytes) -> bool:
        """Atomic replace through a temp file unique to this write"""
        path = self._path(key)
        tmp_name = None
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=self.base_dir, prefix=path.name, suffix=".tmp", delete=False) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
            os.replace(tmp_name, path)
            tmp_name = None
            return True
        except OSError as e:
            logger.error(f"Failed to write key '{key}' to {path}: {e}")
            return False
        finally:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)

    def _delete(self, key: str) -> bool:
        try:
            self._path(key).unlink(missing_ok=True)
            return True
        except OSError as e:
            logger.error(f"Failed to remove key '{key}': {e}")
            return False

    async def load(self, key: str) -> Optional[bytes]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read, key)

    async def save(self, key: str, data: bytes) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._write, key, data)

    async def remove(self, key: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._delete, key)


async def call_with_retries(
    operation: Callable[[], Awaitable[T]],
    description: str,
    retries: Optional[int] = None,
    timeout_s: Optional[float] = None,
    delay_s: Optional[float] = None
) -> T:
    """Run a persistence coroutine with a timeout, retrying on failure.

    Raises PersistenceError once every attempt has failed.
    """
    retries = settings.persistence_retries if retries is None else retries
    timeout_s = settings.persistence_timeout_s if timeout_s is None else timeout_s
    delay_s = settings.persistence_retry_delay_s if delay_s is None else delay_s

    attempts = max(retries, 0) + 1
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(operation(), timeout=timeout_s)
        except asyncio.TimeoutError as e:
            last_error = e
            reason = f"timed out after {timeout_s}s"
        except PersistenceError as e:
            last_error = e
            reason = e.message

        if attempt < attempts:
            logger.warning(f"{description} failed ({reason}), retrying ({attempt}/{attempts - 1})")
            await asyncio.sleep(delay_s)

    logger.error(f"{description} failed after {attempts} attempt(s): {reason}")
    raise PersistenceError(f"{description} failed: {reason}") from last_error
