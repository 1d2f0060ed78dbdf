"""
Record Store

Default persistence collaborator: JSON collections (``capsules``,
``voice_models``) under the data directory, written atomically through a
temporary file, with a storage quota and retention cleanup.
"""

import asyncio
import json
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from heirloom.models.app_config import StorageConfig
from heirloom.models.error import ErrorSeverity, StorageError


CAPSULES = "capsules"
VOICE_MODELS = "voice_models"
COLLECTIONS = (CAPSULES, VOICE_MODELS)

T = TypeVar("T")


class JsonRecordStore:
    """
    File-backed record collections.

    Each collection is one JSON object of ``record_id -> record`` stored as
    ``<data_directory>/<collection>.json``. Blocking file access runs on a
    single-worker thread pool so writes are serialized.
    """

    def __init__(self, config: Optional[StorageConfig] = None, data_directory: Optional[Union[str, Path]] = None):
        """
        Initialize the store.

        Args:
            config: Data directory, quota and retention settings
            data_directory: Overrides ``config.data_directory``
        """
        self.config = config or StorageConfig()
        self.data_directory = Path(data_directory or self.config.data_directory)
        self.logger = logging.getLogger(self.__class__.__name__)

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="RecordStore")
        self._lock = threading.Lock()
        self._cache: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _path(self, collection: str) -> Path:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        return self.data_directory / f"{collection}.json"

    def _load_sync(self, collection: str) -> Dict[str, Dict[str, Any]]:
        if collection in self._cache:
            return self._cache[collection]

        path = self._path(collection)
        records: Dict[str, Dict[str, Any]] = {}
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    records = data
                else:
                    raise ValueError("collection root is not an object")
            except (json.JSONDecodeError, ValueError, UnicodeDecodeError) as e:
                corrupted = path.with_suffix(f".corrupted_{int(time.time())}")
                self.logger.error(f"Collection file {path} is corrupt ({e}); moved to {corrupted}")
                path.rename(corrupted)
                records = {}
            except OSError as e:
                raise StorageError(
                    severity=ErrorSeverity.ERROR,
                    code="STORAGE_READ_FAILED",
                    user_message="There was a problem reading your data",
                    technical_details=f"{path}: {e}",
                    suggested_action="Check that the data folder is readable"
                ) from e

        self._cache[collection] = records
        return records

    def _usage_sync(self, exclude: Optional[str] = None) -> int:
        total = 0
        for collection in COLLECTIONS:
            if collection == exclude:
                continue
            path = self._path(collection)
            if path.exists():
                total += path.stat().st_size
        return total

    def _write_sync(self, collection: str, records: Dict[str, Dict[str, Any]]) -> None:
        path = self._path(collection)
        payload = json.dumps(records, indent=2, ensure_ascii=False)
        projected = self._usage_sync(exclude=collection) + len(payload.encode("utf-8"))

        if projected > self.config.max_storage_size:
            raise StorageError(
                severity=ErrorSeverity.ERROR,
                code="STORAGE_QUOTA_EXCEEDED",
                user_message="Storage space full",
                technical_details=f"Projected usage {projected} bytes exceeds quota {self.config.max_storage_size}",
                suggested_action="Remove old drafts or unused voice models to free up space"
            )

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_file = path.with_suffix(".tmp")
            temp_file.write_text(payload, encoding="utf-8")
            temp_file.replace(path)
        except OSError as e:
            raise StorageError(
                severity=ErrorSeverity.ERROR,
                code="STORAGE_WRITE_FAILED",
                user_message="There was a problem saving your data",
                technical_details=f"{path}: {e}",
                suggested_action="Please try again"
            ) from e

    def _put_sync(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        with self._lock:
            records = dict(self._load_sync(collection))
            records[record_id] = record
            self._write_sync(collection, records)
            self._cache[collection] = records

    def _delete_sync(self, collection: str, record_id: str) -> bool:
        with self._lock:
            records = dict(self._load_sync(collection))
            if records.pop(record_id, None) is None:
                return False
            self._write_sync(collection, records)
            self._cache[collection] = records
            return True

    def _update_sync(self, collection: str, mutate: Callable[[Dict[str, Dict[str, Any]]], T]) -> T:
        with self._lock:
            records = {record_id: dict(record) for record_id, record in self._load_sync(collection).items()}
            result = mutate(records)
            self._write_sync(collection, records)
            self._cache[collection] = records
            return result

    def _list_sync(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(record) for record in self._load_sync(collection).values()]

    def _get_sync(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._load_sync(collection).get(record_id)
            return dict(record) if record is not None else None

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    async def put(self, collection: str, record_id: str, record: Dict[str, Any]) -> None:
        """
        Insert or replace a record.

        Raises:
            StorageError: Quota exceeded (STORAGE_QUOTA_EXCEEDED) or write failure
        """
        await self._run(self._put_sync, collection, record_id, record)

    async def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        return await self._run(self._get_sync, collection, record_id)

    async def list(self, collection: str) -> List[Dict[str, Any]]:
        return await self._run(self._list_sync, collection)

    async def delete(self, collection: str, record_id: str) -> bool:
        """Delete a record. Returns False when it did not exist."""
        return await self._run(self._delete_sync, collection, record_id)

    async def update(self, collection: str, mutate: Callable[[Dict[str, Dict[str, Any]]], T]) -> T:
        """
        Read-modify-write a whole collection atomically.

        ``mutate`` receives a copy of the records keyed by id, edits it in
        place and may return a value, which is passed back to the caller.
        Nothing is written if it raises.

        Raises:
            StorageError: Quota exceeded (STORAGE_QUOTA_EXCEEDED) or write failure
        """
        return await self._run(self._update_sync, collection, mutate)

    async def usage_bytes(self) -> int:
        return await self._run(self._usage_sync)

    async def cleanup_expired(self, retention_days: Optional[int] = None) -> int:
        """
        Delete draft capsules older than the retention period.

        Args:
            retention_days: Overrides ``config.data_retention_days``

        Returns:
            int: Number of records removed
        """
        days = retention_days if retention_days is not None else self.config.data_retention_days
        cutoff = datetime.now() - timedelta(days=days)

        def _cleanup() -> int:
            with self._lock:
                records = dict(self._load_sync(CAPSULES))
                expired = []
                for record_id, record in records.items():
                    if record.get("status") != "draft":
                        continue
                    try:
                        created = datetime.fromisoformat(record.get("createdAt", ""))
                    except (TypeError, ValueError):
                        continue
                    if created < cutoff:
                        expired.append(record_id)

                if not expired:
                    return 0
                for record_id in expired:
                    del records[record_id]
                self._write_sync(CAPSULES, records)
                self._cache[CAPSULES] = records
                return len(expired)

        removed = await self._run(_cleanup)
        if removed:
            self.logger.info(f"Removed {removed} expired draft capsule(s) older than {days} days")
        return removed

    def close(self) -> None:
        self._executor.shutdown(wait=True)
