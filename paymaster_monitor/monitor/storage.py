import asyncio
import copy
import json
import os
from abc import ABC, abstractmethod
from typing import Any

from paymaster_monitor.user_operation.models import OutcomeBucket
from .exceptions import SinkException, SinkExceptionCode


class Storage(ABC):
    """Append only record store, one list of json records per bucket."""

    @abstractmethod
    async def append(self, bucket: OutcomeBucket, record: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def get(self, bucket: OutcomeBucket) -> list[dict[str, Any]]:
        pass


class InMemoryStorage(Storage):
    buckets: dict[OutcomeBucket, list[dict[str, Any]]]

    def __init__(self) -> None:
        self.buckets = {}

    async def append(self, bucket: OutcomeBucket, record: dict[str, Any]) -> None:
        self.buckets.setdefault(bucket, []).append(copy.deepcopy(record))

    async def get(self, bucket: OutcomeBucket) -> list[dict[str, Any]]:
        return copy.deepcopy(self.buckets.get(bucket, []))


class JsonFileStorage(Storage):
    """
    Keeps each bucket as a json array in <storage_dir>/<bucket>.json.
    Appends rewrite the whole file through <bucket>.json.tmp.
    """
    storage_dir: str

    def __init__(self, storage_dir: str) -> None:
        self.storage_dir = storage_dir

    def get_bucket_path(self, bucket: OutcomeBucket) -> str:
        return os.path.join(self.storage_dir, f"{bucket}.json")

    async def append(self, bucket: OutcomeBucket, record: dict[str, Any]) -> None:
        await asyncio.to_thread(self._append, bucket, record)

    async def get(self, bucket: OutcomeBucket) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._read_bucket, bucket)

    def _append(self, bucket: OutcomeBucket, record: dict[str, Any]) -> None:
        records = self._read_bucket(bucket)
        records.append(record)
        path = self.get_bucket_path(bucket)
        tmp_path = path + ".tmp"
        try:
            os.makedirs(self.storage_dir, exist_ok=True)
            with open(tmp_path, "w") as bucket_file:
                json.dump(records, bucket_file, indent=2)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as excp:
            raise SinkException(
                SinkExceptionCode.StorageAppendFailed,
                f"Failed to write bucket {bucket} to {path}: {str(excp)}",
            ) from excp

    def _read_bucket(self, bucket: OutcomeBucket) -> list[dict[str, Any]]:
        path = self.get_bucket_path(bucket)
        if not os.path.exists(path):
            return []
        try:
            with open(path) as bucket_file:
                records = json.load(bucket_file)
        except (OSError, json.decoder.JSONDecodeError) as excp:
            raise SinkException(
                SinkExceptionCode.StorageAppendFailed,
                f"Failed to read bucket {bucket} from {path}: {str(excp)}",
            ) from excp
        # an empty object is how an uninitialized key reads back
        if records == {}:
            return []
        if not isinstance(records, list):
            raise SinkException(
                SinkExceptionCode.StorageAppendFailed,
                f"Bucket {bucket} at {path} is not a json array",
            )
        return records
