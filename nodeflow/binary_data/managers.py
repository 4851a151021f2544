"""Storage managers behind the binary data service."""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class BinaryMetadata:
    file_name: str | None
    mime_type: str
    file_size: int


class BinaryDataManager:
    """Interface every storage mode implements. File ids are ``<execution id>/<uuid>``."""

    async def store(self, data: bytes, execution_id: str, metadata: BinaryMetadata) -> str:
        raise NotImplementedError

    async def get_buffer(self, file_id: str) -> bytes:
        raise NotImplementedError

    async def get_metadata(self, file_id: str) -> BinaryMetadata:
        raise NotImplementedError

    async def copy_by_file_id(self, file_id: str, execution_id: str) -> str:
        raise NotImplementedError

    async def delete_many_by_execution_ids(self, execution_ids: list[str]) -> None:
        raise NotImplementedError

    @staticmethod
    def new_file_id(execution_id: str) -> str:
        return f"{execution_id}/{uuid.uuid4().hex}"


class MemoryManager(BinaryDataManager):
    """Keeps buffers in process memory. Only useful within a single process."""

    def __init__(self) -> None:
        self._files: dict[str, tuple[bytes, BinaryMetadata]] = {}

    async def store(self, data: bytes, execution_id: str, metadata: BinaryMetadata) -> str:
        file_id = self.new_file_id(execution_id)
        self._files[file_id] = (bytes(data), metadata)
        return file_id

    async def get_buffer(self, file_id: str) -> bytes:
        try:
            return self._files[file_id][0]
        except KeyError:
            raise FileNotFoundError(file_id) from None

    async def get_metadata(self, file_id: str) -> BinaryMetadata:
        try:
            return self._files[file_id][1]
        except KeyError:
            raise FileNotFoundError(file_id) from None

    async def copy_by_file_id(self, file_id: str, execution_id: str) -> str:
        data, metadata = self._files[file_id]
        return await self.store(data, execution_id, metadata)

    async def delete_many_by_execution_ids(self, execution_ids: list[str]) -> None:
        prefixes = tuple(f"{execution_id}/" for execution_id in execution_ids)
        for file_id in [f for f in self._files if f.startswith(prefixes)]:
            del self._files[file_id]


class FileSystemManager(BinaryDataManager):
    """Stores each buffer as a file with a ``.metadata`` JSON file beside it."""

    def __init__(self, storage_path: str | Path) -> None:
        self.storage_path = Path(storage_path)

    async def init(self) -> None:
        await asyncio.to_thread(self.storage_path.mkdir, parents=True, exist_ok=True)

    def _path(self, file_id: str) -> Path:
        path = (self.storage_path / file_id).resolve()
        if self.storage_path.resolve() not in path.parents:
            raise FileNotFoundError(file_id)
        return path

    async def store(self, data: bytes, execution_id: str, metadata: BinaryMetadata) -> str:
        file_id = self.new_file_id(execution_id)
        path = self._path(file_id)

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            path.with_suffix(".metadata").write_text(json.dumps(asdict(metadata)))

        await asyncio.to_thread(write)
        return file_id

    async def get_buffer(self, file_id: str) -> bytes:
        return await asyncio.to_thread(self._path(file_id).read_bytes)

    async def get_metadata(self, file_id: str) -> BinaryMetadata:
        text = await asyncio.to_thread(self._path(file_id).with_suffix(".metadata").read_text)
        return BinaryMetadata(**json.loads(text))

    async def copy_by_file_id(self, file_id: str, execution_id: str) -> str:
        data = await self.get_buffer(file_id)
        metadata = await self.get_metadata(file_id)
        return await self.store(data, execution_id, metadata)

    async def delete_many_by_execution_ids(self, execution_ids: list[str]) -> None:
        for execution_id in execution_ids:
            directory = self.storage_path / execution_id
            if directory.is_dir():
                await asyncio.to_thread(shutil.rmtree, directory)
                logger.debug("Deleted binary data of execution %s", execution_id)
