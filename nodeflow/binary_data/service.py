"""
Binary data indirection.

Items carry a ``BinaryData`` reference whose ``id`` is ``"<mode>:<file id>"``
instead of the raw bytes. In ``default`` mode the bytes stay inline as base64.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import replace
from pathlib import Path

from ..core.exceptions import InvalidBinaryDataModeError
from ..engine.types import BinaryData, ExecutionItem
from .managers import BinaryDataManager, BinaryMetadata, FileSystemManager, MemoryManager

logger = logging.getLogger(__name__)

VALID_MODES = ("default", "memory", "filesystem")


class BinaryDataService:
    """Process-wide binary data service; call ``init`` once at startup."""

    def __init__(self) -> None:
        self.mode = "default"
        self.available_modes: list[str] = ["default"]
        self._managers: dict[str, BinaryDataManager] = {}

    async def init(
        self,
        mode: str = "default",
        available_modes: list[str] | None = None,
        storage_path: str | Path = "./binary-data",
    ) -> None:
        available = list(available_modes or [mode])
        for candidate in [*available, mode]:
            if candidate not in VALID_MODES:
                raise InvalidBinaryDataModeError(candidate)
        if mode not in available:
            raise InvalidBinaryDataModeError(mode)

        self.mode = mode
        self.available_modes = available
        self._managers = {}

        if "memory" in available:
            self._managers["memory"] = MemoryManager()
        if "filesystem" in available:
            manager = FileSystemManager(storage_path)
            await manager.init()
            self._managers["filesystem"] = manager

        logger.debug("Binary data service initialized (mode=%s, available=%s)", mode, available)

    async def store(
        self,
        data: bytes,
        execution_id: str,
        file_name: str | None = None,
        mime_type: str = "application/octet-stream",
    ) -> BinaryData:
        """Store a buffer and return the reference to put in an item."""
        binary = BinaryData(
            mime_type=mime_type,
            file_name=file_name,
            file_extension=Path(file_name).suffix.lstrip(".") or None if file_name else None,
            file_size=len(data),
        )

        manager = self._managers.get(self.mode)
        if manager is None:
            binary.data = base64.b64encode(data).decode("ascii")
            return binary

        file_id = await manager.store(
            data, execution_id, BinaryMetadata(file_name, mime_type, len(data))
        )
        binary.id = self._create_binary_data_id(file_id)
        binary.data = self.mode
        return binary

    async def get_buffer(self, binary: BinaryData) -> bytes:
        if binary.id:
            return await self.retrieve_by_id(binary.id)
        return base64.b64decode(binary.data or "")

    async def retrieve_by_id(self, identifier: str) -> bytes:
        mode, file_id = self._split_mode_file_id(identifier)
        return await self._get_manager(mode).get_buffer(file_id)

    async def get_metadata(self, identifier: str) -> BinaryMetadata:
        mode, file_id = self._split_mode_file_id(identifier)
        return await self._get_manager(mode).get_metadata(file_id)

    async def delete_many_by_execution_ids(self, execution_ids: list[str]) -> None:
        manager = self._managers.get(self.mode)
        if manager is not None:
            await manager.delete_many_by_execution_ids(execution_ids)

    async def duplicate_binary_data(
        self, input_data: list[list[ExecutionItem] | None], execution_id: str
    ) -> list[list[ExecutionItem] | None]:
        """Copy stored binaries so a new execution owns its own files."""
        manager = self._managers.get(self.mode)
        if manager is None:
            return input_data

        result: list[list[ExecutionItem] | None] = []
        for items in input_data:
            if items is None:
                result.append(None)
                continue
            copied: list[ExecutionItem] = []
            for item in items:
                if not item.binary:
                    copied.append(item)
                    continue
                binary: dict[str, BinaryData] = {}
                for key, value in item.binary.items():
                    if value.id:
                        mode, file_id = self._split_mode_file_id(value.id)
                        new_file_id = await self._get_manager(mode).copy_by_file_id(
                            file_id, execution_id
                        )
                        value = replace(value, id=f"{mode}:{new_file_id}")
                    binary[key] = value
                copied.append(replace(item, binary=binary))
            result.append(copied)
        return result

    def _create_binary_data_id(self, file_id: str) -> str:
        return f"{self.mode}:{file_id}"

    def _split_mode_file_id(self, identifier: str) -> tuple[str, str]:
        mode, sep, file_id = identifier.partition(":")
        if not sep or not file_id:
            raise ValueError(f'Invalid binary data id "{identifier}"')
        return mode, file_id

    def _get_manager(self, mode: str) -> BinaryDataManager:
        if mode not in self.available_modes:
            raise InvalidBinaryDataModeError(mode)
        manager = self._managers.get(mode)
        if manager is None:
            raise InvalidBinaryDataModeError(mode)
        return manager


# Process-wide instance, initialized by the server and the worker on startup
binary_data_service = BinaryDataService()
