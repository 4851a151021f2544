"""Binary data storage for item attachments."""

from .managers import BinaryDataManager, BinaryMetadata, FileSystemManager, MemoryManager
from .service import VALID_MODES, BinaryDataService, binary_data_service

__all__ = [
    "BinaryDataManager",
    "BinaryDataService",
    "BinaryMetadata",
    "FileSystemManager",
    "MemoryManager",
    "VALID_MODES",
    "binary_data_service",
]
