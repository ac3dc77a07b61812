from pathlib import Path

from kanban_md.storage.base import LoadResult, Store
from kanban_md.storage.file_store import StoreToFiles

__all__ = [
    "LoadResult",
    "Store",
    "StoreToFiles",
]


def get_store(root: str | Path) -> Store:
    return StoreToFiles(root)
