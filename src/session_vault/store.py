"""Keyed document storage behind the vault.

Keys are "/"-separated relative paths such as
``projects/home-user-app/2026-01-02_ab12cd34.md``. The file-system backend
maps them directly onto files under a root directory.
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


class KeyedStore(ABC):
    """Minimal text document store."""

    @abstractmethod
    def get(self, key: str) -> str:
        """Return the document stored at key. Raises KeyError if absent."""
        ...

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        """Store a document, replacing any existing one."""
        ...

    @abstractmethod
    def list(self, prefix: str, suffix: str = "") -> list[str]:
        """Return sorted keys under prefix whose name ends with suffix."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a document. Returns False if it was already absent."""
        ...


def join_key(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p)


class FileStore(KeyedStore):
    """KeyedStore over a directory tree."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        pure = PurePosixPath(key)
        if pure.is_absolute() or ".." in pure.parts or not pure.parts:
            raise ValueError(f"Invalid store key: {key!r}")
        return self.root.joinpath(*pure.parts)

    def get(self, key: str) -> str:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError):
            raise KeyError(key) from None

    def put(self, key: str, value: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)

    def list(self, prefix: str, suffix: str = "") -> list[str]:
        base = self.path_for(prefix)
        if not base.is_dir():
            return []
        keys = []
        for path in base.rglob(f"*{suffix}"):
            if path.is_file():
                keys.append(path.relative_to(self.root).as_posix())
        return sorted(keys)

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
