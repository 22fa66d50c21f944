from __future__ import annotations

import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import BinaryIO, Protocol

log = logging.getLogger("filegate.store")


class FileStoreAccessError(PermissionError):
    pass


class FileStore(Protocol):
    def store(self, content: bytes) -> str: ...

    def open(self, handle: str) -> BinaryIO: ...

    def delete(self, handle: str) -> bool: ...

    def exists(self, handle: str) -> bool: ...


class LocalFileStore:
    """
    Content store on local disk.

    Handles are paths relative to ``root``. Content is never interpreted.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, handle: str) -> Path:
        root = self.root.resolve()
        p = (root / handle).resolve()
        if p == root or root not in p.parents:
            raise FileStoreAccessError("FILE_STORE_HANDLE_OUTSIDE_ROOT")
        return p

    def store(self, content: bytes) -> str:
        name = uuid.uuid4().hex
        handle = f"{name[:2]}/{name}.bin"
        target = self._path(handle)
        target.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile("wb", dir=target.parent, delete=False) as tmp:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_path = Path(tmp.name)
        os.replace(tmp_path, target)
        log.debug("stored %d bytes handle=%s", len(content), handle)
        return handle

    def open(self, handle: str) -> BinaryIO:
        return self._path(handle).open("rb")

    def exists(self, handle: str) -> bool:
        try:
            return self._path(handle).is_file()
        except FileStoreAccessError:
            return False

    def delete(self, handle: str) -> bool:
        """Remove stored content. Already-missing content counts as deleted."""
        try:
            p = self._path(handle)
        except FileStoreAccessError:
            log.error("refusing to delete handle outside store root handle=%s", handle)
            return False
        try:
            p.unlink()
        except FileNotFoundError:
            log.warning("content already missing handle=%s", handle)
            return True
        except OSError:
            log.exception("FAILED to delete content handle=%s", handle)
            return False
        return True
