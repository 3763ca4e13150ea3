"""Per-session scratch directory holding raw and filtered frames."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from types import TracebackType
from typing import Optional

from src.datatypes import CacheConfig
from src.filter_preview.render.errors import FileSystemError

logger = logging.getLogger(__name__)

_DIR_PREFIX = "filter-preview-"


class CacheDirectory:
    """
    Ephemeral directory created once per session.

    The directory is emptied whenever a new source is loaded and removed when
    the session ends (unless ``keep_on_exit`` is set).
    """

    def __init__(self, root: Path | None = None, *, keep_on_exit: bool = False) -> None:
        self._root = Path(root) if root is not None else None
        self._keep_on_exit = keep_on_exit
        self._path: Optional[Path] = None

    @classmethod
    def from_config(cls, cfg: CacheConfig) -> CacheDirectory:
        root = Path(cfg.root) if cfg.root else None
        return cls(root, keep_on_exit=cfg.keep_on_exit)

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("Cache directory has not been created")
        return self._path

    @property
    def created(self) -> bool:
        return self._path is not None

    def create(self) -> Path:
        if self._path is not None:
            return self._path
        try:
            if self._root is not None:
                self._root.mkdir(parents=True, exist_ok=True)
            created = Path(tempfile.mkdtemp(prefix=_DIR_PREFIX, dir=self._root))
        except OSError as exc:
            raise FileSystemError(f"Unable to create cache directory: {exc}") from exc
        logger.info("Frame cache at %s", created)
        self._path = created
        return created

    def empty(self) -> None:
        """Delete every entry inside the directory, keeping the directory itself."""

        path = self.path
        path.mkdir(parents=True, exist_ok=True)
        removed = 0
        try:
            for entry in path.iterdir():
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink(missing_ok=True)
                removed += 1
        except OSError as exc:
            raise FileSystemError(f"Unable to empty cache directory {path}: {exc}") from exc
        logger.debug("Emptied cache directory %s (%d entries)", path, removed)

    def remove(self) -> None:
        if self._path is None:
            return
        if self._keep_on_exit:
            logger.info("Keeping frame cache at %s", self._path)
            return
        try:
            shutil.rmtree(self._path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to remove cache directory %s: %s", self._path, exc)
        self._path = None

    def __enter__(self) -> Path:
        return self.create()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.remove()
