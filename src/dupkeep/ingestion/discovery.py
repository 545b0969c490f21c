"""File discovery for directory scan ingestion."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Collection, Iterable, Iterator

from .models import PendingFile

LOGGER = logging.getLogger(__name__)


def _is_hidden(path: Path) -> bool:
    return any(part.startswith(".") for part in path.parts if part not in (".", ".."))


class DirectoryScanner:
    """Discover candidate files within a directory tree."""

    def __init__(
        self,
        *,
        recursive: bool = True,
        include_hidden: bool = False,
        follow_symlinks: bool = False,
        max_size_bytes: int | None = None,
        formats: Collection[str] | None = None,
    ) -> None:
        self.recursive = recursive
        self.include_hidden = include_hidden
        self.follow_symlinks = follow_symlinks
        self.max_size_bytes = max_size_bytes
        self.formats = {fmt.lower().lstrip(".") for fmt in formats} if formats else None

    def scan(self, root: Path) -> Iterator[PendingFile]:
        """Yield files under ``root`` in a stable order.

        Files whose extension is outside ``formats`` are not yielded. Files larger
        than ``max_size_bytes`` are yielded with ``oversized`` set so callers can
        report them; unreadable files are yielded with ``locked`` set.
        """
        root = root.expanduser().resolve()
        if not root.exists():
            LOGGER.warning("Scan root %s does not exist", root)
            return

        for path in self._iter_paths(root):
            if path.is_symlink() and not self.follow_symlinks:
                continue
            if not path.is_file():
                continue
            try:
                relative = path.relative_to(root)
            except ValueError:
                relative = Path(path.name)
            if not self.include_hidden and _is_hidden(relative):
                continue
            if self.formats is not None and path.suffix.lower().lstrip(".") not in self.formats:
                continue
            try:
                stat = path.stat()
            except OSError:
                continue

            oversized = self.max_size_bytes is not None and stat.st_size > self.max_size_bytes

            locked = False
            try:
                with path.open("rb"):
                    pass
            except PermissionError:
                locked = True
            except OSError:
                locked = False

            yield PendingFile(
                path=path,
                size_bytes=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                locked=locked,
                oversized=oversized,
            )

    def _iter_paths(self, root: Path) -> Iterable[Path]:
        if root.is_file():
            yield root
            return

        if self.recursive:
            yield from sorted(root.rglob("*"))
        else:
            yield from sorted(root.iterdir())


__all__ = ["DirectoryScanner"]
