"""
Modification-time based change detection for pack source trees.
"""
import asyncio
import logging
import os
from collections import deque
from typing import Collection, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from ..core.enums import FileChangeKind
from ..core.exceptions import TransformError
from ..core.models import FileChange
from ..utils.inclusion import is_included
from .context import CancellationToken

DirKey = Tuple[int, int]

logger = logging.getLogger(__name__)


def _dir_key(directory: str) -> Optional[DirKey]:
    """(st_dev, st_ino) of a directory, None if it does not exist"""
    try:
        st = os.stat(directory)
    except FileNotFoundError:
        return None
    except OSError as e:
        raise TransformError(directory, f"Cannot read directory: {e}") from e
    return st.st_dev, st.st_ino


def _list_dir(directory: str) -> Tuple[List[Tuple[str, DirKey]], List[Tuple[str, int]]]:
    """
    List subdirectories (with their (st_dev, st_ino) key) and files (with
    mtime in ns) of one directory. Symlinks are followed.

    Raises:
        TransformError: If the directory or one of its entries cannot be read
    """
    dirs = []
    files = []
    try:
        with os.scandir(directory) as it:
            for entry in it:
                try:
                    if entry.is_dir():
                        st = entry.stat()
                        dirs.append((entry.path, (st.st_dev, st.st_ino)))
                    elif entry.is_file():
                        files.append((entry.path, entry.stat().st_mtime_ns))
                except FileNotFoundError:
                    # Removed between listing and stat
                    continue
    except (FileNotFoundError, NotADirectoryError):
        pass
    except OSError as e:
        raise TransformError(directory, f"Cannot read directory: {e}") from e
    return dirs, files


def is_in_scope(path: str, limit: Collection[str]) -> bool:
    """True if the path or one of its ancestor directories is in the limit set"""
    current = path
    while True:
        if current in limit:
            return True
        parent = os.path.dirname(current)
        if parent == current:
            return False
        current = parent


class ChangeCache:
    """
    Mapping from absolute source file path to its last observed modification
    time (ns). Instances are never mutated by a build attempt: `diff` returns
    a new cache that the owner installs only when the attempt succeeds.
    """

    def __init__(self, entries: Optional[Mapping[str, int]] = None):
        self._entries: Dict[str, int] = dict(entries or {})
        self.logger = logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def get(self, path: str) -> Optional[int]:
        return self._entries.get(path)

    @property
    def entries(self) -> Dict[str, int]:
        """Copy of the cached entries"""
        return dict(self._entries)

    @staticmethod
    async def scan(
        source_root: str,
        include: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
        token: Optional[CancellationToken] = None,
    ) -> Dict[str, int]:
        """
        Breadth-first walk of a source tree.

        Every directory is descended regardless of the inclusion rules; only
        files are filtered. Symlinked directories are followed, but each
        physical directory is expanded once. The token is checked before
        each directory expansion.

        Args:
            source_root: Pack source root
            include: Include glob patterns
            exclude: Exclude glob patterns
            token: Cancellation token of the current attempt

        Returns:
            Dict mapping included file path to mtime (ns)

        Raises:
            BuildCancelledError: If the attempt was cancelled during the walk
            TransformError: If a directory of the tree cannot be read
        """
        result: Dict[str, int] = {}
        root = os.path.abspath(source_root)
        worklist = deque([root])

        root_key = await asyncio.to_thread(_dir_key, root)
        visited: Set[DirKey] = {root_key} if root_key else set()

        while worklist:
            if token:
                token.raise_if_cancelled()

            directory = worklist.popleft()
            dirs, files = await asyncio.to_thread(_list_dir, directory)

            for path, key in sorted(dirs):
                if key in visited:
                    logger.debug(f"Skipping already scanned directory {path}")
                    continue
                visited.add(key)
                worklist.append(path)

            for path, mtime in sorted(files):
                if is_included(path, source_root, include, exclude):
                    result[path] = mtime

        return result

    def diff(
        self,
        current: Mapping[str, int],
        limit: Optional[Collection[str]] = None,
    ) -> Tuple[List[FileChange], "ChangeCache"]:
        """
        Compare the current on-disk state with this cache.

        Args:
            current: Included files currently on disk (path -> mtime)
            limit: Optional scope limit. Only paths inside it are checked;
                cached entries outside it are carried over unchanged.

        Returns:
            Tuple of (ordered changes, cache to install on success)
        """
        changes: List[FileChange] = []
        new_entries: Dict[str, int] = {}

        for path, mtime in current.items():
            if limit is not None and not is_in_scope(path, limit):
                continue

            old_mtime = self._entries.get(path)
            if old_mtime is None:
                changes.append(FileChange(FileChangeKind.ADD, path))
            elif old_mtime != mtime:
                changes.append(FileChange(FileChangeKind.UPDATE, path))
            new_entries[path] = mtime

        removed = []
        for path, mtime in self._entries.items():
            if path in new_entries:
                continue
            if limit is not None and not is_in_scope(path, limit):
                new_entries[path] = mtime
                continue
            removed.append(path)

        changes.extend(FileChange(FileChangeKind.REMOVE, path) for path in sorted(removed))

        self.logger.debug(
            f"Diff complete: added={sum(c.kind == FileChangeKind.ADD for c in changes)}, "
            f"updated={sum(c.kind == FileChangeKind.UPDATE for c in changes)}, "
            f"removed={len(removed)}, tracked={len(new_entries)}"
        )

        return changes, ChangeCache(new_entries)
