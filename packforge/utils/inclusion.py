"""
Include/exclude glob matching for pack source files.
"""
import os
from typing import Optional, Sequence

from wcmatch import glob as wcglob

GLOB_FLAGS = wcglob.GLOBSTAR


def to_relative_posix(path: str, base_dir: str) -> Optional[str]:
    """
    Relative POSIX path of `path` under `base_dir`.

    Returns:
        The relative path, or None when `path` is not under `base_dir`
    """
    full_path = os.path.abspath(path)
    base_dir = os.path.abspath(base_dir)

    if full_path == base_dir:
        return None
    if os.path.commonpath([full_path, base_dir]) != base_dir:
        return None

    return os.path.relpath(full_path, base_dir).replace(os.sep, "/")


def is_included(
    path: str,
    base_dir: str,
    include: Optional[Sequence[str]] = None,
    exclude: Optional[Sequence[str]] = None,
) -> bool:
    """
    Check whether a file belongs to a pack.

    A path is included when it lies under `base_dir`, matches at least one
    `include` pattern (no patterns means everything) and matches none of the
    `exclude` patterns. Patterns are relative to `base_dir` and support `**`.

    Args:
        path: File path, absolute or relative to the working directory
        base_dir: Pack source root
        include: Glob patterns to include
        exclude: Glob patterns to exclude

    Returns:
        True if the path is included
    """
    relative_path = to_relative_posix(path, base_dir)
    if relative_path is None:
        return False

    if exclude and any(wcglob.globmatch(relative_path, p, flags=GLOB_FLAGS) for p in exclude):
        return False

    if not include:
        return True
    return any(wcglob.globmatch(relative_path, p, flags=GLOB_FLAGS) for p in include)
