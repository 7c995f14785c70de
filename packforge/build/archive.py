"""
Archive creation from pack staging directories.
"""
import asyncio
import logging
import os
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..core.exceptions import ArchiveError, BuildCancelledError
from ..core.models import ArchiveOptions
from .context import CancellationToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchiveSource:
    """A directory to add to an archive under `name` ("" places it at the root)"""
    path: Path
    name: str


def _write_archive(sources: List[ArchiveSource], options: ArchiveOptions, token: Optional[CancellationToken]) -> int:
    out_file = Path(options.out_file)
    out_file.parent.mkdir(parents=True, exist_ok=True)

    with zipfile.ZipFile(
        out_file, 'w',
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=options.compression_level,
    ) as zf:
        for source in sources:
            for root, dirs, files in os.walk(source.path):
                dirs.sort()
                for file in sorted(files):
                    if token:
                        token.raise_if_cancelled()

                    file_path = Path(root) / file
                    rel_path = file_path.relative_to(source.path).as_posix()
                    arcname = f"{source.name}/{rel_path}" if source.name else rel_path
                    zf.write(file_path, arcname)

    return out_file.stat().st_size


def _remove_partial(out_file: Path) -> None:
    try:
        out_file.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove partial archive {out_file}: {e}")


async def create_archive(
    sources: List[ArchiveSource],
    options: ArchiveOptions,
    token: Optional[CancellationToken] = None,
) -> int:
    """
    Write the given directories into one zip archive.

    Args:
        sources: Directories to include
        options: Output file and compression level
        token: Cancellation token; checked before every entry

    Returns:
        Size of the written archive in bytes

    Raises:
        BuildCancelledError: If cancelled mid-write (the partial file is removed)
        ArchiveError: If writing fails
    """
    if token:
        token.raise_if_cancelled()

    try:
        size = await asyncio.to_thread(_write_archive, sources, options, token)
    except BuildCancelledError:
        _remove_partial(Path(options.out_file))
        raise
    except (OSError, ValueError, zipfile.BadZipFile) as e:
        _remove_partial(Path(options.out_file))
        raise ArchiveError(f"Failed to create archive {options.out_file}: {e}") from e

    logger.info(f"Archive created: {Path(options.out_file).name} ({size} bytes)")
    return size
