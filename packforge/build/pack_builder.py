"""
Per-pack incremental builder: diff, transform, bundle, publish.
"""
import asyncio
import json
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Set, Tuple

from ..core.enums import FileChangeKind, PackKind
from ..core.exceptions import BuildCancelledError, PublishError, TransformError
from ..core.models import FileChange, PackConfig
from ..utils.inclusion import is_included, to_relative_posix
from ..utils.relaxed_json import convert_relaxed_json, is_relaxed_json, to_canonical_json
from .change_cache import ChangeCache
from .context import BuildExecutionContext, BuildSystemContext
from .scripts import ScriptBundler, is_script_file

TEXTURE_EXTENSIONS = {".png", ".tga", ".jpg", ".jpeg"}
TEXTURE_LIST_FILE = "textures/texture_list.json"


class PackBuilder:
    """
    Owns one pack's source tree, staging directory and change cache.
    """

    def __init__(
        self,
        config: PackConfig,
        bundler: Optional[ScriptBundler] = None,
        max_concurrent_changes: int = 16,
    ):
        """
        Initialize pack builder.

        Args:
            config: Resolved pack configuration
            bundler: Script bundler (esbuild) used when the pack declares scripts
            max_concurrent_changes: Upper bound of file changes applied at once
        """
        self.config = config
        self.bundler = bundler or ScriptBundler()
        self.max_concurrent_changes = max_concurrent_changes
        self.cache = ChangeCache()
        self.has_built = False
        # Source paths touched by an attempt that did not complete
        self._dirty_paths: Set[str] = set()
        self.logger = logging.getLogger(f"{__name__}.{config.name}")

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def source_root(self) -> str:
        return str(self.config.source_root)

    @property
    def script_root(self) -> Optional[Path]:
        if not self.config.scripts:
            return None
        return self.config.source_root / self.config.scripts.root

    def staging_dir(self, ctx: BuildSystemContext) -> Path:
        return ctx.temp_dir / self.name

    def owns(self, path: str, is_directory: bool = False) -> bool:
        """
        Whether a filesystem event path is relevant to this pack.

        Directories only need to lie under the source root; files must also
        pass the include/exclude rules.
        """
        if is_directory:
            return to_relative_posix(path, self.source_root) is not None
        return is_included(path, self.source_root, self.config.include, self.config.exclude)

    def is_bundler_owned(self, path: str) -> bool:
        """Files handled by the bundler instead of being copied"""
        if not self.config.scripts:
            return False
        if is_script_file(path):
            return True
        return to_relative_posix(path, str(self.script_root)) is not None

    def staged_path(self, source_path: str, staging_dir: Path) -> Path:
        """Mirrored staging path of a source file (relaxed JSON becomes .json)"""
        rel_path = Path(os.path.relpath(source_path, self.source_root))
        if is_relaxed_json(source_path):
            rel_path = rel_path.with_suffix(".json")
        return staging_dir / rel_path

    async def detect_changes(self, ctx: BuildExecutionContext) -> Tuple[List[FileChange], ChangeCache]:
        """
        Diff the source tree against the cache.

        Returns:
            Tuple of (changes, cache to install if the attempt succeeds)
        """
        current = await ChangeCache.scan(
            self.source_root,
            self.config.include,
            self.config.exclude,
            ctx.token,
        )
        # An unfinished attempt may have staged paths outside the scope limit
        limit = None if self._dirty_paths else ctx.limit
        return self.cache.diff(current, limit)

    async def build(self, ctx: BuildExecutionContext) -> List[FileChange]:
        """
        Run one build attempt for this pack.

        The change cache is replaced only when the attempt completes; a
        cancelled or failed attempt leaves it untouched. Targets are
        republished after the first build and whenever changes were applied.

        Returns:
            The changes applied by this attempt

        Raises:
            BuildCancelledError: If the attempt was cancelled
            TransformError: If a file could not be transformed
            BundlerError: If the script bundler failed
        """
        staging = self.staging_dir(ctx.system)

        changes, new_cache = await self.detect_changes(ctx)
        changes = self._with_stale_removals(changes, new_cache)
        staging.mkdir(parents=True, exist_ok=True)

        try:
            await self._apply_all(changes, staging, ctx)
        except BaseException:
            self._dirty_paths.update(c.path for c in changes)
            raise

        first_build = not self.has_built
        self.cache = new_cache
        self.has_built = True
        self._dirty_paths.clear()

        if changes or first_build:
            await self.publish(staging)
        return changes

    def _with_stale_removals(self, changes: List[FileChange], new_cache: ChangeCache) -> List[FileChange]:
        """
        Add removals for paths an unfinished attempt may have staged but which
        are no longer tracked.
        """
        known = {c.path for c in changes}
        stale = sorted(p for p in self._dirty_paths if p not in new_cache and p not in known)
        return changes + [FileChange(FileChangeKind.REMOVE, p) for p in stale]

    async def _apply_all(self, changes: List[FileChange], staging: Path, ctx: BuildExecutionContext) -> None:
        token = ctx.token

        regular_changes = [c for c in changes if not self.is_bundler_owned(c.path)]
        needs_bundle = len(regular_changes) != len(changes)

        if changes:
            self.logger.info(
                f"Applying {len(changes)} change(s) to {self.name}: "
                f"added={sum(c.kind == FileChangeKind.ADD for c in changes)}, "
                f"updated={sum(c.kind == FileChangeKind.UPDATE for c in changes)}, "
                f"removed={sum(c.kind == FileChangeKind.REMOVE for c in changes)}"
            )
        else:
            self.logger.debug(f"No changes detected for {self.name}")

        # Removals settle first: a rename such as a.json -> a.json5 removes and
        # writes the same staged file
        removals = [c for c in regular_changes if c.kind == FileChangeKind.REMOVE]
        writes = [c for c in regular_changes if c.kind != FileChangeKind.REMOVE]
        await self._apply_changes(removals, staging, ctx)
        await self._apply_changes(writes, staging, ctx)

        if needs_bundle:
            token.raise_if_cancelled()
            await self._run_bundler(staging)

        token.raise_if_cancelled()
        await asyncio.to_thread(self._write_generated_files, changes, staging)
        token.raise_if_cancelled()

    async def _apply_changes(self, changes: List[FileChange], staging: Path, ctx: BuildExecutionContext) -> None:
        """Apply file changes concurrently and wait for all of them to settle"""
        semaphore = asyncio.Semaphore(self.max_concurrent_changes)

        async def apply(change: FileChange):
            async with semaphore:
                ctx.token.raise_if_cancelled()
                await asyncio.to_thread(self._apply_change, change, staging)

        results = await asyncio.gather(*(apply(c) for c in changes), return_exceptions=True)

        errors = [r for r in results if isinstance(r, BaseException)]
        if not errors:
            return

        for error in errors:
            if isinstance(error, BuildCancelledError):
                raise error

        for error in errors[1:]:
            self.logger.error(f"Additional failure in {self.name}: {error}")
        raise errors[0]

    def _apply_change(self, change: FileChange, staging: Path) -> None:
        target = self.staged_path(change.path, staging)

        try:
            if change.kind == FileChangeKind.REMOVE:
                target.unlink(missing_ok=True)
                self._prune_empty_dirs(target.parent, staging)
                self.logger.debug(f"Removed {target.relative_to(staging)}")
                return

            target.parent.mkdir(parents=True, exist_ok=True)

            if is_relaxed_json(change.path):
                with open(change.path, 'r', encoding='utf-8') as f:
                    converted = convert_relaxed_json(f.read())
                with open(target, 'w', encoding='utf-8') as f:
                    f.write(converted)
            else:
                shutil.copy2(change.path, target)

            self.logger.debug(f"Staged {target.relative_to(staging)}")

        except ValueError as e:
            raise TransformError(change.path, f"Invalid relaxed JSON: {e}") from e
        except OSError as e:
            raise TransformError(change.path, str(e)) from e

    @staticmethod
    def _prune_empty_dirs(directory: Path, staging_root: Path) -> None:
        """Remove empty directories upwards, stopping below the staging root"""
        while directory != staging_root and staging_root in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                break
            directory = directory.parent

    async def _run_bundler(self, staging: Path) -> None:
        options = self.config.scripts
        out_dir = staging / options.root

        await asyncio.to_thread(shutil.rmtree, out_dir, ignore_errors=True)
        self.logger.info(f"Bundling scripts for {self.name}")
        await self.bundler.bundle(self.script_root, out_dir, options, self.config.source_root)

    def _write_generated_files(self, changes: List[FileChange], staging: Path) -> None:
        """Write the manifest override and the texture list"""
        if self.config.manifest is not None:
            with open(staging / "manifest.json", 'w', encoding='utf-8') as f:
                f.write(to_canonical_json(self.config.manifest))

        if self.config.kind != PackKind.RESOURCE or not self.config.generate_texture_list:
            return

        textures_root = os.path.join(self.source_root, "textures")
        touched = not self.has_built or any(
            to_relative_posix(c.path, textures_root) is not None for c in changes
        )
        if touched:
            self._write_texture_list(staging)

    def _write_texture_list(self, staging: Path) -> None:
        textures_dir = staging / "textures"
        list_file = staging / TEXTURE_LIST_FILE

        entries = []
        if textures_dir.is_dir():
            entries = sorted(
                p.relative_to(staging).with_suffix("").as_posix()
                for p in textures_dir.rglob("*")
                if p.is_file() and p.suffix.lower() in TEXTURE_EXTENSIONS
            )

        if not entries:
            list_file.unlink(missing_ok=True)
            return

        with open(list_file, 'w', encoding='utf-8') as f:
            json.dump(entries, f, indent=2)
        self.logger.debug(f"Texture list written with {len(entries)} entries")

    async def publish(self, staging: Path) -> None:
        """
        Replace every target directory with a copy of the staging directory.
        Failures are logged and never fail the build.
        """
        if len(self.cache) == 0 or not staging.is_dir():
            self.logger.info(f"{self.name} has no tracked files, skipping publish")
            return

        for target in self.config.target_roots:
            try:
                await asyncio.to_thread(self._replace_target, staging, Path(target))
                self.logger.info(f"Published {self.name} to {target}")
            except PublishError as e:
                self.logger.error(str(e))

    @staticmethod
    def _replace_target(staging: Path, target: Path) -> None:
        try:
            if target.exists():
                shutil.rmtree(target)
            shutil.copytree(staging, target)
        except OSError as e:
            raise PublishError(f"Failed to publish to {target}: {e}") from e
