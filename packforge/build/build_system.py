"""
Build orchestration: concurrent pack builds, archives, cancel-and-restart
rebuilds and the watch loop.
"""
import asyncio
import logging
import os
import shutil
import tempfile
import time
import uuid
from pathlib import Path
from typing import Callable, List, Optional, Set

from ..core.enums import BuildState, WatchEventKind
from ..core.exceptions import ArchiveError, BuildCancelledError, BuildSystemClosedError
from ..core.models import BuildConfig
from .archive import ArchiveSource, create_archive
from .context import BuildExecutionContext, BuildSystemContext, CancellationToken
from .pack_builder import PackBuilder
from .scripts import ScriptBundler
from .watcher import FileWatcher


class _Attempt:
    """One build attempt: its cancellation token and one-shot completion signal"""

    def __init__(self):
        self.token = CancellationToken()
        self.done = asyncio.Event()


class BuildSystem:
    """
    Owns the temporary staging root and one PackBuilder per configured pack.

    At most one attempt mutates staging or target directories at a time: a new
    attempt cancels its predecessor and waits for it to finish before doing
    any work.
    """

    def __init__(
        self,
        ctx: BuildSystemContext,
        bundler: Optional[ScriptBundler] = None,
        watcher_factory: Optional[Callable[..., FileWatcher]] = None,
    ):
        """
        Initialize build system.

        Args:
            ctx: System context created by `create_context`
            bundler: Script bundler shared by the pack builders
            watcher_factory: Called with (roots, on_event) to create the watcher
        """
        self.ctx = ctx
        self.config = ctx.config
        self.builders: List[PackBuilder] = [PackBuilder(pack, bundler) for pack in ctx.config.packs]
        self.watcher_factory = watcher_factory or FileWatcher

        self._state = BuildState.IDLE
        self._current: Optional[_Attempt] = None
        self._changed_paths: Set[str] = set()
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._watcher: Optional[FileWatcher] = None
        self._closing = False
        self._closed = asyncio.Event()

        self.logger = logging.getLogger(__name__)

    @staticmethod
    def create_context(config: BuildConfig) -> BuildSystemContext:
        """Create the system context and its exclusively owned temp directory"""
        run_id = str(uuid.uuid4())
        root = Path(config.temp_dir_root) if config.temp_dir_root else Path(tempfile.gettempdir())
        temp_dir = root / f"packforge-{run_id}"
        temp_dir.mkdir(parents=True, exist_ok=False)
        return BuildSystemContext(config=config, id=run_id, temp_dir=temp_dir)

    @classmethod
    def from_config(cls, config: BuildConfig, **kwargs) -> "BuildSystem":
        return cls(cls.create_context(config), **kwargs)

    @property
    def state(self) -> BuildState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    @property
    def changed_paths(self) -> Set[str]:
        """Copy of the accumulated scope-limit set"""
        return set(self._changed_paths)

    async def __aenter__(self) -> "BuildSystem":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def run_and_close(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Run one full build and then close, or keep watching when watch mode
        is enabled until `close()` is called or `stop_event` is set.

        Raises:
            BuildSystemClosedError: If the system is already closed
            PackforgeError: If the initial build fails (the system is closed first)
        """
        self._ensure_open()
        self._state = BuildState.BUILDING

        try:
            completed = await self._schedule()
        except BaseException:
            await self.close()
            raise

        if not completed:
            await self.close()
            return

        if not self.config.watch:
            self._state = BuildState.IDLE
            await self.close()
            return

        self._state = BuildState.WATCHING
        waiters = [asyncio.ensure_future(self._closed.wait())]
        if stop_event is not None:
            waiters.append(asyncio.ensure_future(stop_event.wait()))

        try:
            self._start_watching()
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
            await self.close()

    def request_rebuild(self) -> "asyncio.Task[bool]":
        """
        Cancel the in-flight attempt (if any) and schedule a replacement
        scoped to the accumulated changed paths (a full diff when none
        have accumulated).

        Returns:
            Task resolving to True when the attempt completed, False when it
            was cancelled; raises if the attempt failed
        """
        self._ensure_open()
        return self._schedule()

    def _schedule(self) -> "asyncio.Task[bool]":
        previous = self._current
        if previous is not None:
            previous.token.cancel()

        attempt = _Attempt()
        self._current = attempt
        return asyncio.ensure_future(self._run_attempt(attempt, previous))

    async def _run_attempt(self, attempt: _Attempt, previous: Optional[_Attempt]) -> bool:
        try:
            if previous is not None:
                await previous.done.wait()

            if attempt.token.cancelled:
                return False

            limit = frozenset(self._changed_paths) or None
            if self._state == BuildState.WATCHING:
                self._state = BuildState.REBUILDING

            ctx = BuildExecutionContext(system=self.ctx, token=attempt.token, limit=limit)
            start = time.monotonic()
            try:
                await self._execute(ctx)
            except BuildCancelledError:
                self.logger.info("Build attempt cancelled")
                return False

            if limit is not None:
                self._changed_paths -= limit
            self.logger.info(f"Build finished in {time.monotonic() - start:.2f}s")
            return True

        finally:
            if self._state == BuildState.REBUILDING:
                self._state = BuildState.WATCHING
            if self._current is attempt:
                self._current = None
            attempt.done.set()

    async def _execute(self, ctx: BuildExecutionContext) -> None:
        results = await asyncio.gather(
            *(builder.build(ctx) for builder in self.builders),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors:
            if not isinstance(error, Exception):
                raise error
        if any(isinstance(e, BuildCancelledError) for e in errors):
            raise BuildCancelledError("Build attempt was cancelled")

        if errors:
            for builder, result in zip(self.builders, results):
                if isinstance(result, BaseException):
                    self.logger.error(f"Build of {builder.name} failed: {result}")
            raise errors[0]

        ctx.token.raise_if_cancelled()
        await self._create_archives(ctx)

    def _archive_sources(self) -> List[ArchiveSource]:
        single = len(self.builders) == 1
        sources = []
        for builder in self.builders:
            staging = builder.staging_dir(self.ctx)
            if not staging.is_dir():
                continue
            name = "" if single else os.path.basename(builder.source_root)
            sources.append(ArchiveSource(path=staging, name=name))
        return sources

    async def _create_archives(self, ctx: BuildExecutionContext) -> None:
        if not self.config.archives:
            return

        sources = self._archive_sources()
        for options in self.config.archives:
            try:
                await create_archive(sources, options, ctx.token)
            except ArchiveError as e:
                self.logger.error(str(e))

    def _start_watching(self) -> None:
        roots = [builder.source_root for builder in self.builders]
        self._watcher = self.watcher_factory(roots, self._on_fs_event)
        self._watcher.start()
        self.logger.info("Watching for changes...")

    def _on_fs_event(self, kind: WatchEventKind, path: str, is_directory: bool = False) -> None:
        """Accumulate a filesystem event and (re)start the debounce timer"""
        if self._closing:
            return

        path = os.path.abspath(path)
        if not any(builder.owns(path, is_directory) for builder in self.builders):
            return

        self.logger.debug(f"{kind.value}: {path}")
        self._changed_paths.add(path)

        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(self.config.debounce_interval, self._on_debounce_elapsed)

    def _on_debounce_elapsed(self) -> None:
        self._debounce_handle = None
        if self._closing:
            return
        task = self.request_rebuild()
        task.add_done_callback(self._report_rebuild)

    def _report_rebuild(self, task: "asyncio.Task[bool]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f"Rebuild failed, waiting for further changes: {error}")

    def _ensure_open(self) -> None:
        if self._closing:
            raise BuildSystemClosedError("Build system is closed")

    async def close(self) -> None:
        """Stop watching, cancel and await the in-flight attempt, remove the temp root"""
        if self._closing:
            await self._closed.wait()
            return
        self._closing = True

        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

        if self._watcher is not None:
            watcher = self._watcher
            self._watcher = None
            await asyncio.to_thread(watcher.stop)

        attempt = self._current
        if attempt is not None:
            attempt.token.cancel()
            await attempt.done.wait()

        await asyncio.to_thread(shutil.rmtree, self.ctx.temp_dir, ignore_errors=True)

        self._state = BuildState.CLOSED
        self._closed.set()
        self.logger.info("Build system closed")
