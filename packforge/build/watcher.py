"""
Filesystem watcher bridging watchdog events into the asyncio event loop.
"""
import asyncio
import logging
import os
from typing import Callable, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..core.enums import WatchEventKind

WatchCallback = Callable[[WatchEventKind, str, bool], None]


class _ForwardingHandler(FileSystemEventHandler):
    """Watchdog handler that forwards normalized events"""

    def __init__(self, dispatch: Callable[[WatchEventKind, str, bool], None]):
        super().__init__()
        self._dispatch = dispatch

    def on_created(self, event: FileSystemEvent):
        self._dispatch(WatchEventKind.ADD, os.fsdecode(event.src_path), event.is_directory)

    def on_modified(self, event: FileSystemEvent):
        # Directory mtime updates are covered by the events of their children
        if event.is_directory:
            return
        self._dispatch(WatchEventKind.CHANGE, os.fsdecode(event.src_path), False)

    def on_deleted(self, event: FileSystemEvent):
        self._dispatch(WatchEventKind.UNLINK, os.fsdecode(event.src_path), event.is_directory)

    def on_moved(self, event: FileSystemEvent):
        self._dispatch(WatchEventKind.UNLINK, os.fsdecode(event.src_path), event.is_directory)
        self._dispatch(WatchEventKind.ADD, os.fsdecode(event.dest_path), event.is_directory)


class FileWatcher:
    """
    Watches a set of root directories recursively and delivers
    add/change/unlink events on the event loop thread.
    """

    def __init__(
        self,
        roots: Iterable[str],
        on_event: WatchCallback,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """
        Args:
            roots: Directories to watch
            on_event: Called on the loop thread with (kind, absolute path, is_directory)
            loop: Event loop to deliver events on (running loop when None)
        """
        self.roots: List[str] = sorted({os.path.abspath(r) for r in roots})
        self.on_event = on_event
        self._loop = loop
        self._observer: Optional[Observer] = None
        self.logger = logging.getLogger(__name__)

    def start(self) -> None:
        if self._observer is not None:
            return

        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        handler = _ForwardingHandler(self._push_event)
        observer = Observer()

        for root in self.roots:
            try:
                observer.schedule(handler, root, recursive=True)
                self.logger.info(f"Watching {root}")
            except OSError as e:
                self.logger.error(f"Cannot watch {root}: {e}")

        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer is None:
            return

        observer = self._observer
        self._observer = None
        try:
            observer.stop()
            observer.join(timeout=5)
        except RuntimeError as e:
            self.logger.warning(f"Error while stopping watcher: {e}")

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def _push_event(self, kind: WatchEventKind, path: str, is_directory: bool) -> None:
        """Runs on the watchdog thread"""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._deliver, kind, path, is_directory)
        except RuntimeError:
            # Loop closed between the check and the call
            pass

    def _deliver(self, kind: WatchEventKind, path: str, is_directory: bool) -> None:
        if self._observer is None:
            return
        try:
            self.on_event(kind, os.path.abspath(path), is_directory)
        except Exception as e:
            self.logger.error(f"Error handling watch event {kind.value} {path}: {e}")
