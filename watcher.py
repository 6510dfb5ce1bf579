""" Source folder watcher: turns watchdog notifications into FileEvents once files have stopped changing. """

import asyncio
import os
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from backend.texture_classes import Configuration, EventKind, FileEvent
from utils import is_hidden_path, log, split_material_folder


StatSignature = Tuple[int, int] # (size, mtime_ns) of a file, compared between polls.
EventCallback = Callable[[EventKind, str], None]


def _stat_signature(path: str) -> StatSignature:
    stat_result = os.stat(path)
    return stat_result.st_size, stat_result.st_mtime_ns




#                                      === watchdog handler ===


class SourceEventHandler(FileSystemEventHandler):
    """ Receives watchdog notifications on the observer thread and forwards file-level changes. """

    def __init__(self, source_root: str, notify: EventCallback) -> None:
        super().__init__()
        self.source_root = os.path.abspath(source_root)
        self.notify = notify

    def _forward(self, kind: EventKind, raw_path) -> None:
        path: str = os.path.abspath(os.fsdecode(raw_path))
        try:
            relative_path = os.path.relpath(path, self.source_root)
        except ValueError:
            return
        if is_hidden_path(relative_path):
            return
        # Dotfiles, including temporary files written by editors.
        self.notify(kind, path)

    def _forward_folder(self, kind: EventKind, raw_path) -> None:
    # Only material folders themselves are forwarded; the pipeline rebuilds them as a whole.
    # A folder deleted or moved away arrives as a single event, without one per contained file.
        path: str = os.path.abspath(os.fsdecode(raw_path))
        if split_material_folder(self.source_root, path) is not None:
            self._forward(kind, path)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._forward_folder(EventKind.ADDED, event.src_path)
        else:
            self._forward(EventKind.ADDED, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(EventKind.CHANGED, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._forward_folder(EventKind.REMOVED, event.src_path)
        else:
            self._forward(EventKind.REMOVED, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self._forward_folder(EventKind.REMOVED, event.src_path)
            self._forward_folder(EventKind.ADDED, event.dest_path)
        else:
            self._forward(EventKind.REMOVED, event.src_path)
            self._forward(EventKind.ADDED, event.dest_path)
        # A rename is reported as unlink + add; a destination outside the source root or hidden is dropped.




#                                          === Watcher ===


class SourceWatcher:
    """ Watches config.source_path recursively and queues FileEvents for the pipeline.

    Added/changed files are only reported after their size and mtime stayed the same for
    config.stability_threshold seconds, so half-written files from other tools are never processed.
    Removals are reported right away.
    """

    def __init__(self, config: Configuration) -> None:
        self.config = config
        self.events: "asyncio.Queue[FileEvent]" = asyncio.Queue()
        self._pending: Dict[str, asyncio.Task] = {} # Paths waiting for their stability window, by path.
        self._running: Set[asyncio.Task] = set() # Event handlers in flight; keeps references until they finish.
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._observer: Optional[Observer] = None


    def start(self) -> None:
    # Must be called from the running event loop.

        self._loop = asyncio.get_running_loop()
        handler = SourceEventHandler(self.config.source_path, self._notify_threadsafe)
        self._observer = Observer()
        self._observer.schedule(handler, self.config.source_path, recursive=True)
        self._observer.start()


    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()


    def _notify_threadsafe(self, kind: EventKind, path: str) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.notify, kind, path)


    def notify(self, kind: EventKind, path: str) -> None:
    # Entry point on the event loop thread for raw notifications.

        if kind is EventKind.REMOVED:
            pending = self._pending.pop(path, None)
            if pending is not None:
                pending.cancel()
            self.events.put_nowait(FileEvent(kind, path))
            return

        if path in self._pending:
            return
        # Already waiting for this file to settle; the poll picks up the new change.

        task = asyncio.get_running_loop().create_task(self._await_stable(kind, path))
        self._pending[path] = task


    async def _await_stable(self, kind: EventKind, path: str) -> None:
    # Polls the file until it stays unchanged for the stability threshold, then queues the event.
    # A file that disappears while waiting is dropped; its removal is reported separately.

        loop = asyncio.get_running_loop()
        try:
            try:
                last_signature = await asyncio.to_thread(_stat_signature, path)
            except OSError:
                return
            stable_since = loop.time()

            while True:
                await asyncio.sleep(self.config.poll_interval)
                try:
                    signature = await asyncio.to_thread(_stat_signature, path)
                except OSError:
                    return
                if signature != last_signature:
                    last_signature = signature
                    stable_since = loop.time()
                    continue
                if loop.time() - stable_since >= self.config.stability_threshold:
                    break

            self.events.put_nowait(FileEvent(kind, path))
        finally:
            if self._pending.get(path) is asyncio.current_task():
                del self._pending[path]


    async def serve(self, handle_event: Callable[[FileEvent], Awaitable[None]]) -> None:
    # Consumes queued events forever; each event runs as its own task, ordering per folder is kept by the pipeline locks.

        while True:
            event = await self.events.get()
            if self.config.show_details:
                log(f"Event: {event.kind.value} {event.path}", "info")
            task = asyncio.get_running_loop().create_task(handle_event(event))
            self._running.add(task)
            task.add_done_callback(self._running.discard)
