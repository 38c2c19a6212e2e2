"""Watch mode: file events, debouncing and serialized incremental rebuilds."""

from __future__ import annotations

import asyncio
import os
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import BuildFailedError, SiteGenError
from .logging import get_logger

logger = get_logger("watch")

_IGNORED_EVENT_TYPES = {"opened", "closed", "closed_no_write"}


class DebounceState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    FLUSHING = "flushing"


class Debouncer:
    """Accumulates changed paths until no event has arrived for `delay` seconds.

    IDLE -> PENDING on the first event; every further event pushes the
    deadline back. `flush()` hands out the batch and moves to FLUSHING, where
    new events are queued for the next batch instead of being scheduled.
    `finish()` returns to PENDING when such events exist, otherwise IDLE.
    """

    def __init__(self, delay: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.delay = delay
        self.state = DebounceState.IDLE
        self._clock = clock
        self._pending: Dict[Path, None] = {}
        self._deadline: Optional[float] = None

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    @property
    def pending(self) -> List[Path]:
        return list(self._pending)

    def push(self, paths: Iterable[Path]) -> None:
        for path in paths:
            self._pending[Path(path)] = None
        if not self._pending:
            return
        self._deadline = self._clock() + self.delay
        if self.state is DebounceState.IDLE:
            self.state = DebounceState.PENDING

    def remaining(self) -> float:
        if self._deadline is None:
            return self.delay
        return max(0.0, self._deadline - self._clock())

    def is_due(self) -> bool:
        return (
            self.state is DebounceState.PENDING
            and bool(self._pending)
            and self._deadline is not None
            and self._clock() >= self._deadline
        )

    def flush(self) -> List[Path]:
        batch = list(self._pending)
        self._pending.clear()
        self._deadline = None
        self.state = DebounceState.FLUSHING
        return batch

    def finish(self) -> bool:
        """End the current flush; True when events arrived while it ran."""
        if self._pending:
            self.state = DebounceState.PENDING
            if self._deadline is None:
                self._deadline = self._clock()
            return True
        self.state = DebounceState.IDLE
        return False


class WatchLoop:
    """Feeds debounced batches to `orchestrator.rebuild`, one build at a time.

    Must be driven from the event loop thread; watchdog callbacks reach it
    through `call_soon_threadsafe`.
    """

    def __init__(
        self,
        orchestrator: Any,
        delay: float,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        on_rebuilt: Optional[Callable[[], None]] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self._on_rebuilt = on_rebuilt
        self._loop = loop or asyncio.get_running_loop()
        self.debouncer = Debouncer(delay, clock=self._loop.time)
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self.builds = 0

    def notify(self, paths: Sequence[Path]) -> None:
        self.debouncer.push(paths)
        if self.debouncer.state is DebounceState.PENDING:
            self._idle.clear()
            self._schedule(self.debouncer.remaining())

    async def wait_idle(self) -> None:
        """Wait until no batch is pending or building."""
        await self._idle.wait()

    def close(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._idle.set()

    def _schedule(self, delay: float) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if not self.debouncer.is_due():
            if self.debouncer.state is DebounceState.PENDING:
                self._schedule(self.debouncer.remaining())
            return
        batch = self.debouncer.flush()
        self._task = self._loop.create_task(self._rebuild(batch))

    async def _rebuild(self, batch: List[Path]) -> None:
        logger.info("Rebuilding after %d change(s)", len(batch))
        try:
            await self.orchestrator.rebuild(batch)
        except BuildFailedError as exc:
            logger.error("%s", exc)
        except SiteGenError as exc:
            logger.error("Rebuild failed: %s", exc)
        except Exception:
            logger.exception("Unexpected error during rebuild")
        finally:
            self.builds += 1
            if self._on_rebuilt is not None:
                try:
                    self._on_rebuilt()
                except Exception:
                    logger.exception("Post-rebuild callback failed")
            if self.debouncer.finish():
                self._schedule(self.debouncer.remaining())
            else:
                self._idle.set()


class _ChangeHandler(FileSystemEventHandler):
    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: Callable[[List[Path]], None],
        ignored_roots: Sequence[Path],
    ) -> None:
        super().__init__()
        self._loop = loop
        self._callback = callback
        self._ignored_roots = [root.resolve() for root in ignored_roots]

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in _IGNORED_EVENT_TYPES:
            return
        raw_paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            raw_paths.append(dest)
        paths = [Path(os.fsdecode(raw)) for raw in raw_paths]
        paths = [path for path in paths if not self._ignored(path)]
        if paths:
            self._loop.call_soon_threadsafe(self._callback, paths)

    def _ignored(self, path: Path) -> bool:
        if path.name.startswith("."):
            return True
        resolved = path.resolve()
        return any(root == resolved or root in resolved.parents for root in self._ignored_roots)


class WatchdogAdapter:
    """Bridges watchdog's observer thread onto the asyncio loop."""

    def __init__(
        self,
        roots: Sequence[Path],
        callback: Callable[[List[Path]], None],
        *,
        loop: asyncio.AbstractEventLoop,
        ignored_roots: Sequence[Path] = (),
    ) -> None:
        self.roots = [Path(root) for root in roots]
        self._loop = loop
        self._callback = callback
        self._handler = _ChangeHandler(loop, callback, ignored_roots)
        self._observer: Optional[Any] = None

    def start(self) -> None:
        observer = Observer()
        for root in self.roots:
            if root.is_dir():
                observer.schedule(self._handler, str(root), recursive=True)
                logger.debug("Watching %s", root)
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None

    def restart(self, roots: Sequence[Path], ignored_roots: Sequence[Path] = ()) -> None:
        """Stop observing, then watch `roots` with a fresh observer."""
        self.stop()
        self.roots = [Path(root) for root in roots]
        self._handler = _ChangeHandler(self._loop, self._callback, ignored_roots)
        self.start()


def watch_roots(config: Any) -> List[Path]:
    """Directories to observe: the site root plus any configured root outside it."""
    conventions = config.path_conventions()
    candidates = [config.root, conventions.config_path.parent]
    candidates.extend(root for root, _ in conventions.roots())
    roots: List[Path] = []
    unique = {Path(path).resolve() for path in candidates}
    for candidate in sorted(unique, key=lambda path: (len(path.parts), str(path))):
        if any(root == candidate or root in candidate.parents for root in roots):
            continue
        roots.append(candidate)
    return roots


async def watch(orchestrator: Any, *, stop: Optional[asyncio.Event] = None) -> None:
    """Build once, then rebuild on every debounced batch until `stop` is set."""
    config = orchestrator.config
    try:
        await orchestrator.build()
    except SiteGenError as exc:
        logger.error("Initial build failed: %s", exc)

    loop = asyncio.get_running_loop()
    watched = config

    def follow_config() -> None:
        nonlocal watched
        if orchestrator.config is watched:
            return
        watched = orchestrator.config
        logger.info("Configuration changed; watching %s", watched.root)
        adapter.restart(watch_roots(watched), ignored_roots=[watched.output_root])

    watch_loop = WatchLoop(
        orchestrator, config.watch.debounce_ms / 1000.0, loop=loop, on_rebuilt=follow_config
    )
    adapter = WatchdogAdapter(
        watch_roots(config), watch_loop.notify, loop=loop, ignored_roots=[config.output_root]
    )
    adapter.start()
    logger.info("Watching %s for changes (Ctrl+C to stop)", config.root)
    stop = stop or asyncio.Event()
    try:
        await stop.wait()
    finally:
        adapter.stop()
        watch_loop.close()
        logger.info("Watch mode stopped")


__all__ = ["DebounceState", "Debouncer", "WatchLoop", "WatchdogAdapter", "watch", "watch_roots"]
