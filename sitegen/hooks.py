"""Plugin hook pipeline threading a payload through ordered handlers."""

from __future__ import annotations

import asyncio
import copy
import inspect
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from .config import SiteConfig
from .logging import get_logger
from .models import BuildError, BuildReport, PageSource, ParsedDocument

logger = get_logger("hooks")


class HookEvent(str, Enum):
    """Lifecycle events plugins can subscribe to."""

    CONFIG_LOADED = "config:loaded"
    BUILD_START = "build:start"
    FILES_DISCOVERED = "files:discovered"
    MARKDOWN_BEFORE_PARSE = "markdown:before-parse"
    MARKDOWN_AFTER_PARSE = "markdown:after-parse"
    PAGE_BEFORE_RENDER = "page:before-render"
    PAGE_AFTER_RENDER = "page:after-render"
    ASSETS_BEFORE_COPY = "assets:before-copy"
    ASSETS_AFTER_COPY = "assets:after-copy"
    BUILD_END = "build:end"


@dataclass
class BuildStart:
    """Payload of `build:start`."""

    mode: str
    root: Path
    output_dir: Path


@dataclass
class AssetBatch:
    """Payload of the asset copy events."""

    sources: List[Path]
    destination: Path
    copied: List[Path] = field(default_factory=list)


# Each event carries exactly one payload type; handlers must return that type or None.
PAYLOAD_TYPES: Dict[str, type] = {
    HookEvent.CONFIG_LOADED.value: SiteConfig,
    HookEvent.BUILD_START.value: BuildStart,
    HookEvent.FILES_DISCOVERED.value: list,
    HookEvent.MARKDOWN_BEFORE_PARSE.value: str,
    HookEvent.MARKDOWN_AFTER_PARSE.value: ParsedDocument,
    HookEvent.PAGE_BEFORE_RENDER.value: dict,
    HookEvent.PAGE_AFTER_RENDER.value: str,
    HookEvent.ASSETS_BEFORE_COPY.value: AssetBatch,
    HookEvent.ASSETS_AFTER_COPY.value: AssetBatch,
    HookEvent.BUILD_END.value: BuildReport,
}

HookCallable = Callable[[Any, "HookContext"], Union[Any, Awaitable[Any]]]


@dataclass
class HookHandler:
    """One registered handler and the plugin it came from."""

    event: str
    func: HookCallable
    plugin: str = "<core>"
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def identity(self) -> str:
        name = getattr(self.func, "__qualname__", None) or repr(self.func)
        return f"{self.plugin}:{name}"


class HookContext:
    """Build-scoped state shared by every handler of one build cycle."""

    def __init__(
        self,
        config: SiteConfig,
        *,
        output_dir: Path,
        root_dir: Optional[Path] = None,
        errors: Optional[List[BuildError]] = None,
    ) -> None:
        self._config = copy.deepcopy(config)
        self.logger = get_logger("plugins")
        self.output_dir = output_dir
        self.root_dir = root_dir or config.root
        self.current_page: Optional[PageSource] = None
        self.options: Mapping[str, Any] = {}
        self.errors: List[BuildError] = errors if errors is not None else []
        self._data: Dict[str, Any] = {}
        self._lock = asyncio.Lock()

    @property
    def config(self) -> SiteConfig:
        """Snapshot taken when the build started; edits do not reach the build."""
        return self._config

    def adopt_config(self, config: SiteConfig) -> None:
        """Use the snapshot returned by `config:loaded` for the rest of the cycle."""
        self._config = config

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    def set_data(self, key: str, value: Any) -> None:
        self._data[key] = value

    def get_data(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def has_data(self, key: str) -> bool:
        return key in self._data

    def delete_data(self, key: str) -> None:
        self._data.pop(key, None)


class HookPipeline:
    """Runs handlers per event in registration order, isolating failures.

    A handler's non-None return value becomes the payload for the next handler.
    A handler that raises, or returns the wrong payload type, is logged and
    skipped; the pipeline continues with the payload from before it ran.
    """

    def __init__(self, handlers: Optional[Iterable[HookHandler]] = None) -> None:
        self._handlers: Dict[str, List[HookHandler]] = defaultdict(list)
        for handler in handlers or ():
            self._handlers[_event_name(handler.event)].append(handler)

    @classmethod
    def from_loader(cls, loader: Any) -> "HookPipeline":
        """Pipeline holding the handler lists of a loaded PluginLoader."""
        pipeline = cls()
        for event in loader.events():
            pipeline._handlers[_event_name(event)] = loader.handlers_for(event)
        return pipeline

    def register(
        self,
        event: Union[str, HookEvent],
        func: HookCallable,
        plugin: str = "<core>",
        options: Optional[Mapping[str, Any]] = None,
    ) -> HookHandler:
        name = _event_name(event)
        if name not in PAYLOAD_TYPES:
            logger.warning("Registering handler for unknown hook %s (plugin %s)", name, plugin)
        handler = HookHandler(event=name, func=func, plugin=plugin, options=dict(options or {}))
        self._handlers[name].append(handler)
        logger.debug("Registered hook %s from plugin %s", name, plugin)
        return handler

    async def execute(
        self,
        event: Union[str, HookEvent],
        payload: Any,
        context: HookContext,
        *,
        page: Optional[PageSource] = None,
    ) -> Any:
        """Run every handler for `event` and return the final payload.

        Events sharing a context are serialized; handlers must not re-enter
        the pipeline with the same context.
        """
        name = _event_name(event)
        if name not in PAYLOAD_TYPES:
            logger.warning("Unknown hook name %s", name)
        handlers = self._handlers.get(name)
        if not handlers:
            return payload

        expected = PAYLOAD_TYPES.get(name)
        async with context.lock:
            previous_page = context.current_page
            if page is not None:
                context.current_page = page
            try:
                current = payload
                for handler in list(handlers):
                    context.options = handler.options
                    try:
                        result = handler.func(_detach(current), context)
                        if inspect.isawaitable(result):
                            result = await result
                    except Exception as exc:
                        self._record_failure(context, name, handler, exc)
                        continue
                    if result is None:
                        continue
                    if expected is not None and not isinstance(result, expected):
                        self._record_failure(
                            context,
                            name,
                            handler,
                            TypeError(
                                f"expected {expected.__name__} payload, got {type(result).__name__}"
                            ),
                        )
                        continue
                    current = result
                return current
            finally:
                context.current_page = previous_page
                context.options = {}

    @staticmethod
    def _record_failure(
        context: HookContext, event: str, handler: HookHandler, exc: BaseException
    ) -> None:
        page = context.current_page.relative_path if context.current_page else None
        logger.error(
            "Error in hook %s from plugin %s (%s)%s: %s",
            event,
            handler.plugin,
            handler.identity,
            f" while processing {page}" if page else "",
            exc,
            exc_info=exc,
        )
        context.errors.append(
            BuildError(
                unit=f"hook {event} ({handler.plugin})",
                message=str(exc),
                detail=page,
            )
        )


def _event_name(event: Union[str, HookEvent]) -> str:
    return event.value if isinstance(event, HookEvent) else str(event)


def _detach(payload: Any) -> Any:
    """Give each handler its own copy so a failing one cannot corrupt the payload."""
    if isinstance(payload, str):
        return payload
    return copy.deepcopy(payload)


__all__ = [
    "AssetBatch",
    "BuildStart",
    "HookContext",
    "HookEvent",
    "HookHandler",
    "HookPipeline",
    "PAYLOAD_TYPES",
]
