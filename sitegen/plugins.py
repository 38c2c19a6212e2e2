"""Plugin discovery and loading."""

from __future__ import annotations

import importlib
import importlib.util
import sys
from dataclasses import dataclass, field
from importlib import metadata
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .config import PluginSpec
from .errors import PluginError
from .hooks import PAYLOAD_TYPES, HookCallable, HookHandler
from .logging import get_logger

_ENTRY_POINT_GROUP = "sitegen.plugins"

logger = get_logger("plugins")


@dataclass
class Plugin:
    """A loaded plugin and the hooks it subscribes to."""

    name: str
    hooks: Dict[str, HookCallable]
    version: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)
    source: str = "<inline>"

    def handlers(self) -> List[HookHandler]:
        return [
            HookHandler(event=event, func=func, plugin=self.name, options=self.options)
            for event, func in self.hooks.items()
        ]


class PluginLoader:
    """Resolves `plugins:` entries into Plugin objects, in configured order.

    Each enabled entry is looked up by explicit `module` path, then in the
    `sitegen.plugins` entry-point group, then as a file in the plugins
    directory. File plugins are executed afresh on every load so edits apply
    on the next full build.
    """

    def __init__(self, plugins_dir: Optional[Path] = None) -> None:
        self.plugins_dir = plugins_dir
        self._plugins: List[Plugin] = []

    @property
    def plugins(self) -> List[Plugin]:
        return list(self._plugins)

    def load(self, specs: Sequence[PluginSpec]) -> List[Plugin]:
        plugins: List[Plugin] = []
        seen: set[str] = set()
        for spec in specs:
            if not spec.enabled:
                logger.debug("Plugin %s disabled; skipping", spec.name)
                continue
            if spec.name in seen:
                logger.warning("Plugin %s listed twice; keeping the first entry", spec.name)
                continue
            seen.add(spec.name)
            target, source = self._resolve(spec)
            plugin = _coerce_plugin(spec, target, source)
            plugins.append(plugin)
            logger.info(
                "Loaded plugin %s%s (%d hook(s))",
                plugin.name,
                f" {plugin.version}" if plugin.version else "",
                len(plugin.hooks),
            )
        self._plugins = plugins
        return list(plugins)

    def handlers_for(self, event: str) -> List[HookHandler]:
        """Ordered handlers for `event` across loaded plugins."""
        handlers: List[HookHandler] = []
        for plugin in self._plugins:
            handlers.extend(handler for handler in plugin.handlers() if handler.event == event)
        return handlers

    def events(self) -> List[str]:
        """Event names with at least one handler, in first-registration order."""
        return list(dict.fromkeys(event for plugin in self._plugins for event in plugin.hooks))

    def _resolve(self, spec: PluginSpec) -> tuple[object, str]:
        if spec.module:
            return _import_target(spec.module), spec.module

        for entry in _iter_entry_points():
            if entry.name != spec.name:
                continue
            try:
                return entry.load(), f"entry point {entry.value}"
            except Exception as exc:
                raise PluginError(
                    f"Failed to load plugin entry point '{spec.name}': {exc}",
                    {"plugin": spec.name},
                ) from exc

        path = self._plugin_file(spec.name)
        if path is not None:
            return _load_file(spec.name, path), str(path)

        raise PluginError(f"Plugin '{spec.name}' could not be found", {"plugin": spec.name})

    def _plugin_file(self, name: str) -> Optional[Path]:
        if self.plugins_dir is None:
            return None
        candidates = (
            self.plugins_dir / f"{name}.py",
            self.plugins_dir / name / "__init__.py",
        )
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        return None


def _import_target(dotted: str) -> object:
    module_name, _, attr = dotted.partition(":")
    try:
        module = importlib.import_module(module_name)
    except Exception as exc:
        raise PluginError(f"Failed to import plugin module '{module_name}': {exc}") from exc
    if not attr:
        return module
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise PluginError(f"Plugin module '{module_name}' has no attribute '{attr}'") from exc


def _load_file(name: str, path: Path) -> ModuleType:
    module_name = f"sitegen_plugin_{name.replace('-', '_')}"
    search = [str(path.parent)] if path.name == "__init__.py" else None
    spec = importlib.util.spec_from_file_location(
        module_name, path, submodule_search_locations=search
    )
    if spec is None or spec.loader is None:
        raise PluginError(f"Cannot load plugin file {path}", {"plugin": name})
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        raise PluginError(f"Plugin '{name}' failed to import: {exc}", {"plugin": name}) from exc
    return module


def _coerce_plugin(spec: PluginSpec, target: object, source: str) -> Plugin:
    if isinstance(target, Plugin):
        target.options = dict(spec.config)
        return target
    if isinstance(target, type):
        target = target()
    elif callable(target) and not _has_hooks(target):
        target = target()

    hooks = getattr(target, "HOOKS", None)
    if hooks is None:
        hooks = getattr(target, "hooks", None)
    if not isinstance(hooks, Mapping):
        raise PluginError(
            f"Plugin '{spec.name}' must expose a HOOKS mapping", {"plugin": spec.name}
        )

    normalised: Dict[str, HookCallable] = {}
    for event, func in hooks.items():
        event_name = getattr(event, "value", event)
        if not callable(func):
            raise PluginError(
                f"Plugin '{spec.name}' hook '{event_name}' is not callable",
                {"plugin": spec.name},
            )
        if event_name not in PAYLOAD_TYPES:
            logger.warning("Plugin %s subscribes to unknown hook %s", spec.name, event_name)
        normalised[str(event_name)] = func

    setup = getattr(target, "setup", None)
    if callable(setup):
        try:
            setup(dict(spec.config))
        except Exception as exc:
            raise PluginError(f"Plugin '{spec.name}' setup failed: {exc}", {"plugin": spec.name}) from exc

    name = getattr(target, "NAME", None) or spec.name
    version = getattr(target, "VERSION", None)
    return Plugin(
        name=str(name),
        hooks=normalised,
        version=str(version) if version else None,
        options=dict(spec.config),
        source=source,
    )


def _has_hooks(target: object) -> bool:
    return hasattr(target, "HOOKS") or hasattr(target, "hooks")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = ["Plugin", "PluginLoader"]
