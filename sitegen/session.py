"""Explicit build-scoped state passed to every build step."""

from __future__ import annotations

import time
from pathlib import Path
from typing import List, Optional

from .config import SiteConfig
from .content import ContentRegistry
from .graph import DependencyGraph
from .hooks import HookContext
from .models import BuildError, BuildReport, PageResult


class BuildSession:
    """Dependency graph, page registry and per-cycle results for one site.

    The graph and registry live as long as the session so incremental builds
    can consult them. `begin()` marks the boundary of a build cycle: errors,
    results and the hook context are always recreated, and a full build also
    starts from an empty graph and registry.
    """

    def __init__(self, config: SiteConfig) -> None:
        self.config = config
        self.graph = DependencyGraph()
        self.registry = ContentRegistry(
            config.content_root,
            default_locale=config.language.locale,
            available_locales=config.language.available,
            multilingual=config.language.multilingual,
        )
        self.errors: List[BuildError] = []
        self.results: List[PageResult] = []
        self.mode: Optional[str] = None
        self.context = self._new_context()
        self._started = 0.0

    def begin(self, mode: str) -> HookContext:
        self.mode = mode
        self.errors = []
        self.results = []
        if mode == "full":
            self.graph = DependencyGraph()
        self.context = self._new_context()
        self._started = time.perf_counter()
        return self.context

    def replace_registry(self, registry: ContentRegistry) -> None:
        self.registry = registry

    def record_error(self, unit: str, message: str, detail: Optional[str] = None) -> BuildError:
        error = BuildError(unit=unit, message=message, detail=detail)
        self.errors.append(error)
        return error

    def report(self) -> BuildReport:
        return BuildReport(
            mode=self.mode or "idle",
            pages=list(self.results),
            errors=list(self.errors),
            duration=time.perf_counter() - self._started if self._started else 0.0,
        )

    @property
    def output_dir(self) -> Path:
        return self.config.output_root

    def _new_context(self) -> HookContext:
        return HookContext(
            self.config,
            output_dir=self.config.output_root,
            root_dir=self.config.root,
            errors=self.errors,
        )


__all__ = ["BuildSession"]
