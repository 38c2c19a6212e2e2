"""Rebuild decisions for a batch of classified changes."""

from __future__ import annotations

from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Optional, Sequence, Set

from .content import ContentRegistry
from .graph import DependencyGraph
from .logging import get_logger
from .models import AssetCopyOnly, ChangeSet, FullRebuild, PageSource, RebuildPlan, SelectiveRebuild

logger = get_logger("planner")

GlobalTemplatePredicate = Callable[[Path], bool]

DEFAULT_GLOBAL_MARKERS: Sequence[str] = ("layout", "partial", "base")


def name_heuristic(path: Path) -> bool:
    """Treat layouts, partials and base templates as used by every page."""
    lowered = "/".join(path.parts[-2:]).lower()
    return any(marker in lowered for marker in DEFAULT_GLOBAL_MARKERS)


def global_template_matcher(
    patterns: Sequence[str], root: Optional[Path] = None
) -> GlobalTemplatePredicate:
    """Build the global-template predicate from configured glob patterns.

    Patterns match the template path relative to `root` or its file name.
    Without patterns the name heuristic applies.
    """
    if not patterns:
        return name_heuristic

    def _matches(path: Path) -> bool:
        candidates = [path.name, path.as_posix()]
        if root is not None:
            try:
                candidates.append(path.relative_to(root).as_posix())
            except ValueError:
                pass
        return any(fnmatch(candidate, pattern) for pattern in patterns for candidate in candidates)

    return _matches


class RebuildPlanner:
    """Turns a ChangeSet into a full, selective, or asset-only plan.

    Ambiguous situations escalate to a full rebuild rather than risk stale
    output: config > plugin > untracked global template > known dependents >
    direct content pages.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        registry: ContentRegistry,
        is_global_template: GlobalTemplatePredicate = name_heuristic,
    ) -> None:
        self.graph = graph
        self.registry = registry
        self.is_global_template = is_global_template

    def plan(self, changes: ChangeSet) -> RebuildPlan:
        if changes.config:
            return FullRebuild(reason=f"config changed ({_names(changes.config)})")
        if changes.plugin:
            return FullRebuild(reason=f"plugin changed ({_names(changes.plugin)})")

        pages: Set[PageSource] = set()

        for template in changes.template:
            dependents = self.graph.get_dependents(template)
            if not dependents:
                if self.is_global_template(template):
                    return FullRebuild(
                        reason=f"template {template.name} has no tracked dependents"
                    )
                logger.warning("No dependents recorded for template %s", template)
                continue
            logger.info("Template %s has %d dependent(s)", template.name, len(dependents))
            for node in dependents:
                page = self.registry.find_by_key(node)
                if page is None:
                    return FullRebuild(reason=f"dependent {node} is no longer registered")
                pages.add(page)

        for path in changes.content:
            page = self.registry.find(path)
            if page is None:
                return FullRebuild(reason=f"content file {path.name} was added or removed")
            pages.add(page)

        copy_assets = bool(changes.style or changes.script or changes.asset)
        if not pages:
            return AssetCopyOnly()
        return SelectiveRebuild(
            pages=frozenset(pages),
            copy_assets=copy_assets,
            reason=f"{len(pages)} page(s) affected",
        )


def plan_rebuild(
    changes: ChangeSet,
    graph: DependencyGraph,
    registry: ContentRegistry,
    is_global_template: GlobalTemplatePredicate = name_heuristic,
) -> RebuildPlan:
    return RebuildPlanner(graph, registry, is_global_template).plan(changes)


def _names(paths: Sequence[Path]) -> str:
    return ", ".join(path.name for path in paths)


__all__ = [
    "RebuildPlanner",
    "global_template_matcher",
    "name_heuristic",
    "plan_rebuild",
]
