"""Page-to-template dependency tracking for incremental builds."""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import Dict, Set, Union

PathLike = Union[str, Path]


def _key(path: PathLike) -> str:
    if isinstance(path, Path):
        return path.as_posix()
    return path


class DependencyGraph:
    """Bidirectional map between pages and the templates their last render used.

    Edges point from a page (its node key) to a template path. The reverse
    index answers "which pages must be rebuilt if this template changes".
    Callers clear a page's node before recording the edges of a new render so
    stale edges never accumulate.
    """

    def __init__(self) -> None:
        self._dependencies: Dict[str, Set[str]] = {}
        self._dependents: Dict[str, Set[str]] = defaultdict(set)

    def clear_node(self, page: PathLike) -> None:
        """Remove every outgoing edge of `page`; no-op for unknown pages."""
        node = _key(page)
        templates = self._dependencies.pop(node, None)
        if not templates:
            return
        for template in templates:
            dependents = self._dependents.get(template)
            if dependents is None:
                continue
            dependents.discard(node)
            if not dependents:
                del self._dependents[template]

    def add_dependency(self, page: PathLike, template: PathLike) -> None:
        node = _key(page)
        target = _key(template)
        self._dependencies.setdefault(node, set()).add(target)
        self._dependents[target].add(node)

    def get_dependents(self, template: PathLike) -> Set[str]:
        """Pages whose last recorded render used `template`."""
        return set(self._dependents.get(_key(template), ()))

    def get_dependencies(self, page: PathLike) -> Set[str]:
        return set(self._dependencies.get(_key(page), ()))

    def clear(self) -> None:
        self._dependencies.clear()
        self._dependents.clear()

    def __contains__(self, page: object) -> bool:
        if not isinstance(page, (str, Path)):
            return False
        return _key(page) in self._dependencies

    def __len__(self) -> int:
        return len(self._dependencies)


__all__ = ["DependencyGraph"]
