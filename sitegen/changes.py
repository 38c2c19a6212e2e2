"""Classification of changed paths into rebuild categories."""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .logging import get_logger
from .models import ChangeSet

logger = get_logger("changes")

PathLike = Union[str, Path]


@dataclass(frozen=True)
class PathConventions:
    """Where each kind of project file lives."""

    config_path: Path
    content_root: Path
    template_roots: Sequence[Path] = ()
    style_roots: Sequence[Path] = ()
    script_roots: Sequence[Path] = ()
    asset_roots: Sequence[Path] = ()
    plugin_root: Optional[Path] = None

    def roots(self) -> List[Tuple[Path, str]]:
        """(root, category) pairs, deepest root first."""
        pairs: List[Tuple[Path, str]] = [(self.content_root, "content")]
        pairs.extend((root, "template") for root in self.template_roots)
        pairs.extend((root, "style") for root in self.style_roots)
        pairs.extend((root, "script") for root in self.script_roots)
        pairs.extend((root, "asset") for root in self.asset_roots)
        if self.plugin_root is not None:
            pairs.append((self.plugin_root, "plugin"))
        return sorted(pairs, key=lambda pair: len(pair[0].parts), reverse=True)


class ChangeClassifier:
    """Maps changed files onto exactly one rebuild category each."""

    _CONFIG_SUFFIXES: Sequence[str] = (".yaml", ".yml")

    _CONTENT_SUFFIXES: Sequence[str] = (".md", ".markdown")

    _TEMPLATE_SUFFIXES: Sequence[str] = (".html", ".htm", ".j2", ".jinja", ".jinja2")

    _STYLE_SUFFIXES: Sequence[str] = (".css", ".scss", ".sass", ".less")

    _SCRIPT_SUFFIXES: Sequence[str] = (".js", ".mjs", ".cjs")

    _ASSET_SUFFIXES: Sequence[str] = (
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".webp",
        ".avif",
        ".svg",
        ".ico",
        ".woff",
        ".woff2",
        ".ttf",
        ".otf",
        ".eot",
        ".mp3",
        ".mp4",
        ".webm",
        ".ogg",
        ".pdf",
        ".json",
        ".txt",
        ".xml",
    )

    # Editor swap files and OS droppings never affect the build.
    _TRANSIENT_PATTERNS: Sequence[str] = ("*~", "*.swp", "*.swo", "*.tmp", ".#*", ".DS_Store")

    def __init__(self, conventions: PathConventions) -> None:
        self.conventions = conventions
        self._config_path = _normalise(conventions.config_path)
        self._roots = [(_normalise(root), category) for root, category in conventions.roots()]

    def classify(self, paths: Iterable[PathLike]) -> ChangeSet:
        changes = ChangeSet()
        seen = set()
        for raw in paths:
            try:
                path = _normalise(raw)
            except (OSError, ValueError, RuntimeError) as exc:
                logger.warning("Ignoring change to invalid path %r: %s", raw, exc)
                continue
            if path in seen:
                continue
            seen.add(path)
            category = self.category_for(path)
            if category is None:
                changes.ignored.append(path)
                continue
            changes.bucket(category).append(path)
        return changes

    def category_for(self, path: Path) -> Optional[str]:
        if path == self._config_path or path.suffix.lower() in self._CONFIG_SUFFIXES:
            return "config"

        name = path.name
        if any(fnmatch(name, pattern) for pattern in self._TRANSIENT_PATTERNS):
            logger.debug("Ignoring transient file %s", path)
            return None

        suffix = path.suffix.lower()
        for root, category in self._roots:
            if not _is_within(path, root):
                continue
            return self._category_under_root(category, suffix)

        by_suffix = self._category_by_suffix(suffix)
        if by_suffix is None:
            logger.warning("Ignoring change to unclassifiable path %s", path)
        return by_suffix

    def _category_under_root(self, category: str, suffix: str) -> str:
        if category == "content":
            return "content" if suffix in self._CONTENT_SUFFIXES else "asset"
        if category == "style":
            return "style" if suffix in self._STYLE_SUFFIXES else "asset"
        if category == "script":
            return "script" if suffix in self._SCRIPT_SUFFIXES else "asset"
        return category

    def _category_by_suffix(self, suffix: str) -> Optional[str]:
        if suffix in self._CONTENT_SUFFIXES:
            return "content"
        if suffix in self._TEMPLATE_SUFFIXES:
            return "template"
        if suffix in self._STYLE_SUFFIXES:
            return "style"
        if suffix in self._SCRIPT_SUFFIXES:
            return "script"
        if suffix in self._ASSET_SUFFIXES:
            return "asset"
        return None


def classify_changes(paths: Iterable[PathLike], conventions: PathConventions) -> ChangeSet:
    """Classify one batch of changed paths. Never raises."""
    return ChangeClassifier(conventions).classify(paths)


def _normalise(path: PathLike) -> Path:
    return Path(path).expanduser().resolve()


def _is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


__all__ = ["ChangeClassifier", "PathConventions", "classify_changes"]
