"""Core data models shared across sitegen components."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Union


@dataclass(frozen=True)
class PageSource:
    """One logical content unit discovered in the content tree."""

    source_path: Path
    locale: str
    page_path: str
    output_path: str
    relative_path: str
    depth: int
    # Set only for pages injected by plugins; they have no file on disk.
    frontmatter: Optional[Mapping[str, Any]] = field(default=None, compare=False, hash=False)

    @property
    def is_virtual(self) -> bool:
        return self.frontmatter is not None

    @property
    def node_key(self) -> str:
        """Identity of the page inside the dependency graph."""
        if self.is_virtual:
            return f"virtual:{self.output_path}"
        return self.source_path.as_posix()

    @property
    def url(self) -> str:
        return f"/{self.output_path}"

    @property
    def filename(self) -> str:
        return self.relative_path.rsplit("/", 1)[-1]


@dataclass
class LocaleVariant:
    """Per-locale entry for a logical page, real or synthesized."""

    input_path: Path
    output_path: str
    url: str
    locale: str
    relative_path: str
    exists: bool = True
    is_fallback: bool = False
    fallback_locale: Optional[str] = None
    fallback_url: Optional[str] = None

    @property
    def depth(self) -> int:
        return self.output_path.count("/")


@dataclass
class ChangeSet:
    """Changed paths for one batch of events, split into disjoint categories."""

    content: List[Path] = field(default_factory=list)
    template: List[Path] = field(default_factory=list)
    style: List[Path] = field(default_factory=list)
    script: List[Path] = field(default_factory=list)
    asset: List[Path] = field(default_factory=list)
    plugin: List[Path] = field(default_factory=list)
    config: List[Path] = field(default_factory=list)
    ignored: List[Path] = field(default_factory=list)

    CATEGORIES = ("content", "template", "style", "script", "asset", "plugin", "config")

    def bucket(self, category: str) -> List[Path]:
        if category not in self.CATEGORIES:
            raise KeyError(category)
        return getattr(self, category)

    def is_empty(self) -> bool:
        return not any(self.bucket(category) for category in self.CATEGORIES)

    def summary(self) -> str:
        parts = [
            f"{len(self.bucket(category))} {category}"
            for category in self.CATEGORIES
            if self.bucket(category)
        ]
        return ", ".join(parts) if parts else "no relevant changes"


@dataclass(frozen=True)
class FullRebuild:
    reason: str = "full build"


@dataclass(frozen=True)
class SelectiveRebuild:
    pages: FrozenSet[PageSource]
    copy_assets: bool = False
    reason: str = "selective rebuild"


@dataclass(frozen=True)
class AssetCopyOnly:
    reason: str = "asset changes only"


RebuildPlan = Union[FullRebuild, SelectiveRebuild, AssetCopyOnly]


@dataclass
class ParsedDocument:
    """Output of the content parser for one page."""

    html: str
    frontmatter: Dict[str, Any] = field(default_factory=dict)
    toc: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class PageResult:
    """Metadata of a successfully written page, handed to site emitters."""

    url: str
    title: str
    description: str
    output_path: str
    locale: str
    status: str = "publish"
    is_fallback: bool = False


@dataclass
class BuildError:
    """A recoverable failure of one unit of work."""

    unit: str
    message: str
    detail: Optional[str] = None


@dataclass
class BuildReport:
    """Outcome of one build cycle."""

    mode: str
    pages: List[PageResult] = field(default_factory=list)
    errors: List[BuildError] = field(default_factory=list)
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "pages": [page.url for page in self.pages],
            "errors": [{"unit": err.unit, "message": err.message} for err in self.errors],
            "duration": round(self.duration, 3),
        }
