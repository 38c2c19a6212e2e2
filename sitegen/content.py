"""Content tree scanning and the multilingual page registry."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .errors import DepthLimitError, PathTraversalError
from .logging import get_logger
from .models import LocaleVariant, PageSource

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "__pycache__",
}

_EXCLUDED_FILES = {
    ".DS_Store",
    "Thumbs.db",
}

MARKDOWN_SUFFIXES = (".md", ".markdown")

DEFAULT_MAX_DEPTH = 10

logger = get_logger("content")


@dataclass(frozen=True)
class Candidate:
    """A file found by the walk, before it is accepted as a page."""

    root: Path
    relative: str

    @property
    def absolute(self) -> Path:
        return self.root / self.relative

    @property
    def parts(self) -> Tuple[str, ...]:
        return PurePosixPath(self.relative).parts

    @property
    def depth(self) -> int:
        return len(self.parts) - 1


# Filters drop a candidate quietly; guards abort the scan.
CandidateFilter = Callable[[Candidate], bool]
CandidateGuard = Callable[[Candidate, int], None]


def is_visible(candidate: Candidate) -> bool:
    name = candidate.parts[-1]
    return not name.startswith(".") and name not in _EXCLUDED_FILES


def is_markdown(candidate: Candidate) -> bool:
    return candidate.relative.lower().endswith(MARKDOWN_SUFFIXES)


def is_readable(candidate: Candidate) -> bool:
    if os.access(candidate.absolute, os.R_OK):
        return True
    logger.warning("Skipping unreadable content file %s", candidate.relative)
    return False


def guard_traversal(candidate: Candidate, max_depth: int) -> None:
    if "\0" in candidate.relative or ".." in candidate.parts:
        raise PathTraversalError(
            f"Suspicious content path rejected: {candidate.relative!r}",
            {"path": candidate.relative},
        )


def guard_containment(candidate: Candidate, max_depth: int) -> None:
    resolved = candidate.absolute.resolve()
    root = candidate.root.resolve()
    if resolved != root and root not in resolved.parents:
        raise PathTraversalError(
            f"Content path escapes the content root: {candidate.relative}",
            {"path": candidate.relative, "resolved": str(resolved), "root": str(root)},
        )


def guard_depth(candidate: Candidate, max_depth: int) -> None:
    if candidate.depth > max_depth:
        raise DepthLimitError(
            f"Maximum directory depth ({max_depth}) exceeded at: {candidate.relative}",
            {"path": candidate.relative, "max_depth": max_depth, "depth": candidate.depth},
        )


CANDIDATE_FILTERS: Sequence[CandidateFilter] = (is_visible, is_markdown)
CANDIDATE_GUARDS: Sequence[CandidateGuard] = (guard_traversal, guard_depth, guard_containment)


def walk_content(root: Path, max_depth: int = DEFAULT_MAX_DEPTH) -> List[Candidate]:
    """Return accepted markdown candidates below `root`, in sorted order.

    Symlinked directories are not followed. Content files pass every guard
    (fatal) before the readability check (skip), so a suspicious page path
    is never silently ignored.
    """
    accepted: List[Candidate] = []
    for candidate in _iter_candidates(root, max_depth):
        if not all(check(candidate) for check in CANDIDATE_FILTERS):
            continue
        for guard in CANDIDATE_GUARDS:
            guard(candidate, max_depth)
        if is_readable(candidate):
            accepted.append(candidate)
    return accepted


def _iter_candidates(root: Path, max_depth: int) -> Iterator[Candidate]:
    def _on_error(exc: OSError) -> None:
        logger.warning("Skipping unreadable directory %s: %s", exc.filename, exc.strerror)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error, followlinks=False):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""
        level = len(rel_dir.split("/")) if rel_dir else 0
        if level > max_depth:
            raise DepthLimitError(
                f"Maximum directory depth ({max_depth}) exceeded at: {rel_dir}",
                {"path": rel_dir, "max_depth": max_depth, "depth": level},
            )

        dirnames[:] = sorted(
            name for name in dirnames if name not in _EXCLUDED_DIRS and not name.startswith(".")
        )
        for filename in sorted(filenames):
            relative = f"{rel_dir}/{filename}" if rel_dir else filename
            yield Candidate(root=root, relative=relative)


def _detect_locale(
    relative: str, available: Sequence[str], default_locale: str, multilingual: bool
) -> Tuple[str, str, bool]:
    """Return (locale, logical page path, came from a locale directory)."""
    if not multilingual:
        return default_locale, relative, False
    parts = relative.split("/")
    if len(parts) > 1 and parts[0] in available:
        return parts[0], "/".join(parts[1:]), True
    return default_locale, relative, False


def _html_path(relative: str) -> str:
    return PurePosixPath(relative).with_suffix(".html").as_posix()


class ContentRegistry:
    """Discovered pages plus the logical page -> {locale -> variant} map."""

    def __init__(
        self,
        content_root: Path,
        pages: Optional[List[PageSource]] = None,
        variants: Optional[Dict[str, Dict[str, LocaleVariant]]] = None,
        *,
        default_locale: str = "en",
        available_locales: Sequence[str] = (),
        multilingual: bool = False,
    ) -> None:
        self.content_root = content_root
        self.pages: List[PageSource] = list(pages or [])
        self.variants: Dict[str, Dict[str, LocaleVariant]] = variants if variants is not None else {}
        self.default_locale = default_locale
        self.available_locales = list(available_locales)
        self.multilingual = multilingual
        self._by_key: Dict[str, PageSource] = {page.node_key: page for page in self.pages}

    @property
    def locales(self) -> List[str]:
        """Locales actually present in the content tree, in discovery order."""
        seen: List[str] = []
        for page in self.pages:
            if page.locale not in seen:
                seen.append(page.locale)
        return seen

    def find(self, source_path: Path) -> Optional[PageSource]:
        return self._by_key.get(Path(source_path).as_posix())

    def find_by_key(self, node_key: str) -> Optional[PageSource]:
        return self._by_key.get(node_key)

    def variants_for(self, page_path: str) -> Dict[str, LocaleVariant]:
        return dict(self.variants.get(page_path, {}))

    def fallback_variants(self, sources: Optional[Iterable[Path]] = None) -> List[LocaleVariant]:
        """Synthesized variants, optionally limited to those reading `sources`."""
        wanted = {Path(path) for path in sources} if sources is not None else None
        result: List[LocaleVariant] = []
        for locale_map in self.variants.values():
            for variant in locale_map.values():
                if not variant.is_fallback:
                    continue
                if wanted is not None and variant.input_path not in wanted:
                    continue
                result.append(variant)
        return result

    def available_locales_for(self, page: PageSource) -> Dict[str, str]:
        """Locale -> URL for real translations of `page` (language switcher data)."""
        if not self.multilingual:
            return {}
        entry = self.variants.get(page.page_path)
        if not entry:
            return {page.locale: page.url}
        return {
            locale: variant.url
            for locale, variant in entry.items()
            if variant.exists and not variant.is_fallback
        }

    def add_virtual_pages(self, pages: Iterable[PageSource]) -> None:
        for page in pages:
            if page.node_key in self._by_key:
                logger.warning("Ignoring duplicate virtual page %s", page.output_path)
                continue
            self.pages.append(page)
            self._by_key[page.node_key] = page

    def __len__(self) -> int:
        return len(self.pages)


def scan_content(
    content_root: Path,
    available_locales: Sequence[str],
    default_locale: str,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> ContentRegistry:
    """Walk the content tree and build the page registry.

    Raises `DepthLimitError` or `PathTraversalError`; both abort the build.
    """
    root = Path(content_root).expanduser().resolve()
    available = list(available_locales)
    multilingual = len(available) > 1
    registry = ContentRegistry(
        root,
        default_locale=default_locale,
        available_locales=available,
        multilingual=multilingual,
    )

    if not root.is_dir():
        logger.warning("Content directory not found: %s", root)
        return registry

    if multilingual:
        logger.debug("Multilingual mode enabled (locales: %s, default: %s)", ", ".join(available), default_locale)
    else:
        logger.debug("Multilingual mode disabled; every page uses locale %s", default_locale)

    origins: Dict[Tuple[str, str], bool] = {}
    pages: List[PageSource] = []
    for candidate in walk_content(root, max_depth):
        locale, page_path, from_locale_dir = _detect_locale(
            candidate.relative, available, default_locale, multilingual
        )
        output_path = _html_path(candidate.relative)
        page = PageSource(
            source_path=candidate.absolute,
            locale=locale,
            page_path=page_path,
            output_path=output_path,
            relative_path=candidate.relative,
            depth=candidate.depth,
        )
        pages.append(page)

        key = (page_path, locale)
        if key in origins and (origins[key] or not from_locale_dir):
            logger.warning(
                "Duplicate %s page for %s; keeping the locale directory copy", locale, page_path
            )
            continue
        if key in origins:
            logger.warning(
                "Duplicate %s page for %s; %s takes precedence", locale, page_path, candidate.relative
            )
        origins[key] = from_locale_dir
        registry.variants.setdefault(page_path, {})[locale] = LocaleVariant(
            input_path=page.source_path,
            output_path=output_path,
            url=page.url,
            locale=locale,
            relative_path=candidate.relative,
        )
        logger.debug("Found content file %s (locale %s, depth %d)", candidate.relative, locale, page.depth)

    registry.pages = pages
    registry._by_key = {page.node_key: page for page in pages}

    if multilingual:
        logger.info(
            "Found %d markdown file(s) in %d locale(s): %s",
            len(pages),
            len(registry.locales),
            ", ".join(registry.locales),
        )
        build_fallbacks(registry.variants, available, default_locale)
    else:
        logger.info("Found %d markdown file(s)", len(pages))
    return registry


def build_fallbacks(
    variants: Dict[str, Dict[str, LocaleVariant]],
    available_locales: Sequence[str],
    default_locale: str,
) -> int:
    """Synthesize a variant for every missing translation; return how many were added.

    The default locale's content is reused when present, otherwise the first
    configured locale that has the page.
    """
    created = 0
    for page_path, locale_map in variants.items():
        real = {locale: variant for locale, variant in locale_map.items() if not variant.is_fallback}
        source_locale = _pick_fallback_source(real, available_locales, default_locale)
        if source_locale is None:
            continue
        source = real[source_locale]
        for locale in available_locales:
            if locale in locale_map:
                continue
            output_path = f"{locale}/{_html_path(page_path)}"
            locale_map[locale] = LocaleVariant(
                input_path=source.input_path,
                output_path=output_path,
                url=f"/{output_path}",
                locale=locale,
                relative_path=f"{locale}/{page_path}",
                exists=False,
                is_fallback=True,
                fallback_locale=source_locale,
                fallback_url=source.url,
            )
            created += 1
            logger.debug(
                "Created %s fallback for %s from %s", locale, page_path, source_locale
            )
    return created


def _pick_fallback_source(
    real: Dict[str, LocaleVariant], available_locales: Sequence[str], default_locale: str
) -> Optional[str]:
    if default_locale in real:
        return default_locale
    for locale in available_locales:
        if locale in real:
            return locale
    for locale in real:
        return locale
    return None


__all__ = [
    "CANDIDATE_FILTERS",
    "CANDIDATE_GUARDS",
    "Candidate",
    "ContentRegistry",
    "build_fallbacks",
    "scan_content",
    "walk_content",
]
