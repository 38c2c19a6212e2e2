"""Copying of static assets into the output directory."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Sequence, Tuple

from .config import SiteConfig
from .content import MARKDOWN_SUFFIXES
from .logging import get_logger
from .models import BuildError

logger = get_logger("assets")


@dataclass(frozen=True)
class AssetRoot:
    """A source directory and where its files land in the output tree."""

    source: Path
    destination: Path
    skip_markdown: bool = False


class AssetCopier:
    """Mirrors asset, style, script and content-side files into the output."""

    def __init__(self, config: SiteConfig) -> None:
        self.config = config
        self.max_depth = config.build.max_depth
        output = config.output_root
        roots: List[AssetRoot] = []
        for directory in (config.build.assets_dir, config.build.styles_dir, config.build.scripts_dir):
            source = config.resolve(directory)
            roots.append(AssetRoot(source=source, destination=output / _relative_name(source, config.root)))
        roots.append(AssetRoot(source=config.content_root, destination=output, skip_markdown=True))
        self.roots: Sequence[AssetRoot] = tuple(roots)

    def collect(self) -> List[Path]:
        """Every copyable file under the asset roots."""
        files: List[Path] = []
        for root in self.roots:
            if not root.source.is_dir():
                continue
            files.extend(self._iter_files(root))
        return files

    def copy(self, sources: Sequence[Path]) -> Tuple[List[Path], List[BuildError]]:
        """Copy `sources`; one failed file never stops the others."""
        copied: List[Path] = []
        errors: List[BuildError] = []
        for source in sources:
            target = self.destination_for(source)
            if target is None:
                logger.debug("No asset destination for %s", source)
                continue
            try:
                if not source.exists():
                    target.unlink(missing_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, target)
            except OSError as exc:
                logger.error("Failed to copy asset %s: %s", source, exc)
                errors.append(BuildError(unit=f"asset {source.name}", message=str(exc), detail=str(source)))
                continue
            copied.append(target)
        logger.info("Copied %d asset file(s)", len(copied))
        return copied, errors

    def destination_for(self, source: Path) -> Path | None:
        source = Path(source).resolve()
        for root in sorted(self.roots, key=lambda item: len(item.source.parts), reverse=True):
            if root.source == source or root.source in source.parents:
                if root.skip_markdown and source.suffix.lower() in MARKDOWN_SUFFIXES:
                    return None
                return root.destination / source.relative_to(root.source)
        return None

    def _iter_files(self, root: AssetRoot) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(root.source, followlinks=False):
            current = Path(dirpath)
            level = len(current.relative_to(root.source).parts)
            if level >= self.max_depth:
                if dirnames:
                    logger.warning("Asset directory %s exceeds depth %d; not descending", current, self.max_depth)
                dirnames[:] = []
            dirnames[:] = sorted(name for name in dirnames if not name.startswith("."))
            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                if root.skip_markdown and filename.lower().endswith(MARKDOWN_SUFFIXES):
                    continue
                yield current / filename


def _relative_name(source: Path, project_root: Path) -> Path:
    try:
        return source.relative_to(project_root.resolve())
    except ValueError:
        return Path(source.name)


__all__ = ["AssetCopier", "AssetRoot"]
