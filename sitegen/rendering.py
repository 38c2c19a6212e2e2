"""Content parsing and template rendering collaborators."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol, Sequence, Set, Union

import markdown
import yaml
from jinja2 import Environment, FileSystemLoader, Template, TemplateSyntaxError

from .models import PageResult, ParsedDocument

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)

DEFAULT_MARKDOWN_EXTENSIONS: Sequence[str] = ("extra", "toc", "sane_lists")


class ContentParser(Protocol):
    def parse(self, raw: str) -> ParsedDocument:
        """Convert raw page text into HTML, frontmatter and table of contents."""


class Renderer(Protocol):
    def render(self, context: Mapping[str, Any]) -> str:
        """Render one page context into an HTML string."""

    def get_dependencies(self) -> List[str]:
        """Template files touched by the most recent render."""


class SiteEmitter(Protocol):
    def emit(
        self, pages: Sequence[PageResult], config: Any, output_dir: Path
    ) -> Union[None, Awaitable[None]]:
        """Write a site-level artifact (sitemap, robots, manifest) from the built pages."""


def split_frontmatter(raw: str) -> tuple[Dict[str, Any], str]:
    """Split a leading `---` YAML block from the markdown body."""
    match = _FRONTMATTER_RE.match(raw)
    if not match:
        return {}, raw
    try:
        loaded = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid frontmatter: {exc}") from exc
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ValueError("Frontmatter must be a mapping")
    return loaded, raw[match.end():]


class MarkdownParser:
    """Python-Markdown based parser with YAML frontmatter support."""

    def __init__(self, extensions: Optional[Sequence[str]] = None) -> None:
        self._extensions = list(extensions or DEFAULT_MARKDOWN_EXTENSIONS)

    def parse(self, raw: str) -> ParsedDocument:
        frontmatter, body = split_frontmatter(raw)
        md = markdown.Markdown(extensions=self._extensions)
        html = md.convert(body)
        toc = _flatten_toc(getattr(md, "toc_tokens", []))
        return ParsedDocument(html=html, frontmatter=frontmatter, toc=toc)


def _flatten_toc(tokens: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    entries: List[Dict[str, Any]] = []
    for token in tokens:
        entries.append(
            {"level": token.get("level"), "id": token.get("id"), "title": token.get("name")}
        )
        entries.extend(_flatten_toc(token.get("children", [])))
    return entries


class _RecordingEnvironment(Environment):
    """Jinja2 environment that notes every template file it hands out."""

    recorded: Optional[Set[str]] = None

    def get_template(self, name, parent=None, globals=None):  # type: ignore[no-untyped-def]
        template = super().get_template(name, parent, globals)
        self._record(template)
        return template

    def select_template(self, names, parent=None, globals=None):  # type: ignore[no-untyped-def]
        template = super().select_template(names, parent, globals)
        self._record(template)
        return template

    def _record(self, template: Template) -> None:
        if self.recorded is not None and template.filename:
            self.recorded.add(Path(template.filename).resolve().as_posix())


class JinjaRenderer:
    """Renders page contexts with Jinja2 and reports the templates used.

    Earlier roots win, so project templates override theme templates. The
    template comes from the page frontmatter `template` key, falling back to
    `default_template`.
    """

    def __init__(self, template_roots: Sequence[Path], default_template: str = "page.html") -> None:
        self.template_roots = [Path(root).resolve() for root in template_roots]
        self.default_template = default_template
        self._env = _RecordingEnvironment(
            loader=FileSystemLoader([str(root) for root in self.template_roots]),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._last_dependencies: List[str] = []

    @property
    def environment(self) -> Environment:
        return self._env

    def render(self, context: Mapping[str, Any]) -> str:
        page = context.get("page") or {}
        name = str(page.get("template") or self.default_template)
        candidates = [name] if Path(name).suffix else [f"{name}.html", name]

        recorded: Set[str] = set()
        self._env.recorded = recorded
        try:
            template = self._env.select_template(candidates)
            return template.render(**context)
        except TemplateSyntaxError as exc:
            if exc.filename:
                recorded.add(Path(exc.filename).resolve().as_posix())
            raise
        finally:
            self._env.recorded = None
            self._last_dependencies = sorted(recorded)

    def get_dependencies(self) -> List[str]:
        return list(self._last_dependencies)


__all__ = [
    "ContentParser",
    "JinjaRenderer",
    "MarkdownParser",
    "Renderer",
    "SiteEmitter",
    "split_frontmatter",
]
