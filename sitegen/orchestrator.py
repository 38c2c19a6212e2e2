"""Build orchestration for full and incremental site builds."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import asdict
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .assets import AssetCopier
from .changes import classify_changes
from .config import SiteConfig, load_config
from .content import scan_content
from .errors import BuildFailedError, PageRenderError, SiteGenError
from .hooks import AssetBatch, BuildStart, HookContext, HookEvent, HookPipeline
from .i18n import LocaleStrings
from .logging import get_logger
from .models import (
    AssetCopyOnly,
    BuildReport,
    ChangeSet,
    FullRebuild,
    LocaleVariant,
    PageResult,
    PageSource,
    ParsedDocument,
    RebuildPlan,
    SelectiveRebuild,
)
from .planner import GlobalTemplatePredicate, RebuildPlanner, global_template_matcher
from .plugins import PluginLoader
from .rendering import ContentParser, JinjaRenderer, MarkdownParser, Renderer, SiteEmitter
from .session import BuildSession

PathLike = Union[str, Path]


class BuildOrchestrator:
    """Coordinates scanning, rendering, hooks and asset copying for one site.

    The orchestrator owns a long-lived `BuildSession`, so the dependency graph
    recorded by one build drives the rebuild decisions of the next.
    """

    def __init__(
        self,
        config: SiteConfig,
        *,
        renderer: Renderer | None = None,
        parser: ContentParser | None = None,
        plugin_loader: PluginLoader | None = None,
        emitters: Optional[Iterable[SiteEmitter]] = None,
        asset_copier: AssetCopier | None = None,
        strict: Optional[bool] = None,
    ) -> None:
        self.config = config
        self._renderer_is_external = renderer is not None
        self._copier_is_external = asset_copier is not None
        self.renderer: Renderer = renderer or self._default_renderer(config)
        self.parser: ContentParser = parser or MarkdownParser()
        self.plugin_loader = plugin_loader or PluginLoader(config.plugins_root)
        self.emitters: List[SiteEmitter] = list(emitters or [])
        self.asset_copier = asset_copier or AssetCopier(config)
        self._strict_override = strict
        self.session = BuildSession(config)
        self.pipeline = HookPipeline()
        self.strings = LocaleStrings(default_locale=config.language.locale)
        self.last_report: Optional[BuildReport] = None
        self.logger = get_logger("orchestrator")

    @property
    def strict(self) -> bool:
        if self._strict_override is not None:
            return self._strict_override
        return self.config.strict

    # ------------------------------------------------------------------
    # Entry points

    async def build(self) -> BuildReport:
        """Run a full build: rescan, render every page, copy every asset."""
        self.logger.info("Building site from %s", self.config.root)
        context = self.session.begin("full")
        try:
            self.plugin_loader.load(self.config.plugins)
            self.pipeline = HookPipeline.from_loader(self.plugin_loader)

            config = await self.pipeline.execute(HookEvent.CONFIG_LOADED, context.config, context)
            context.adopt_config(config)
            await self.pipeline.execute(
                HookEvent.BUILD_START,
                BuildStart(mode="full", root=self.config.root, output_dir=self.session.output_dir),
                context,
            )

            self.strings = await asyncio.to_thread(
                LocaleStrings.load,
                self.config.locales_root,
                self.config.language.locale,
                self.config.language.strings,
            )
            registry = await asyncio.to_thread(
                scan_content,
                self.config.content_root,
                self.config.language.available,
                self.config.language.locale,
                max_depth=self.config.build.max_depth,
            )
            discovered = await self.pipeline.execute(
                HookEvent.FILES_DISCOVERED, list(registry.pages), context
            )
            targets = [page for page in discovered if isinstance(page, PageSource)]
            registry.add_virtual_pages(page for page in targets if page.is_virtual)
            self.session.replace_registry(registry)
        except SiteGenError as exc:
            self.logger.error("Build aborted: %s", exc)
            raise

        if not targets:
            self.logger.warning("No markdown files found in %s", self.config.content_root)

        await asyncio.to_thread(self.session.output_dir.mkdir, parents=True, exist_ok=True)
        await self._render_pages(targets, context)
        await self._render_fallbacks(registry.fallback_variants(), context)
        await self._copy_assets(await asyncio.to_thread(self.asset_copier.collect), context)
        await self._run_emitters(context)
        return await self._finish(context)

    async def rebuild(self, changed_paths: Sequence[PathLike]) -> BuildReport:
        """Classify a batch of changed paths and run the resulting plan."""
        changes = classify_changes(changed_paths, self.config.path_conventions())
        self.logger.info("Changes detected: %s", changes.summary())
        if changes.is_empty():
            return BuildReport(mode="skipped")
        plan = self.plan(changes)
        return await self.execute_plan(plan, changes)

    def plan(self, changes: ChangeSet) -> RebuildPlan:
        planner = RebuildPlanner(
            self.session.graph, self.session.registry, self._global_template_predicate()
        )
        plan = planner.plan(changes)
        self.logger.info("Rebuild plan: %s (%s)", type(plan).__name__, plan.reason)
        return plan

    async def execute_plan(self, plan: RebuildPlan, changes: ChangeSet) -> BuildReport:
        if isinstance(plan, FullRebuild):
            if changes.config:
                self.reload_config()
            return await self.build()

        asset_paths = [*changes.style, *changes.script, *changes.asset]
        if isinstance(plan, AssetCopyOnly):
            context = self.session.begin("assets")
            await self._copy_assets(asset_paths, context)
            return await self._finish(context)

        if isinstance(plan, SelectiveRebuild):
            missing = [
                page for page in plan.pages if not page.is_virtual and not page.source_path.exists()
            ]
            if missing:
                self.logger.info("Content file %s was removed; running a full build", missing[0].relative_path)
                return await self.build()
            context = self.session.begin("selective")
            pages = sorted(plan.pages, key=lambda page: page.relative_path)
            self.logger.info("Rebuilding %d page(s)", len(pages))
            await self._render_pages(pages, context)
            sources = [page.source_path for page in pages if not page.is_virtual]
            await self._render_fallbacks(self.session.registry.fallback_variants(sources), context)
            if plan.copy_assets:
                await self._copy_assets(asset_paths, context)
            return await self._finish(context)

        raise TypeError(f"Unknown rebuild plan {plan!r}")

    def reload_config(self) -> None:
        """Re-read sitegen.yml and start a fresh session from it."""
        if self.config.config_path is None or not self.config.config_path.exists():
            return
        config = load_config(self.config.config_path)
        self.logger.info("Configuration reloaded from %s", config.config_path)
        self.config = config
        self.session = BuildSession(config)
        if not self._renderer_is_external:
            self.renderer = self._default_renderer(config)
        if not self._copier_is_external:
            self.asset_copier = AssetCopier(config)
        self.plugin_loader.plugins_dir = config.plugins_root

    # ------------------------------------------------------------------
    # Pages

    async def _render_pages(self, pages: Sequence[PageSource], context: HookContext) -> None:
        if not pages:
            return
        outcomes = await asyncio.gather(
            *(self._process_page(page, context) for page in pages), return_exceptions=True
        )
        succeeded = 0
        for page, outcome in zip(pages, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self._record_page_failure(page.relative_path, page.source_path, outcome)
                continue
            self.session.results.append(outcome)
            succeeded += 1
        self.logger.info("Processed %d/%d page(s)", succeeded, len(pages))

    async def _render_fallbacks(
        self, variants: Sequence[LocaleVariant], context: HookContext
    ) -> None:
        if not variants:
            return
        pages = [_fallback_page(variant) for variant in variants]
        outcomes = await asyncio.gather(
            *(
                self._process_page(page, context, fallback=variant)
                for page, variant in zip(pages, variants)
            ),
            return_exceptions=True,
        )
        generated = 0
        for variant, outcome in zip(variants, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self._record_page_failure(variant.output_path, variant.input_path, outcome)
                continue
            self.session.results.append(outcome)
            generated += 1
        self.logger.info("Generated %d/%d fallback page(s)", generated, len(variants))

    async def _process_page(
        self,
        page: PageSource,
        context: HookContext,
        *,
        fallback: Optional[LocaleVariant] = None,
    ) -> PageResult:
        try:
            if page.is_virtual:
                parsed = ParsedDocument(html="", frontmatter=dict(page.frontmatter or {}))
            else:
                raw = await asyncio.to_thread(page.source_path.read_text, encoding="utf-8")
                raw = await self.pipeline.execute(
                    HookEvent.MARKDOWN_BEFORE_PARSE, raw, context, page=page
                )
                parsed = self.parser.parse(raw)
                parsed = await self.pipeline.execute(
                    HookEvent.MARKDOWN_AFTER_PARSE, parsed, context, page=page
                )

            page_context = self._page_context(page, parsed, context, fallback=fallback)
            page_context = await self.pipeline.execute(
                HookEvent.PAGE_BEFORE_RENDER, page_context, context, page=page
            )

            # render() and get_dependencies() must not be separated by an await.
            try:
                html = self.renderer.render(page_context)
            finally:
                if fallback is None:
                    self._record_dependencies(page)

            html = await self.pipeline.execute(
                HookEvent.PAGE_AFTER_RENDER, html, context, page=page
            )
            await asyncio.to_thread(self._write_output, page.output_path, html)
        except Exception as exc:
            raise PageRenderError(
                f"Failed to process {page.relative_path}: {exc}",
                source=str(page.source_path),
                details={"error": type(exc).__name__},
            ) from exc

        if fallback is None:
            self.logger.info("Generated %s", page.output_path)
        else:
            self.logger.debug(
                "Generated %s fallback page %s from %s",
                fallback.locale,
                fallback.output_path,
                fallback.fallback_locale,
            )
        page_data = page_context.get("page", {})
        return PageResult(
            url=page.url,
            title=str(page_data.get("title") or ""),
            description=str(page_data.get("description") or ""),
            output_path=page.output_path,
            locale=page.locale,
            status=str(page_data.get("status") or "publish"),
            is_fallback=fallback is not None,
        )

    def _record_dependencies(self, page: PageSource) -> None:
        dependencies = self.renderer.get_dependencies()
        graph = self.session.graph
        graph.clear_node(page.node_key)
        for dependency in dependencies:
            graph.add_dependency(page.node_key, dependency)
        self.logger.debug("Registered %d dependencies for %s", len(dependencies), page.relative_path)

    def _page_context(
        self,
        page: PageSource,
        parsed: ParsedDocument,
        context: HookContext,
        *,
        fallback: Optional[LocaleVariant] = None,
    ) -> Dict[str, Any]:
        config = context.config
        frontmatter = dict(parsed.frontmatter)
        registry = self.session.registry
        page_data = {
            **frontmatter,
            "title": frontmatter.get("title") or config.project.title,
            "description": frontmatter.get("description") or config.project.description,
            "content": parsed.html,
            "toc": parsed.toc,
            "filename": page.output_path,
            "relative_path": page.relative_path,
            "depth": page.depth,
            "path_to_root": "../" * page.depth if page.depth else "./",
            "url": page.url,
        }
        output_path = page.output_path

        def is_active(target: str) -> bool:
            return _to_html_path(target) == output_path

        return {
            "site": asdict(config.project),
            "config": config,
            "page": page_data,
            "locale": page.locale,
            "lang": page.locale,
            "strings": self.strings.strings_for(page.locale),
            "t": self.strings.translator(page.locale),
            "available_locales": registry.available_locales_for(page),
            "is_multilingual": registry.multilingual,
            "is_fallback": fallback is not None,
            "fallback_locale": fallback.fallback_locale if fallback else None,
            "is_active": is_active,
        }

    def _write_output(self, output_path: str, html: str) -> None:
        root = self.session.output_dir
        target = (root / output_path).resolve()
        if root.resolve() not in target.parents:
            raise SiteGenError(f"Refusing to write outside the output directory: {output_path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(html, encoding="utf-8")

    def _record_page_failure(self, unit: str, source: Path, exc: Exception) -> None:
        cause = exc.__cause__ if isinstance(exc, PageRenderError) and exc.__cause__ else exc
        message = str(exc)
        self.session.record_error(unit, message, detail=str(source))
        self.logger.error("Error processing %s: %s", unit, message)
        self.logger.debug("Failure detail for %s", source, exc_info=cause)
        if not self.strict:
            self.logger.warning("Continuing build (use --strict to fail on errors)")

    # ------------------------------------------------------------------
    # Assets, emitters, reporting

    async def _copy_assets(self, sources: Sequence[Path], context: HookContext) -> None:
        if not sources:
            return
        batch = AssetBatch(sources=list(sources), destination=self.session.output_dir)
        batch = await self.pipeline.execute(HookEvent.ASSETS_BEFORE_COPY, batch, context)
        copied, errors = await asyncio.to_thread(self.asset_copier.copy, batch.sources)
        self.session.errors.extend(errors)
        batch.copied = copied
        await self.pipeline.execute(HookEvent.ASSETS_AFTER_COPY, batch, context)

    async def _run_emitters(self, context: HookContext) -> None:
        pages = list(self.session.results)
        for emitter in self.emitters:
            name = type(emitter).__name__
            try:
                outcome = emitter.emit(pages, context.config, self.session.output_dir)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                self.logger.error("Emitter %s failed: %s", name, exc)
                self.session.record_error(f"emitter {name}", str(exc))

    async def _finish(self, context: HookContext) -> BuildReport:
        await self.pipeline.execute(HookEvent.BUILD_END, self.session.report(), context)
        report = self.session.report()
        self._log_summary(report)
        self.last_report = report
        if self.strict and report.errors:
            raise BuildFailedError(
                f"Build failed with {len(report.errors)} error(s) in strict mode", report
            )
        return report

    def _log_summary(self, report: BuildReport) -> None:
        if report.errors:
            self.logger.warning(
                "%s build completed with %d error(s)", report.mode.capitalize(), len(report.errors)
            )
            for index, error in enumerate(report.errors, start=1):
                self.logger.error("%d. %s: %s", index, error.unit, error.message)
            return
        self.logger.info(
            "%s build completed: %d page(s) in %.2fs",
            report.mode.capitalize(),
            len(report.pages),
            report.duration,
        )

    # ------------------------------------------------------------------
    # Helpers

    def _global_template_predicate(self) -> GlobalTemplatePredicate:
        return global_template_matcher(self.config.build.global_templates, self.config.root)

    @staticmethod
    def _default_renderer(config: SiteConfig) -> JinjaRenderer:
        return JinjaRenderer(config.template_roots(), config.build.default_template)


def _fallback_page(variant: LocaleVariant) -> PageSource:
    relative = variant.relative_path
    page_path = relative.split("/", 1)[1] if "/" in relative else relative
    return PageSource(
        source_path=variant.input_path,
        locale=variant.locale,
        page_path=page_path,
        output_path=variant.output_path,
        relative_path=relative,
        depth=variant.depth,
    )


def _to_html_path(target: str) -> str:
    normalised = target.replace("\\", "/").lstrip("/")
    path = PurePosixPath(normalised)
    if path.suffix.lower() in {".md", ".markdown"}:
        path = path.with_suffix(".html")
    return path.as_posix()


__all__ = ["BuildOrchestrator"]
