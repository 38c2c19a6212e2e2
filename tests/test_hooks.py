"""Tests for sitegen.hooks."""

from __future__ import annotations

import asyncio
from pathlib import Path

from sitegen.config import SiteConfig
from sitegen.hooks import AssetBatch, HookContext, HookEvent, HookPipeline
from sitegen.models import PageSource, ParsedDocument


def _context(tmp_path: Path) -> HookContext:
    config = SiteConfig(root=tmp_path)
    return HookContext(config, output_dir=tmp_path / "dist")


def test_handlers_run_in_registration_order(tmp_path: Path) -> None:
    pipeline = HookPipeline()
    pipeline.register(HookEvent.PAGE_AFTER_RENDER, lambda html, ctx: html + "<a>")
    pipeline.register(HookEvent.PAGE_AFTER_RENDER, lambda html, ctx: html + "<b>")

    result = asyncio.run(pipeline.execute(HookEvent.PAGE_AFTER_RENDER, "<p>", _context(tmp_path)))

    assert result == "<p><a><b>"


def test_none_return_keeps_payload(tmp_path: Path) -> None:
    pipeline = HookPipeline()
    seen: list[str] = []
    pipeline.register("markdown:before-parse", lambda raw, ctx: seen.append(raw))
    pipeline.register("markdown:before-parse", lambda raw, ctx: raw.upper())

    result = asyncio.run(pipeline.execute("markdown:before-parse", "# hi", _context(tmp_path)))

    assert seen == ["# hi"]
    assert result == "# HI"


def test_failing_handler_is_isolated(tmp_path: Path) -> None:
    pipeline = HookPipeline()
    calls: list[str] = []

    def first(html: str, ctx: HookContext) -> str:
        calls.append("first")
        return html + "!"

    def broken(html: str, ctx: HookContext) -> str:
        calls.append("broken")
        raise RuntimeError("boom")

    def last(html: str, ctx: HookContext) -> None:
        calls.append(f"last saw {html}")

    pipeline.register(HookEvent.PAGE_AFTER_RENDER, first, plugin="one")
    pipeline.register(HookEvent.PAGE_AFTER_RENDER, broken, plugin="two")
    pipeline.register(HookEvent.PAGE_AFTER_RENDER, last, plugin="three")
    context = _context(tmp_path)

    result = asyncio.run(pipeline.execute(HookEvent.PAGE_AFTER_RENDER, "x", context))

    assert result == "x!"
    assert calls == ["first", "broken", "last saw x!"]
    assert len(context.errors) == 1
    assert context.errors[0].unit == "hook page:after-render (two)"
    assert context.errors[0].message == "boom"


def test_failing_handler_cannot_corrupt_mutable_payload(tmp_path: Path) -> None:
    pipeline = HookPipeline()

    def mutate_then_fail(page_context: dict, ctx: HookContext) -> dict:
        page_context["title"] = "corrupted"
        raise ValueError("nope")

    pipeline.register(HookEvent.PAGE_BEFORE_RENDER, mutate_then_fail)
    payload = {"title": "Original"}

    result = asyncio.run(
        pipeline.execute(HookEvent.PAGE_BEFORE_RENDER, payload, _context(tmp_path))
    )

    assert result == {"title": "Original"}


def test_failing_handler_cannot_corrupt_nested_page_data(tmp_path: Path) -> None:
    pipeline = HookPipeline()
    seen: list[str] = []

    def rename_then_fail(page_context: dict, ctx: HookContext) -> dict:
        page_context["page"]["title"] = "HACKED"
        page_context["page"]["toc"].append({"id": "x"})
        raise ValueError("nope")

    def observe(page_context: dict, ctx: HookContext) -> None:
        seen.append(page_context["page"]["title"])

    pipeline.register(HookEvent.PAGE_BEFORE_RENDER, rename_then_fail)
    pipeline.register(HookEvent.PAGE_BEFORE_RENDER, observe)
    payload = {"page": {"title": "Original", "toc": []}}

    result = asyncio.run(
        pipeline.execute(HookEvent.PAGE_BEFORE_RENDER, payload, _context(tmp_path))
    )

    assert seen == ["Original"]
    assert result == {"page": {"title": "Original", "toc": []}}
    assert payload == {"page": {"title": "Original", "toc": []}}


def test_failing_handler_cannot_corrupt_asset_batch(tmp_path: Path) -> None:
    pipeline = HookPipeline()

    def drop_then_fail(batch: AssetBatch, ctx: HookContext) -> AssetBatch:
        batch.sources.clear()
        batch.destination = tmp_path / "elsewhere"
        raise RuntimeError("boom")

    pipeline.register(HookEvent.ASSETS_BEFORE_COPY, drop_then_fail)
    batch = AssetBatch(sources=[tmp_path / "assets/logo.png"], destination=tmp_path / "dist")
    context = _context(tmp_path)

    result = asyncio.run(pipeline.execute(HookEvent.ASSETS_BEFORE_COPY, batch, context))

    assert result.sources == [tmp_path / "assets/logo.png"]
    assert result.destination == tmp_path / "dist"
    assert len(context.errors) == 1


def test_successful_handler_edits_flow_to_next_handler(tmp_path: Path) -> None:
    pipeline = HookPipeline()

    def add_source(batch: AssetBatch, ctx: HookContext) -> AssetBatch:
        batch.sources.append(tmp_path / "extra.css")
        return batch

    pipeline.register(HookEvent.ASSETS_BEFORE_COPY, add_source)
    batch = AssetBatch(sources=[], destination=tmp_path / "dist")

    result = asyncio.run(pipeline.execute(HookEvent.ASSETS_BEFORE_COPY, batch, _context(tmp_path)))

    assert result.sources == [tmp_path / "extra.css"]


def test_wrong_payload_type_is_treated_as_failure(tmp_path: Path) -> None:
    pipeline = HookPipeline()
    pipeline.register(HookEvent.MARKDOWN_AFTER_PARSE, lambda doc, ctx: "<p>not a document</p>")
    context = _context(tmp_path)
    document = ParsedDocument(html="<p>ok</p>")

    result = asyncio.run(pipeline.execute(HookEvent.MARKDOWN_AFTER_PARSE, document, context))

    assert result.html == "<p>ok</p>"
    assert len(context.errors) == 1


def test_async_handlers_are_awaited(tmp_path: Path) -> None:
    pipeline = HookPipeline()

    async def slow_suffix(html: str, ctx: HookContext) -> str:
        await asyncio.sleep(0)
        return html + " async"

    pipeline.register(HookEvent.PAGE_AFTER_RENDER, slow_suffix)

    result = asyncio.run(pipeline.execute(HookEvent.PAGE_AFTER_RENDER, "html", _context(tmp_path)))

    assert result == "html async"


def test_event_without_handlers_returns_payload(tmp_path: Path) -> None:
    pipeline = HookPipeline()
    payload = ["a"]

    result = asyncio.run(pipeline.execute(HookEvent.FILES_DISCOVERED, payload, _context(tmp_path)))

    assert result is payload


def test_context_store_and_options_are_visible_to_handlers(tmp_path: Path) -> None:
    pipeline = HookPipeline()
    observed: dict[str, object] = {}

    def remember(raw: str, ctx: HookContext) -> None:
        ctx.set_data("count", ctx.get_data("count", 0) + 1)
        observed["options"] = dict(ctx.options)

    pipeline.register(HookEvent.MARKDOWN_BEFORE_PARSE, remember, plugin="counter", options={"limit": 3})
    context = _context(tmp_path)

    async def run_twice() -> None:
        await pipeline.execute(HookEvent.MARKDOWN_BEFORE_PARSE, "a", context)
        await pipeline.execute(HookEvent.MARKDOWN_BEFORE_PARSE, "b", context)

    asyncio.run(run_twice())

    assert context.get_data("count") == 2
    assert context.has_data("count")
    assert observed["options"] == {"limit": 3}
    assert context.options == {}
    context.delete_data("count")
    assert not context.has_data("count")


def test_concurrent_events_see_their_own_current_page(tmp_path: Path) -> None:
    pipeline = HookPipeline()
    seen: list[tuple[str, str]] = []

    async def record(raw: str, ctx: HookContext) -> None:
        await asyncio.sleep(0)
        seen.append((raw, ctx.current_page.relative_path if ctx.current_page else ""))

    pipeline.register(HookEvent.MARKDOWN_BEFORE_PARSE, record)
    context = _context(tmp_path)
    pages = [
        PageSource(tmp_path / name, "en", name, name, name, 0) for name in ("a.md", "b.md", "c.md")
    ]

    async def run_all() -> None:
        await asyncio.gather(
            *(
                pipeline.execute(HookEvent.MARKDOWN_BEFORE_PARSE, page.relative_path, context, page=page)
                for page in pages
            )
        )

    asyncio.run(run_all())

    assert sorted(seen) == [("a.md", "a.md"), ("b.md", "b.md"), ("c.md", "c.md")]
    assert context.current_page is None
