"""Tests for sitegen.planner."""

from __future__ import annotations

from pathlib import Path

from sitegen.content import ContentRegistry
from sitegen.graph import DependencyGraph
from sitegen.models import AssetCopyOnly, ChangeSet, FullRebuild, PageSource, SelectiveRebuild
from sitegen.planner import global_template_matcher, name_heuristic, plan_rebuild

ROOT = Path("/site")
CONTENT = ROOT / "content"
PAGE_TEMPLATE = ROOT / "templates" / "page.html"
LAYOUT = ROOT / "templates" / "layout.html"
SIDEBAR = ROOT / "templates" / "sidebar.html"


def _page(relative: str) -> PageSource:
    return PageSource(
        source_path=CONTENT / relative,
        locale="en",
        page_path=relative,
        output_path=relative.replace(".md", ".html"),
        relative_path=relative,
        depth=relative.count("/"),
    )


def _fixture() -> tuple[DependencyGraph, ContentRegistry, PageSource, PageSource]:
    index = _page("index.md")
    guide = _page("guide.md")
    registry = ContentRegistry(CONTENT, [index, guide])
    graph = DependencyGraph()
    for page in (index, guide):
        graph.add_dependency(page.node_key, PAGE_TEMPLATE)
        graph.add_dependency(page.node_key, LAYOUT)
    return graph, registry, index, guide


def test_template_change_rebuilds_exactly_its_dependents() -> None:
    graph, registry, index, guide = _fixture()

    plan = plan_rebuild(ChangeSet(template=[LAYOUT]), graph, registry)

    assert isinstance(plan, SelectiveRebuild)
    assert plan.pages == frozenset({index, guide})
    assert not plan.copy_assets


def test_content_change_rebuilds_only_that_page() -> None:
    graph, registry, _, guide = _fixture()

    plan = plan_rebuild(ChangeSet(content=[guide.source_path]), graph, registry)

    assert isinstance(plan, SelectiveRebuild)
    assert plan.pages == frozenset({guide})


def test_config_change_always_forces_full_rebuild() -> None:
    graph, registry, _, guide = _fixture()
    changes = ChangeSet(
        content=[guide.source_path],
        asset=[ROOT / "assets" / "logo.png"],
        config=[ROOT / "sitegen.yml"],
    )

    plan = plan_rebuild(changes, graph, registry)

    assert isinstance(plan, FullRebuild)
    assert "config" in plan.reason


def test_plugin_change_forces_full_rebuild() -> None:
    graph, registry, _, _ = _fixture()

    plan = plan_rebuild(ChangeSet(plugin=[ROOT / "plugins" / "toc.py"]), graph, registry)

    assert isinstance(plan, FullRebuild)


def test_untracked_global_template_forces_full_rebuild() -> None:
    graph, registry, _, _ = _fixture()
    partial = ROOT / "templates" / "partials" / "footer.html"

    plan = plan_rebuild(ChangeSet(template=[partial]), graph, registry)

    assert isinstance(plan, FullRebuild)


def test_untracked_ordinary_template_is_skipped() -> None:
    graph, registry, _, _ = _fixture()

    plan = plan_rebuild(ChangeSet(template=[SIDEBAR]), graph, registry)

    assert isinstance(plan, AssetCopyOnly)


def test_new_content_file_forces_full_rebuild() -> None:
    graph, registry, _, _ = _fixture()

    plan = plan_rebuild(ChangeSet(content=[CONTENT / "new.md"]), graph, registry)

    assert isinstance(plan, FullRebuild)


def test_dependent_missing_from_registry_forces_full_rebuild() -> None:
    graph, registry, _, _ = _fixture()
    graph.add_dependency((CONTENT / "gone.md").as_posix(), SIDEBAR)

    plan = plan_rebuild(ChangeSet(template=[SIDEBAR]), graph, registry)

    assert isinstance(plan, FullRebuild)


def test_fifty_assets_copy_only() -> None:
    graph, registry, _, _ = _fixture()
    assets = [ROOT / "assets" / f"image-{index}.png" for index in range(50)]

    plan = plan_rebuild(ChangeSet(asset=assets), graph, registry)

    assert isinstance(plan, AssetCopyOnly)


def test_content_plus_style_rebuilds_and_copies() -> None:
    graph, registry, index, _ = _fixture()

    plan = plan_rebuild(
        ChangeSet(content=[index.source_path], style=[ROOT / "styles" / "site.css"]),
        graph,
        registry,
    )

    assert isinstance(plan, SelectiveRebuild)
    assert plan.copy_assets
    assert plan.pages == frozenset({index})


def test_name_heuristic_only_looks_at_the_template_path_tail() -> None:
    assert name_heuristic(Path("/home/base/site/templates/layout.html"))
    assert name_heuristic(Path("/srv/site/templates/partials/nav.html"))
    assert not name_heuristic(Path("/home/database/site/templates/page.html"))


def test_configured_global_templates_replace_heuristic() -> None:
    matcher = global_template_matcher(["templates/shell/*.html", "chrome.html"], ROOT)

    assert matcher(ROOT / "templates" / "shell" / "frame.html")
    assert matcher(ROOT / "templates" / "chrome.html")
    assert not matcher(LAYOUT)
