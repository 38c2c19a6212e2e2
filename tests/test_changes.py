"""Tests for sitegen.changes."""

from __future__ import annotations

from pathlib import Path

import pytest

from sitegen.changes import ChangeClassifier, PathConventions, classify_changes


@pytest.fixture
def conventions(tmp_path: Path) -> PathConventions:
    root = tmp_path.resolve()
    return PathConventions(
        config_path=root / "sitegen.yml",
        content_root=root / "content",
        template_roots=(root / "templates", root / "theme" / "templates"),
        style_roots=(root / "styles",),
        script_roots=(root / "scripts",),
        asset_roots=(root / "assets",),
        plugin_root=root / "plugins",
    )


def test_each_path_lands_in_exactly_one_bucket(tmp_path: Path, conventions: PathConventions) -> None:
    root = tmp_path.resolve()
    changes = classify_changes(
        [
            root / "content" / "guide.md",
            root / "templates" / "page.html",
            root / "theme" / "templates" / "partials" / "nav.html",
            root / "styles" / "site.css",
            root / "scripts" / "app.js",
            root / "assets" / "logo.png",
            root / "plugins" / "toc.py",
            root / "sitegen.yml",
        ],
        conventions,
    )

    assert changes.content == [root / "content" / "guide.md"]
    assert changes.template == [
        root / "templates" / "page.html",
        root / "theme" / "templates" / "partials" / "nav.html",
    ]
    assert changes.style == [root / "styles" / "site.css"]
    assert changes.script == [root / "scripts" / "app.js"]
    assert changes.asset == [root / "assets" / "logo.png"]
    assert changes.plugin == [root / "plugins" / "toc.py"]
    assert changes.config == [root / "sitegen.yml"]
    assert changes.ignored == []


def test_yaml_anywhere_is_config(tmp_path: Path, conventions: PathConventions) -> None:
    root = tmp_path.resolve()
    changes = classify_changes([root / "content" / "data" / "nav.yaml"], conventions)

    assert changes.config == [root / "content" / "data" / "nav.yaml"]
    assert changes.content == []


def test_non_markdown_inside_content_is_an_asset(tmp_path: Path, conventions: PathConventions) -> None:
    root = tmp_path.resolve()
    changes = classify_changes([root / "content" / "img" / "diagram.svg"], conventions)

    assert changes.asset == [root / "content" / "img" / "diagram.svg"]


def test_non_style_inside_styles_is_an_asset(tmp_path: Path, conventions: PathConventions) -> None:
    root = tmp_path.resolve()
    changes = classify_changes([root / "styles" / "fonts" / "body.woff2"], conventions)

    assert changes.asset == [root / "styles" / "fonts" / "body.woff2"]
    assert changes.style == []


def test_outside_known_roots_falls_back_to_suffix(tmp_path: Path, conventions: PathConventions) -> None:
    root = tmp_path.resolve()
    changes = classify_changes(
        [root / "extra" / "notes.md", root / "extra" / "print.css", root / "Makefile"],
        conventions,
    )

    assert changes.content == [root / "extra" / "notes.md"]
    assert changes.style == [root / "extra" / "print.css"]
    assert changes.ignored == [root / "Makefile"]


def test_transient_editor_files_are_ignored(tmp_path: Path, conventions: PathConventions) -> None:
    root = tmp_path.resolve()
    changes = classify_changes(
        [root / "content" / "guide.md.swp", root / "templates" / "page.html~"],
        conventions,
    )

    assert changes.is_empty()
    assert len(changes.ignored) == 2


def test_duplicate_paths_are_collapsed(tmp_path: Path, conventions: PathConventions) -> None:
    root = tmp_path.resolve()
    path = root / "content" / "guide.md"
    changes = ChangeClassifier(conventions).classify([path, str(path), path])

    assert changes.content == [path]


def test_summary_lists_non_empty_buckets(tmp_path: Path, conventions: PathConventions) -> None:
    root = tmp_path.resolve()
    changes = classify_changes([root / "content" / "a.md", root / "content" / "b.md"], conventions)

    assert "content" in changes.summary()
    assert "2" in changes.summary()
