"""Tests for sitegen.plugins."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from sitegen.config import PluginSpec, SiteConfig
from sitegen.errors import PluginError
from sitegen.hooks import HookContext, HookPipeline
from sitegen.plugins import Plugin, PluginLoader
from tests._fixtures.site_builder import SiteBuilder

BANNER_PLUGIN = """
NAME = "banner"
VERSION = "1.2.0"

settings = {}


def setup(config):
    settings.update(config)


def add_banner(html, context):
    return settings.get("text", "") + html


HOOKS = {"page:after-render": add_banner}
"""


def test_loads_file_plugin_from_plugins_dir(site_builder: SiteBuilder) -> None:
    site_builder.write({"plugins/banner.py": BANNER_PLUGIN})
    loader = PluginLoader(site_builder.path("plugins"))

    plugins = loader.load([PluginSpec(name="banner", config={"text": "<b>"})])

    assert len(plugins) == 1
    plugin = plugins[0]
    assert plugin.name == "banner"
    assert plugin.version == "1.2.0"
    assert plugin.options == {"text": "<b>"}
    assert plugin.hooks["page:after-render"]("<p>", None) == "<b><p>"
    assert [handler.plugin for handler in loader.handlers_for("page:after-render")] == ["banner"]


def test_package_plugin_is_supported(site_builder: SiteBuilder) -> None:
    site_builder.write({"plugins/pkg/__init__.py": "HOOKS = {'build:end': lambda report, ctx: None}\n"})
    loader = PluginLoader(site_builder.path("plugins"))

    plugins = loader.load([PluginSpec(name="pkg")])

    assert list(plugins[0].hooks) == ["build:end"]


def test_disabled_and_duplicate_entries_are_skipped(site_builder: SiteBuilder) -> None:
    site_builder.write({"plugins/banner.py": BANNER_PLUGIN})
    loader = PluginLoader(site_builder.path("plugins"))

    plugins = loader.load(
        [
            PluginSpec(name="banner"),
            PluginSpec(name="banner"),
            PluginSpec(name="other", enabled=False),
        ]
    )

    assert [plugin.name for plugin in plugins] == ["banner"]


def test_missing_plugin_raises(tmp_path: Path) -> None:
    loader = PluginLoader(tmp_path / "plugins")

    with pytest.raises(PluginError):
        loader.load([PluginSpec(name="does-not-exist")])


def test_plugin_import_error_raises(site_builder: SiteBuilder) -> None:
    site_builder.write({"plugins/broken.py": "raise ImportError('missing dependency')\n"})
    loader = PluginLoader(site_builder.path("plugins"))

    with pytest.raises(PluginError, match="broken"):
        loader.load([PluginSpec(name="broken")])


def test_non_callable_hook_raises(site_builder: SiteBuilder) -> None:
    site_builder.write({"plugins/bad.py": "HOOKS = {'build:end': 'not callable'}\n"})
    loader = PluginLoader(site_builder.path("plugins"))

    with pytest.raises(PluginError, match="not callable"):
        loader.load([PluginSpec(name="bad")])


def test_module_target_returning_plugin_instance(monkeypatch: pytest.MonkeyPatch, site_builder: SiteBuilder) -> None:
    site_builder.write(
        {
            "pluginpkg/__init__.py": "",
            "pluginpkg/factory.py": """
                from sitegen.plugins import Plugin


                def make():
                    return Plugin(name="made", hooks={"build:start": lambda payload, ctx: None})
            """,
        }
    )
    monkeypatch.syspath_prepend(str(site_builder.path()))

    plugins = PluginLoader().load([PluginSpec(name="made", module="pluginpkg.factory:make", config={"a": 1})])

    assert isinstance(plugins[0], Plugin)
    assert plugins[0].name == "made"
    assert plugins[0].options == {"a": 1}


def test_class_plugin_is_instantiated(monkeypatch: pytest.MonkeyPatch, site_builder: SiteBuilder) -> None:
    site_builder.write(
        {
            "classplugin.py": """
                class Counter:
                    NAME = "counter"

                    def __init__(self):
                        self.hooks = {"page:after-render": self.count}
                        self.seen = 0

                    def count(self, html, context):
                        self.seen += 1
            """,
        }
    )
    monkeypatch.syspath_prepend(str(site_builder.path()))

    plugins = PluginLoader().load([PluginSpec(name="counter", module="classplugin:Counter")])

    assert plugins[0].name == "counter"
    assert "page:after-render" in plugins[0].hooks


def test_pipeline_is_built_from_loader_handlers(site_builder: SiteBuilder, tmp_path: Path) -> None:
    site_builder.write(
        {
            "plugins/banner.py": BANNER_PLUGIN,
            "plugins/footer.py": "HOOKS = {'page:after-render': lambda html, ctx: html + '<footer>'}\n",
        }
    )
    loader = PluginLoader(site_builder.path("plugins"))
    loader.load([PluginSpec(name="banner", config={"text": "<b>"}), PluginSpec(name="footer")])
    pipeline = HookPipeline.from_loader(loader)
    context = HookContext(SiteConfig(root=tmp_path), output_dir=tmp_path / "dist")

    html = asyncio.run(pipeline.execute("page:after-render", "<p>", context))

    assert loader.events() == ["page:after-render"]
    assert html == "<b><p><footer>"
