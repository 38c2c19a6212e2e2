"""Configuration loading for sitegen (sitegen.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .changes import PathConventions
from .errors import ConfigError

CONFIG_FILENAME = "sitegen.yml"
_STRICT_ENVIRONMENTS = {"production", "prod"}


@dataclass
class ProjectConfig:
    """Site identity used as page defaults."""

    title: str = "Documentation"
    description: str = ""
    base_url: Optional[str] = None


@dataclass
class BuildConfig:
    """Directory layout and build behaviour."""

    content_dir: str = "content"
    output_dir: str = "dist"
    templates_dir: str = "templates"
    theme_templates_dir: Optional[str] = None
    styles_dir: str = "styles"
    scripts_dir: str = "scripts"
    assets_dir: str = "assets"
    plugins_dir: str = "plugins"
    locales_dir: str = "locales"
    max_depth: int = 10
    default_template: str = "page.html"
    global_templates: List[str] = field(default_factory=list)
    strict: bool = False


@dataclass
class LanguageConfig:
    """Locale settings; two or more available locales enable multilingual mode."""

    locale: str = "en"
    available: List[str] = field(default_factory=list)
    strings: Dict[str, Dict[str, str]] = field(default_factory=dict)

    @property
    def multilingual(self) -> bool:
        return len(self.available) > 1


@dataclass
class WatchConfig:
    """Watch mode tuning."""

    debounce_ms: int = 300


@dataclass
class PluginSpec:
    """One entry of the `plugins:` list."""

    name: str
    enabled: bool = True
    config: Dict[str, Any] = field(default_factory=dict)
    module: Optional[str] = None


@dataclass
class SiteConfig:
    """Represents the high-level settings defined in sitegen.yml."""

    root: Path
    config_path: Optional[Path] = None
    project: ProjectConfig = field(default_factory=ProjectConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    language: LanguageConfig = field(default_factory=LanguageConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    plugins: List[PluginSpec] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def resolve(self, relative: str) -> Path:
        return (self.root / relative).resolve()

    @property
    def content_root(self) -> Path:
        return self.resolve(self.build.content_dir)

    @property
    def output_root(self) -> Path:
        return self.resolve(self.build.output_dir)

    @property
    def plugins_root(self) -> Path:
        return self.resolve(self.build.plugins_dir)

    @property
    def locales_root(self) -> Path:
        return self.resolve(self.build.locales_dir)

    def template_roots(self) -> List[Path]:
        roots = [self.resolve(self.build.templates_dir)]
        if self.build.theme_templates_dir:
            roots.append(self.resolve(self.build.theme_templates_dir))
        return roots

    @property
    def strict(self) -> bool:
        env = os.environ.get("SITEGEN_ENV", "").strip().lower()
        return self.build.strict or env in _STRICT_ENVIRONMENTS

    def path_conventions(self) -> PathConventions:
        config_path = self.config_path or (self.root / CONFIG_FILENAME)
        return PathConventions(
            config_path=config_path.resolve(),
            content_root=self.content_root,
            template_roots=tuple(self.template_roots()),
            style_roots=(self.resolve(self.build.styles_dir),),
            script_roots=(self.resolve(self.build.scripts_dir),),
            asset_roots=(self.resolve(self.build.assets_dir),),
            plugin_root=self.plugins_root,
        )


def load_config(config_path: Path) -> SiteConfig:
    """Load configuration from disk; a missing file yields defaults."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return SiteConfig(root=root, config_path=config_file)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    project_data = _as_dict(data.get("project"))
    defaults = ProjectConfig()
    project = ProjectConfig(
        title=_as_str(project_data.get("title")) or defaults.title,
        description=_as_str(project_data.get("description")) or defaults.description,
        base_url=_as_str(project_data.get("base_url")),
    )

    build_data = _as_dict(data.get("build"))
    build = BuildConfig()
    if build_data:
        build.content_dir = _as_str(build_data.get("content_dir")) or build.content_dir
        build.output_dir = _as_str(build_data.get("output_dir")) or build.output_dir
        build.templates_dir = _as_str(build_data.get("templates_dir")) or build.templates_dir
        build.theme_templates_dir = _as_str(build_data.get("theme_templates_dir"))
        build.styles_dir = _as_str(build_data.get("styles_dir")) or build.styles_dir
        build.scripts_dir = _as_str(build_data.get("scripts_dir")) or build.scripts_dir
        build.assets_dir = _as_str(build_data.get("assets_dir")) or build.assets_dir
        build.plugins_dir = _as_str(build_data.get("plugins_dir")) or build.plugins_dir
        build.locales_dir = _as_str(build_data.get("locales_dir")) or build.locales_dir
        build.default_template = (
            _as_str(build_data.get("default_template")) or build.default_template
        )
        build.global_templates = _as_str_list(build_data.get("global_templates"))
        build.strict = _as_bool(build_data.get("strict")) or False
        max_depth = _as_int(build_data.get("max_depth"))
        if max_depth is not None:
            if max_depth < 0:
                raise ConfigError("build.max_depth must be zero or positive")
            build.max_depth = max_depth

    language_data = _as_dict(data.get("language"))
    language = LanguageConfig()
    if language_data:
        language.locale = _as_str(language_data.get("locale")) or language.locale
        language.available = _as_str_list(language_data.get("available"))
        language.strings = _parse_strings(language_data.get("strings"))

    watch_data = _as_dict(data.get("watch"))
    watch = WatchConfig()
    debounce = _as_int(watch_data.get("debounce_ms")) if watch_data else None
    if debounce is not None:
        watch.debounce_ms = max(debounce, 0)

    plugins = _parse_plugins(data.get("plugins"))

    known = {"project", "build", "language", "watch", "plugins"}
    extra = {key: value for key, value in data.items() if key not in known}

    return SiteConfig(
        root=root,
        config_path=config_file,
        project=project,
        build=build,
        language=language,
        watch=watch,
        plugins=plugins,
        extra=extra,
    )


def _parse_plugins(value: Any) -> List[PluginSpec]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError("plugins must be a list")
    specs: List[PluginSpec] = []
    for item in value:
        if isinstance(item, str):
            specs.append(PluginSpec(name=item))
            continue
        entry = _as_dict(item)
        name = _as_str(entry.get("name"))
        if not name:
            raise ConfigError("Every plugin entry needs a name")
        enabled = _as_bool(entry.get("enabled"))
        specs.append(
            PluginSpec(
                name=name,
                enabled=True if enabled is None else enabled,
                config=_as_dict(entry.get("config")),
                module=_as_str(entry.get("module")),
            )
        )
    return specs


def _parse_strings(value: Any) -> Dict[str, Dict[str, str]]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError("language.strings must map locales to string tables")
    strings: Dict[str, Dict[str, str]] = {}
    for locale, table in value.items():
        if not isinstance(table, dict):
            raise ConfigError(f"language.strings.{locale} must be a mapping")
        strings[str(locale)] = {str(key): str(text) for key, text in table.items()}
    return strings


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "BuildConfig",
    "CONFIG_FILENAME",
    "LanguageConfig",
    "PluginSpec",
    "ProjectConfig",
    "SiteConfig",
    "WatchConfig",
    "load_config",
]
