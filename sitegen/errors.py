"""Exception hierarchy shared by the build engine."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class SiteGenError(RuntimeError):
    """Base class for sitegen failures that abort the current operation."""

    code = "SITEGEN_ERROR"

    def __init__(self, message: str, details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": str(self),
            "code": self.code,
            "details": dict(self.details),
        }


class ConfigError(SiteGenError):
    """Raised when the configuration file cannot be parsed."""

    code = "CONFIG_ERROR"


class ScanError(SiteGenError):
    """Raised when the content tree cannot be scanned safely."""

    code = "SCAN_ERROR"


class PathTraversalError(ScanError):
    """A content path tried to escape the content root."""


class DepthLimitError(ScanError):
    """The content tree is nested deeper than the configured maximum."""


class PluginError(SiteGenError):
    """Raised when a configured plugin cannot be loaded."""

    code = "PLUGIN_ERROR"


class PageRenderError(SiteGenError):
    """Wraps any failure while producing a single page."""

    code = "RENDER_ERROR"

    def __init__(self, message: str, source: str, details: Optional[Mapping[str, Any]] = None) -> None:
        merged = {"source": source}
        merged.update(details or {})
        super().__init__(message, merged)
        self.source = source


class BuildFailedError(SiteGenError):
    """Raised in strict mode when a build finished with recorded errors."""

    code = "BUILD_FAILED"

    def __init__(self, message: str, report: Any = None) -> None:
        super().__init__(message)
        self.report = report


__all__ = [
    "BuildFailedError",
    "ConfigError",
    "DepthLimitError",
    "PageRenderError",
    "PathTraversalError",
    "PluginError",
    "ScanError",
    "SiteGenError",
]
