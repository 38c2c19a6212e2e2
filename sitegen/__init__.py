"""Static documentation-site generator with incremental rebuilds."""

__version__ = "0.1.0"
