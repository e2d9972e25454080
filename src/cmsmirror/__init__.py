"""Incremental CMS mirroring for static site builds."""

__version__ = "0.1.0"

__all__ = ["__version__"]
