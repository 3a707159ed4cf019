"""Span-aware metric labelling and a terminal observer for metrics streams."""

__version__ = "0.1.0"
__all__ = ["__version__"]