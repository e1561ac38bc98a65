"""Startup Exchange: pairwise ratings and a virtual market priced from them."""

__version__ = "1.0.0"
