"""Prop-firm account tracker and trading journal."""

__version__ = "0.1.0"
