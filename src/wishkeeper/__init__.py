"""Wish lists with manual priority order, grouped into folders."""

__version__ = "0.1.0"
