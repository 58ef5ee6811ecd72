"""Paged B-tree key-value storage, an LRU cache, and a delta-compressing object store."""

__version__ = "0.1.0"