"""Semantic search and incremental vector indexing for novel projects."""

__version__ = "0.1.0"
