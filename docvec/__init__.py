"""Semantic documentation retrieval: section parsing, chunking, embedding and search."""

__version__ = "0.1.0"
