# recallbot/vectorizers/__init__.py
"""Embedding providers."""

from .http_embeddings import HttpEmbeddingVectorizer

__all__ = ["HttpEmbeddingVectorizer"]
