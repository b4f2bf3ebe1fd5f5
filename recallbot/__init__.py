# recallbot/__init__.py
"""recallbot - fusion search and embedding indexing over chat archives."""

__version__ = "0.1.0"
