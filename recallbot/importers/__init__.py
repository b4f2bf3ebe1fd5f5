"""Chat export importers."""

from .telegram import TelegramJsonImporter

__all__ = ['TelegramJsonImporter']
