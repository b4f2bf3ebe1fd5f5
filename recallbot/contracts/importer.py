# recallbot/contracts/importer.py
"""Abstract interface for chat export importers."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator

from ..models.message import MessageRecord


class IImporter(ABC):
    """Converts a chat export into a stream of MessageRecord."""

    @abstractmethod
    def supports_format(self, format_id: str) -> bool:
        """Check if this importer can handle the given format identifier."""
        pass

    @abstractmethod
    def import_data(self, source: Path) -> Iterator[MessageRecord]:
        """
        Import data from source and yield messages.

        Raises:
            ValueError: If source format is incompatible
            FileNotFoundError: If source doesn't exist
        """
        pass

    @abstractmethod
    def get_metadata(self, source: Path) -> dict:
        """
        Extract metadata from source without full import.

        Returns:
            Dict with keys like 'chat_name', 'total_messages', 'date_range'
        """
        pass
