# recallbot/importers/telegram.py
"""Telegram Desktop JSON export importer."""

import json
import logging
import zipfile
from pathlib import Path
from datetime import datetime, timezone
from typing import Iterator, Optional, Dict, Any, List, Union

from ..contracts.importer import IImporter
from ..models.message import MessageRecord

logger = logging.getLogger(__name__)

EXPORT_FILE = 'result.json'


def flatten_text(text: Union[str, List[Any], None]) -> str:
    """
    Telegram stores formatted text as a list of plain strings and entity
    dicts ({"type": "bold", "text": "..."}); join them into one string.
    """
    if text is None:
        return ""
    if isinstance(text, str):
        return text

    parts = []
    for entity in text:
        if isinstance(entity, str):
            parts.append(entity)
        elif isinstance(entity, dict):
            parts.append(entity.get('text', ''))
    return "".join(parts)


def parse_peer_id(value: Any) -> int:
    """'user123456' / 'channel987' / 123 -> numeric id, 0 if unparseable."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value

    digits = "".join(ch for ch in str(value) if ch.isdigit())
    return int(digits) if digits else 0


class TelegramJsonImporter(IImporter):
    """
    Imports the machine-readable JSON export of Telegram Desktop.

    Accepts the export directory, its result.json, or a ZIP of either.
    Both single-chat exports and full-account exports ("chats": {"list": [...]})
    are understood. Service messages (joins, pins, calls) are skipped.

    Config:
        chat_id: Override the chat id taken from the export (single-chat exports only)
    """

    SUPPORTED_FORMATS = ['telegram', 'telegram_json', 'tdesktop']

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}

    def supports_format(self, format_id: str) -> bool:
        return format_id.lower() in self.SUPPORTED_FORMATS

    def get_metadata(self, source: Path) -> dict:
        data = self._load(source)
        chats = self._chats(data)

        dates = []
        total = 0
        for chat in chats:
            for raw in chat.get('messages', []):
                if raw.get('type', 'message') != 'message':
                    continue
                total += 1
                date = self._parse_date(raw)
                if date is not None:
                    dates.append(date)

        return {
            'format': 'telegram',
            'chat_name': chats[0].get('name') if len(chats) == 1 else None,
            'total_chats': len(chats),
            'total_messages': total,
            'date_range': {
                'start': min(dates).isoformat(),
                'end': max(dates).isoformat(),
            } if dates else None,
        }

    def import_data(self, source: Path) -> Iterator[MessageRecord]:
        data = self._load(source)
        chats = self._chats(data)
        # Message ids are only unique within a chat
        if self.config.get('chat_id') is not None and len(chats) > 1:
            raise ValueError(
                f"chat_id override needs a single-chat export, this one holds {len(chats)} chats"
            )
        for chat in chats:
            yield from self._process_chat(chat)

    def _process_chat(self, chat: dict) -> Iterator[MessageRecord]:
        chat_id = self.config.get('chat_id', chat.get('id'))
        if chat_id is None:
            raise ValueError(f"Chat '{chat.get('name', 'unknown')}' has no id; set importer chat_id")

        skipped = 0
        for raw in chat.get('messages', []):
            record = self._parse_message(int(chat_id), raw)
            if record is None:
                skipped += 1
                continue
            yield record

        if skipped:
            logger.debug("Chat %s: skipped %d service/invalid message(s)", chat_id, skipped)

    def _parse_message(self, chat_id: int, raw: dict) -> Optional[MessageRecord]:
        if raw.get('type', 'message') != 'message' or 'id' not in raw:
            return None

        date = self._parse_date(raw)
        if date is None:
            return None

        forwarded = 'forwarded_from' in raw
        forward_name = raw.get('forwarded_from')
        # The export keeps the name but not the kind of origin
        origin = 'hidden_user' if forwarded and forward_name is None else None

        return MessageRecord(
            chat_id=chat_id,
            id=int(raw['id']),
            text=flatten_text(raw.get('text')),
            date_utc=date,
            from_user_id=parse_peer_id(raw.get('from_id')),
            display_name=raw.get('from') or None,
            reply_to_message_id=raw.get('reply_to_message_id'),
            is_forwarded=forwarded,
            forward_origin_type=origin,
            forward_from_name=forward_name,
        )

    @staticmethod
    def _parse_date(raw: dict) -> Optional[datetime]:
        if raw.get('date_unixtime'):
            return datetime.fromtimestamp(int(raw['date_unixtime']), tz=timezone.utc)
        if raw.get('date'):
            # Older exports carry only local time without offset
            return datetime.fromisoformat(raw['date']).replace(tzinfo=timezone.utc)
        return None

    @staticmethod
    def _chats(data: dict) -> List[dict]:
        if 'messages' in data:
            return [data]
        chats = data.get('chats', {})
        if isinstance(chats, dict) and 'list' in chats:
            return list(chats['list'])
        raise ValueError("Not a Telegram export: no 'messages' or 'chats' key")

    @staticmethod
    def _load(source: Path) -> dict:
        source = Path(source)
        if not source.exists():
            raise FileNotFoundError(f"Source not found: {source}")

        if source.is_dir():
            source = source / EXPORT_FILE
            if not source.exists():
                raise ValueError(f"{EXPORT_FILE} not found in export directory")

        if zipfile.is_zipfile(source):
            with zipfile.ZipFile(source, 'r') as zf:
                names = [n for n in zf.namelist() if n.rsplit('/', 1)[-1] == EXPORT_FILE]
                if not names:
                    raise ValueError(f"{EXPORT_FILE} not found in ZIP")
                raw = zf.read(sorted(names, key=len)[0])
        else:
            raw = source.read_bytes()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {source}: {e}")

        if not isinstance(data, dict):
            raise ValueError("Not a Telegram export: root is not an object")
        return data
