# recallbot/models/message.py
"""Stored chat message."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass
class MessageRecord:
    """
    A chat message as persisted by the store.

    Ids are Telegram-style integers, unique within a chat.
    """

    chat_id: int
    id: int
    text: str
    date_utc: datetime
    from_user_id: int = 0
    username: Optional[str] = None
    display_name: Optional[str] = None
    reply_to_message_id: Optional[int] = None

    # Forwarded-message provenance
    is_forwarded: bool = False
    forward_origin_type: Optional[str] = None  # 'user', 'channel', 'hidden_user', 'chat'
    forward_from_name: Optional[str] = None

    def __post_init__(self):
        if self.date_utc.tzinfo is None:
            self.date_utc = self.date_utc.replace(tzinfo=timezone.utc)

    @property
    def author(self) -> str:
        """Best available human-readable author name."""
        if self.display_name:
            return self.display_name
        if self.username:
            return self.username
        return f"user{self.from_user_id}" if self.from_user_id else "unknown"

    def to_dict(self) -> dict:
        return {
            'chat_id': self.chat_id,
            'id': self.id,
            'text': self.text,
            'date_utc': self.date_utc.isoformat(),
            'from_user_id': self.from_user_id,
            'username': self.username,
            'display_name': self.display_name,
            'reply_to_message_id': self.reply_to_message_id,
            'is_forwarded': self.is_forwarded,
            'forward_origin_type': self.forward_origin_type,
            'forward_from_name': self.forward_from_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MessageRecord':
        return cls(
            chat_id=data['chat_id'],
            id=data['id'],
            text=data['text'],
            date_utc=datetime.fromisoformat(data['date_utc']),
            from_user_id=data.get('from_user_id', 0),
            username=data.get('username'),
            display_name=data.get('display_name'),
            reply_to_message_id=data.get('reply_to_message_id'),
            is_forwarded=data.get('is_forwarded', False),
            forward_origin_type=data.get('forward_origin_type'),
            forward_from_name=data.get('forward_from_name'),
        )
