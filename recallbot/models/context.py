# recallbot/models/context.py
"""Context window models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Set


@dataclass
class ContextMessage:
    """A message inside a context window, ordered by date_utc."""

    message_id: int
    chat_id: int
    author: str
    text: str
    date_utc: datetime
    from_user_id: int = 0
    is_forwarded: bool = False
    forward_origin_type: Optional[str] = None
    forward_from_name: Optional[str] = None


# Sliding-window embeddings reuse the same shape
WindowMessage = ContextMessage


@dataclass
class ContextWindow:
    """
    A contiguous run of messages around one or more search hits.

    messages are sorted by date_utc with unique message_id, and the
    center message is always among them.
    """

    center_message_id: int
    messages: List[ContextMessage] = field(default_factory=list)
    matched_message_ids: Set[int] = field(default_factory=set)

    def __post_init__(self):
        self.matched_message_ids.add(self.center_message_id)

    @property
    def message_ids(self) -> Set[int]:
        return {m.message_id for m in self.messages}

    @property
    def start(self) -> Optional[datetime]:
        return self.messages[0].date_utc if self.messages else None

    def contains(self, message_id: int) -> bool:
        return any(m.message_id == message_id for m in self.messages)


@dataclass
class MessageWindow:
    """A sliding window of one dialog, embedded as a single context vector."""

    chat_id: int
    center_message_id: int
    window_start_id: int
    window_end_id: int
    messages: List[WindowMessage] = field(default_factory=list)
