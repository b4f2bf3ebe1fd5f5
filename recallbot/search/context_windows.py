# recallbot/search/context_windows.py
"""Context windows around search hits: fetch, merge, format."""

import logging
from typing import Dict, List, Optional, Sequence

from ..contracts.storage import IMessageStore
from ..core.text import truncate
from ..models.context import ContextMessage, ContextWindow

logger = logging.getLogger(__name__)

MATCH_MARKER = "→"
CONTEXT_MARKER = " "


def _ordered(messages: Sequence[ContextMessage]) -> List[ContextMessage]:
    unique: Dict[int, ContextMessage] = {}
    for message in messages:
        unique.setdefault(message.message_id, message)
    return sorted(unique.values(), key=lambda m: (m.date_utc, m.message_id))


def merge_windows(windows: List[ContextWindow]) -> List[ContextWindow]:
    """
    Merge windows sharing any message id, transitively.

    The merged window keeps the center of its earliest input window (inputs
    arrive in relevance order) and the union of matched ids. Output order
    follows the first input window of each group.
    """
    parent = list(range(len(windows)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    owner: Dict[int, int] = {}
    for i, window in enumerate(windows):
        for message_id in window.message_ids:
            if message_id in owner:
                a, b = find(owner[message_id]), find(i)
                if a != b:
                    parent[max(a, b)] = min(a, b)
            else:
                owner[message_id] = i

    groups: Dict[int, List[ContextWindow]] = {}
    for i, window in enumerate(windows):
        groups.setdefault(find(i), []).append(window)

    merged = []
    for root in sorted(groups):
        members = groups[root]
        if len(members) == 1:
            merged.append(members[0])
            continue
        matched = set()
        for member in members:
            matched |= member.matched_message_ids
        merged.append(ContextWindow(
            center_message_id=members[0].center_message_id,
            messages=_ordered([m for member in members for m in member.messages]),
            matched_message_ids=matched,
        ))
    return merged


class ContextWindowAssembler:
    """
    Builds readable conversation context around search hits for the answer generator.
    """

    def __init__(
        self,
        store: IMessageStore,
        window_size: int = 2,
        max_targets: int = 10,
        center_max_chars: int = 500,
        context_max_chars: int = 200,
        char_budget: int = 16000,
    ):
        self.store = store
        self.window_size = window_size
        self.max_targets = max_targets
        self.center_max_chars = center_max_chars
        self.context_max_chars = context_max_chars
        self.char_budget = char_budget

    def get_context_window(self, chat_id: int, message_id: int, window_size: int) -> Optional[ContextWindow]:
        """One window, or None when the target is missing or the store fails."""
        try:
            messages = self.store.get_message_window(chat_id, message_id, before=window_size, after=window_size)
        except Exception as e:
            logger.warning("Failed to fetch context window for message %s in chat %s: %s", message_id, chat_id, e)
            return None

        messages = _ordered(messages)
        if not any(m.message_id == message_id for m in messages):
            return None

        return ContextWindow(center_message_id=message_id, messages=messages)

    def get_merged_context_windows(
        self,
        chat_id: int,
        message_ids: Sequence[int],
        window_size: Optional[int] = None,
    ) -> List[ContextWindow]:
        """
        Windows around up to `max_targets` distinct hits, overlaps merged.

        A window whose fetch fails is dropped; the rest are still returned.
        """
        size = self.window_size if window_size is None else window_size
        if size < 0:
            raise ValueError("window_size must be >= 0")

        targets: List[int] = []
        for message_id in message_ids:
            if message_id not in targets:
                targets.append(message_id)
            if len(targets) >= self.max_targets:
                break

        windows = []
        for message_id in targets:
            window = self.get_context_window(chat_id, message_id, size)
            if window is not None:
                windows.append(window)

        merged = merge_windows(windows)
        logger.info(
            "Context windows for chat %s: %d hit(s) -> %d window(s) -> %d merged",
            chat_id, len(targets), len(windows), len(merged),
        )
        return merged

    def format_message(self, message: ContextMessage, matched: bool) -> str:
        marker = MATCH_MARKER if matched else CONTEXT_MARKER
        limit = self.center_max_chars if matched else self.context_max_chars
        text = truncate(" ".join(message.text.split()), limit)
        timestamp = message.date_utc.strftime("%H:%M")

        if message.is_forwarded:
            origin = message.forward_from_name or "unknown source"
            return f"{marker} [{timestamp}] {message.author}: [forwarded from {origin}] {text}"
        return f"{marker} [{timestamp}] {message.author}: {text}"

    def format_window(self, window: ContextWindow) -> str:
        """One line per message; matched messages marked with an arrow."""
        return "\n".join(
            self.format_message(m, m.message_id in window.matched_message_ids)
            for m in window.messages
        )

    def build_context(self, windows: List[ContextWindow], char_budget: Optional[int] = None) -> str:
        """Numbered dialog blocks, stopping before the budget would be exceeded."""
        budget = self.char_budget if char_budget is None else char_budget
        blocks: List[str] = []
        used = 0

        for number, window in enumerate(windows, 1):
            day = window.start.strftime("%d.%m.%Y") if window.start else ""
            block = f"--- Dialog #{number} ({day}) ---\n{self.format_window(window)}"
            cost = len(block) + (2 if blocks else 0)
            if used + cost > budget:
                logger.debug("Context budget reached after %d dialog(s)", len(blocks))
                break
            blocks.append(block)
            used += cost

        return "\n\n".join(blocks)
