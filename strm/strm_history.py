"""
Session history: an append-only list of prepared nodes, addressed 1-based.
"""
from typing import List, Optional


class History:
    def __init__(self):
        self._entries: List = []

    def add(self, node) -> int:
        """Append a prepared node and return its 1-based index."""
        self._entries.append(node)
        return len(self._entries)

    def at(self, index: int):
        """The `index`-th entry; negative indices count from the end."""
        if index < 0:
            index += len(self._entries) + 1
        if 1 <= index <= len(self._entries):
            return self._entries[index - 1]
        return None

    def last(self) -> Optional[object]:
        return self._entries[-1] if self._entries else None

    def clear(self):
        self._entries = []

    def __len__(self):
        return len(self._entries)
