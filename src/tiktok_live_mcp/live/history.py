"""Fixed-capacity ring buffer of recent events for one subscription.

One buffer per event kind. Appending past capacity drops the oldest record;
the remaining records keep their arrival order.
"""

from collections import deque
from typing import Deque, List

from .events import EventRecord

DEFAULT_HISTORY_CAPACITY = 100


class HistoryBuffer:
    """Insertion-ordered FIFO store of at most ``capacity`` records."""

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if capacity <= 0:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._items: Deque[EventRecord] = deque(maxlen=capacity)

    def append(self, record: EventRecord) -> None:
        """Append at the tail, evicting from the head when full."""
        self._items.append(record)

    def snapshot(self, count: int) -> List[EventRecord]:
        """Return the last ``count`` records, oldest first, without mutating."""
        count = max(0, int(count))
        if count == 0:
            return []
        items = list(self._items)
        return items[-count:]

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def size(self) -> int:
        """Number of records currently buffered."""
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)
