"""Lock-guarded registry of live subscriptions keyed by subscription key."""

import threading
from typing import Dict, List, Optional

from .subscription import Subscription


class SubscriptionRegistry:
    """Map of key to ``Subscription`` with at most one entry per key.

    Only membership is guarded here; each subscription guards its own fields.
    """

    def __init__(self):
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(key)

    def add(self, subscription: Subscription) -> Subscription:
        """Insert ``subscription`` unless the key is taken; return the stored entry."""
        with self._lock:
            return self._subscriptions.setdefault(subscription.key, subscription)

    def pop(self, key: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.pop(key, None)

    def discard(self, subscription: Subscription) -> bool:
        """Remove ``subscription`` only if it is still the entry for its key."""
        with self._lock:
            if self._subscriptions.get(subscription.key) is subscription:
                del self._subscriptions[subscription.key]
                return True
            return False

    def holds(self, subscription: Subscription) -> bool:
        with self._lock:
            return self._subscriptions.get(subscription.key) is subscription

    def snapshot(self) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.values())

    def clear(self) -> List[Subscription]:
        with self._lock:
            removed = list(self._subscriptions.values())
            self._subscriptions.clear()
            return removed

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._subscriptions

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)
