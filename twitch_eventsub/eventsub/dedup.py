from __future__ import annotations

from collections import OrderedDict


class RecentMessageCache:
    """Bounded window of recently seen message ids.

    Twitch delivers at least once; remembering the last ``capacity`` message
    ids reduces that to at most one observable handler invocation. When full,
    the oldest id is evicted.

    Example:
        >>> cache = RecentMessageCache(2)
        >>> cache.check_and_add("a"), cache.check_and_add("a")
        (False, True)
    """

    def __init__(self, capacity: int = 1000) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._seen: OrderedDict[str, None] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._seen

    def check_and_add(self, message_id: str) -> bool:
        """Record a message id.

        Returns:
            bool: True if the id was already in the window (duplicate).
        """
        if message_id in self._seen:
            return True
        if len(self._seen) >= self._capacity:
            self._seen.popitem(last=False)
        self._seen[message_id] = None
        return False

    def discard(self, message_id: str) -> None:
        self._seen.pop(message_id, None)

    def clear(self) -> None:
        self._seen.clear()
