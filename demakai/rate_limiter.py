"""
Per-user sliding-window rate limiter.

Keeps the timestamps of each user's recent messages in an OrderedDict used
as an LRU, so memory stays bounded no matter how many distinct users write.
"""
import logging
import time
from collections import OrderedDict
from typing import Callable, List

from . import config

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
RATE_LIMIT_REPLY = "⏱️ Kamu mengirim terlalu banyak pesan. Tunggu sebentar ya!"


class RateLimiter:
    """Allows at most ``max_messages`` per user per ``window`` seconds.

    The least recently active user is evicted once ``max_users`` are tracked.
    """

    def __init__(
        self,
        max_messages: int = config.MAX_MESSAGES_PER_MINUTE,
        window: float = WINDOW_SECONDS,
        max_users: int = config.RATE_LIMIT_MAX_USERS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_messages = max_messages
        self.window = window
        self.max_users = max_users
        self._clock = clock
        self._timestamps: "OrderedDict[str, List[float]]" = OrderedDict()

    def allow(self, user_id: str) -> bool:
        """Records a message from ``user_id``; False if over the limit."""
        now = self._clock()
        recent = [t for t in self._timestamps.get(user_id, []) if now - t < self.window]

        if user_id in self._timestamps:
            self._timestamps.move_to_end(user_id)
        elif len(self._timestamps) >= self.max_users:
            self._timestamps.popitem(last=False)

        if len(recent) >= self.max_messages:
            self._timestamps[user_id] = recent
            logger.warning(f"[RATE_LIMIT] Rate limit exceeded for {user_id}")
            return False

        recent.append(now)
        self._timestamps[user_id] = recent
        return True

    def __len__(self) -> int:
        return len(self._timestamps)
