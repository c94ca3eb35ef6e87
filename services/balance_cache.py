import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from utils.logger import get_logger

log = get_logger("[BalanceCache]")


@dataclass
class CacheEntry:
    value: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class BalanceCache:
    """
    Keeps the last Steadfast balance for `ttl` seconds.
    All reads and writes go through `get`.
    """

    def __init__(self, fetch: Callable[[], Awaitable[float]], ttl: float = 300,
                 clock: Callable[[], float] = time.monotonic):
        self._fetch = fetch
        self._ttl = ttl
        self._clock = clock
        self._entry: Optional[CacheEntry] = None

    @property
    def entry(self) -> Optional[CacheEntry]:
        return self._entry

    async def get(self, force: bool = False) -> float:
        now = self._clock()
        if not force and self._entry and self._entry.is_fresh(now):
            return self._entry.value

        value = await self._fetch()
        self._entry = CacheEntry(value=value, expires_at=self._clock() + self._ttl)
        log.debug(f"Balance refreshed: {value}")
        return value

    def invalidate(self) -> None:
        self._entry = None
