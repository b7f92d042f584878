"""Key pool management."""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from chat_relay.config import Config
from chat_relay.models import PoolState, STATUS_AVAILABLE, STATUS_PENALIZED, key_prefix

logger = logging.getLogger(__name__)


class KeyManager:
    """Hands out API keys round-robin, skipping keys that are rate limited.

    Penalties expire lazily: a key becomes usable again the first time it is
    looked at after its expiry, there is no background timer.
    """

    def __init__(self, config: Config, clock: Callable[[], float] = time.monotonic):
        self.pool: PoolState = PoolState(keys=list(config.api_keys))
        self.default_penalty: float = config.rate_limit_seconds
        self._clock = clock
        self._lock: asyncio.Lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.pool.keys)

    def _is_available(self, index: int, now: float) -> bool:
        return now >= self.pool.rate_limited_until.get(index, 0.0)

    async def next_available(self) -> Optional[str]:
        async with self._lock:
            size = len(self.pool.keys)
            if size == 0:
                return None

            now = self._clock()
            for offset in range(size):
                index = (self.pool.cursor + offset) % size
                if self._is_available(index, now):
                    self.pool.cursor = (index + 1) % size
                    return self.pool.keys[index]

            return None

    async def penalize(self, api_key: str, duration: Optional[float] = None) -> None:
        if duration is None:
            duration = self.default_penalty

        async with self._lock:
            try:
                index = self.pool.keys.index(api_key)
            except ValueError:
                return

            # Last write wins, even when the new penalty is shorter.
            self.pool.rate_limited_until[index] = self._clock() + duration

        logger.warning(
            "Key %s rate limited for %.0fs", key_prefix(api_key), duration
        )

    def all_penalized(self) -> bool:
        if not self.pool.keys:
            return False
        now = self._clock()
        return all(
            not self._is_available(index, now) for index in range(len(self.pool.keys))
        )

    def get_status(self) -> Dict[str, object]:
        now = self._clock()
        keys: List[Dict[str, object]] = []
        for index, api_key in enumerate(self.pool.keys):
            available = self._is_available(index, now)
            until = self.pool.rate_limited_until.get(index, 0.0)
            keys.append(
                {
                    "index": index,
                    "key_prefix": key_prefix(api_key),
                    "status": STATUS_AVAILABLE if available else STATUS_PENALIZED,
                    "retry_after_seconds": 0 if available else round(until - now, 1),
                }
            )

        available_keys = sum(1 for key in keys if key["status"] == STATUS_AVAILABLE)
        return {
            "total_keys": len(keys),
            "available_keys": available_keys,
            "penalized_keys": len(keys) - available_keys,
            "next_index": self.pool.cursor,
            "keys": keys,
        }
