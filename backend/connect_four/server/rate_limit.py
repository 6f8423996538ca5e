"""Per-connection token bucket for inbound WebSocket frames."""

import time


class TokenBucket:
    """Allow `burst` messages at once, refilled at `rate` tokens per second.

    Cursor relays arrive on every pointer move, so the bucket is sized for a
    steady stream of those while still cutting off a flooding client.
    """

    def __init__(self, rate: float, burst: int) -> None:
        self._rate = rate
        self._capacity = float(burst)
        self._tokens = float(burst)
        self._updated_at = time.monotonic()

    @property
    def tokens(self) -> float:
        return self._tokens

    def consume(self, cost: float = 1.0) -> bool:
        """Take `cost` tokens if available. Return False when the caller should be throttled."""
        self._refill()
        if self._tokens < cost:
            return False
        self._tokens -= cost
        return True

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self._capacity, self._tokens + (now - self._updated_at) * self._rate)
        self._updated_at = now
