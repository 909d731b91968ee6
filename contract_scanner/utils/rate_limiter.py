import asyncio
import time


class RateLimiter:
    """
    Token-bucket limiter shared by every RPC call of the process.
    rps <= 0 disables limiting; the concurrency semaphore is then the only brake.
    """

    def __init__(self, rps: int) -> None:
        self._rps = int(rps)
        self._tokens = float(max(self._rps, 0))
        self._last = time.monotonic()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self._rps > 0

    async def acquire(self) -> None:
        if not self.enabled:
            return
        while True:
            async with self._lock:
                now = time.monotonic()
                self._tokens = min(self._rps, self._tokens + (now - self._last) * self._rps)
                self._last = now
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                sleep_s = max((1.0 - self._tokens) / self._rps, 0.001)
            await asyncio.sleep(sleep_s)
