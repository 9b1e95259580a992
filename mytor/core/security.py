import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

from fastapi import Header, HTTPException, Request

from mytor.core.config import settings
from mytor.core.exceptions import RateLimitError
from mytor.core.logger import logger


async def verify_owner_token(x_owner_token: str = Header(None)):
    """
    Guards the owner dashboard routes.
    The X-Owner-Token header must match SECRET_KEY; with no SECRET_KEY configured the check is off.
    """
    if not settings.SECRET_KEY:
        return True

    if x_owner_token != settings.SECRET_KEY:
        logger.warning("🔒 Rejected owner request with invalid token")
        raise HTTPException(status_code=403, detail="Invalid owner token")
    return True


class PublicRateLimiter:
    """Sliding one-minute window of requests per client IP."""

    def __init__(self, limit_per_minute: int = None, clock: Callable[[], float] = time.monotonic):
        self.limit = limit_per_minute or settings.PUBLIC_RATE_LIMIT_PER_MINUTE
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)

    def check(self, client_ip: str) -> None:
        now = self.clock()
        hits = self._hits[client_ip]
        while hits and now - hits[0] >= 60:
            hits.popleft()

        if len(hits) >= self.limit:
            retry_after = max(1, int(60 - (now - hits[0]) + 0.999))
            logger.warning(f"🚦 Rate limit hit for {client_ip}")
            raise RateLimitError("Too many requests, please slow down", retry_after=retry_after)
        hits.append(now)

    def reset(self) -> None:
        self._hits.clear()


public_rate_limiter = PublicRateLimiter()


async def rate_limit_public(request: Request):
    client_ip = request.client.host if request.client else "unknown"
    public_rate_limiter.check(client_ip)
