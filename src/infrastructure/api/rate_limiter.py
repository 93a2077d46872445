"""In-process sliding-window limiter for credential-issuing endpoints."""
from __future__ import annotations

import ipaddress
import logging
import math
import os
import threading
import time
from collections import deque
from typing import Callable

from fastapi import Request

from src.domain.errors import RateLimited

logger = logging.getLogger(__name__)

IPV6_BUCKET_PREFIX = 64


def normalize_client_address(host: str | None) -> str:
    """Bucket key for a client address.

    IPv6 clients usually own a whole /64, so they are bucketed by prefix.
    IPv4-mapped IPv6 addresses count as the IPv4 address they wrap.
    """
    if not host:
        return "unknown"
    host = host.strip().strip("[]")
    try:
        addr = ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        return host
    if isinstance(addr, ipaddress.IPv6Address):
        if addr.ipv4_mapped is not None:
            return str(addr.ipv4_mapped)
        return str(ipaddress.IPv6Network(f"{addr}/{IPV6_BUCKET_PREFIX}", strict=False))
    return str(addr)


def client_address(request: Request) -> str:
    if os.getenv("TRUST_PROXY", "0") == "1":
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return normalize_client_address(forwarded.split(",")[0])
    return normalize_client_address(request.client.host if request.client else None)


class SlidingWindowRateLimiter:
    """Allow at most ``limit`` hits per key within any ``window`` seconds.

    Keeps the timestamps of recent hits per key. State is process-local and
    resets on restart.
    """

    def __init__(
        self,
        limit: int = 5,
        window: float = 300.0,
        *,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window = window
        self.enabled = enabled
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls) -> SlidingWindowRateLimiter:
        env = os.getenv("ENV", "development")
        bypass = env != "production" and os.getenv("RATE_LIMIT_BYPASS", "0") == "1"
        return cls(
            limit=int(os.getenv("LOGIN_RATE_LIMIT", "5")),
            window=float(os.getenv("LOGIN_RATE_WINDOW", "300")),
            enabled=not bypass,
        )

    def hit(self, key: str) -> None:
        """Record an attempt for ``key`` or raise ``RateLimited``."""
        if not self.enabled:
            return
        now = self._clock()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - self.window:
                hits.popleft()
            if len(hits) >= self.limit:
                retry_after = max(1, math.ceil(hits[0] + self.window - now))
                logger.warning("Rate limit exceeded for %s, retry in %ss", key, retry_after)
                raise RateLimited(retry_after)
            hits.append(now)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


_LOGIN_LIMITER: SlidingWindowRateLimiter | None = None


def get_login_limiter() -> SlidingWindowRateLimiter:
    global _LOGIN_LIMITER
    if _LOGIN_LIMITER is None:
        _LOGIN_LIMITER = SlidingWindowRateLimiter.from_env()
    return _LOGIN_LIMITER
