"""Tidewatch — Abstract Page Fetcher."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger("tidewatch.fetcher")

T = TypeVar("T")


class PageFetchError(Exception):
    """Navigation to a vessel page failed after every attempt."""

    def __init__(self, url: str, attempts: int, last_error: Optional[BaseException] = None):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed to fetch {url} after {attempts} attempt(s): {last_error}")


class NavigationError(Exception):
    """A single navigation attempt failed (bad status or no response)."""


class BasePageFetcher(ABC):
    """Base class for page fetchers: fixed-count retries with fixed backoff."""

    def __init__(self, name: str, attempts: int = 3, backoff: float = 2.0):
        self.name = name
        self.attempts = max(1, attempts)
        self.backoff = backoff

    @abstractmethod
    async def fetch(self, url: str) -> str:
        """Return the rendered HTML for ``url`` or raise PageFetchError."""
        ...

    async def close(self):
        """Release long-lived resources, if any."""

    async def with_retries(self, url: str, attempt: Callable[[], Awaitable[T]]) -> T:
        last_error: Optional[BaseException] = None
        for n in range(1, self.attempts + 1):
            try:
                result = await attempt()
                if n > 1:
                    logger.info("[%s] %s succeeded on attempt %d", self.name, url, n)
                return result
            except Exception as e:
                last_error = e
                logger.warning("[%s] Attempt %d/%d for %s failed: %s", self.name, n, self.attempts, url, e)
                if n < self.attempts:
                    await asyncio.sleep(self.backoff)
        raise PageFetchError(url, self.attempts, last_error)
