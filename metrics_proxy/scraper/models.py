"""Data models for the scrape pipeline."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ScrapeTarget:
    """The normalised upstream URL for one inbound request."""

    url: str


@dataclass
class Deadline:
    """A fixed point in time every await of one scrape must finish by.

    Created by the caller when the scrape starts; the Scraper only consumes
    it, so cancellation policy stays with whoever owns the request.
    """

    seconds: float
    expires_at: float = field(init=False)

    def __post_init__(self) -> None:
        self.expires_at = time.monotonic() + self.seconds

    def remaining(self) -> float:
        """Seconds left before expiry; never negative."""
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable*, raising :class:`asyncio.TimeoutError` on expiry."""
        return await asyncio.wait_for(awaitable, timeout=self.remaining())
