"""Incremental page loading on top of DataCache."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from .errors import ProducerFailure, validate_key
from .key_generator import page_key, page_key_prefix
from .resolver import DataCache

logger = logging.getLogger(__name__)


@dataclass
class Page:
    items: Sequence[Any] = field(default_factory=list)
    has_more: bool = False


PageFetcher = Callable[[int], Awaitable[Page]]


class AccumulatorState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    LOADING_MORE = "loading_more"


class PaginatedAccumulator:
    """
    Builds an append-only item list by fetching page after page.

    Every page goes through the cache under "<prefix>_page_<n>", so pages
    fetched within the ttl window are not fetched again. Page state belongs
    to this instance only, even when another accumulator shares the prefix.
    """

    def __init__(
        self,
        cache: DataCache,
        key_prefix: str,
        fetch_page: PageFetcher,
        ttl: Optional[float] = None,
    ) -> None:
        self.cache = cache
        self.key_prefix = validate_key(key_prefix)
        self._fetch_page = fetch_page
        self.ttl = ttl

        self.state = AccumulatorState.IDLE
        self.has_more = True
        self.current_page = 0
        self.error: Optional[ProducerFailure] = None
        self._pages: List[List[Any]] = []
        self._loaded = False
        # bumped on every reset so a load_more racing a reset is discarded
        self._generation = 0

    @property
    def items(self) -> List[Any]:
        return [item for page in self._pages for item in page]

    @property
    def pages(self) -> Tuple[Tuple[Any, ...], ...]:
        return tuple(tuple(page) for page in self._pages)

    @property
    def is_loading(self) -> bool:
        return self.state == AccumulatorState.LOADING

    @property
    def is_loading_more(self) -> bool:
        return self.state == AccumulatorState.LOADING_MORE

    @property
    def exhausted(self) -> bool:
        return self.state == AccumulatorState.READY and not self.has_more

    async def _load_page(self, page: int) -> Page:
        result = await self.cache.resolve(
            page_key(self.key_prefix, page),
            lambda: self._fetch_page(page),
            ttl=self.ttl,
            stale_while_revalidate=False,
        )
        # expired page whose refetch failed: treat as a failure, not as data
        result.raise_for_error()
        return result.value

    async def load_initial(self) -> None:
        """Fetch page 0 and replace everything loaded so far."""
        self._generation += 1
        generation = self._generation
        self.state = AccumulatorState.LOADING

        try:
            page = await self._load_page(0)
        except ProducerFailure as failure:
            if generation == self._generation:
                # pages are untouched; only the settled state comes back
                self.state = AccumulatorState.READY if self._loaded else AccumulatorState.IDLE
                self.error = failure
            raise

        if generation != self._generation:
            return

        self._pages = [list(page.items)]
        self.has_more = page.has_more
        self.current_page = 0
        self.error = None
        self._loaded = True
        self.state = AccumulatorState.READY
        logger.debug(f"Loaded {self.key_prefix} page 0 ({len(page.items)} items, has_more={page.has_more})")

    async def load_more(self) -> bool:
        """
        Fetch and append the next page.

        Returns False without fetching while another load_more is running,
        before the first page is loaded, or once the last page was seen.
        """
        if self.state != AccumulatorState.READY or not self.has_more:
            return False

        generation = self._generation
        next_page = self.current_page + 1
        self.state = AccumulatorState.LOADING_MORE

        try:
            page = await self._load_page(next_page)
        except ProducerFailure as failure:
            if generation == self._generation:
                self.state = AccumulatorState.READY
                self.error = failure
            raise

        if generation != self._generation:
            logger.debug(f"Dropped {self.key_prefix} page {next_page}: accumulator was reset")
            return False

        self._pages.append(list(page.items))
        self.has_more = page.has_more
        self.current_page = next_page
        self.error = None
        self.state = AccumulatorState.READY
        logger.debug(
            f"Loaded {self.key_prefix} page {next_page} ({len(page.items)} items, has_more={page.has_more})"
        )
        return True

    async def refresh(self) -> None:
        """Forget every cached page for this prefix and start over."""
        self.cache.invalidate_prefix(page_key_prefix(self.key_prefix))
        await self.load_initial()
