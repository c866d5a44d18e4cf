"""Tiered resolution of the served feed.

The default feed resolves memory -> durable store -> live fetch-and-enrich.
Search and category feeds resolve memory -> live, with a shorter freshness
window. Entries are replaced wholesale and never patched. Concurrent
requests may race to fill the same key; the last writer wins.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from paperfeed.constants import (
    CATEGORY_MAP,
    CORPUS_LIMIT,
    DEFAULT_FEED_FETCH_COUNT,
    FEED_CACHE_TTL,
    SEARCH_CACHE_TTL,
    SEARCH_FETCH_COUNT,
    STORE_FEED_LIMIT,
)
from paperfeed.models import CacheEntry, CacheTier, Page, Paper
from paperfeed.store import PaperStore

logger = logging.getLogger(__name__)

DEFAULT_FEED_KEY = "feed:default"


class LiveLoader(Protocol):
    def __call__(
        self,
        max_results: int,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Awaitable[list[Paper]]: ...


class FeedUnavailableError(RuntimeError):
    """Raised when no tier can produce papers for a key."""


def normalize_query(text: str) -> str:
    return " ".join(text.lower().split())


def search_key(search: str) -> str:
    return f"search:{normalize_query(search)}"


def category_key(category: str) -> str:
    return f"category:{category.lower()}"


def feed_key(search: Optional[str] = None, category: Optional[str] = None) -> str:
    """Map request parameters to a cache key; search wins over category."""
    if search and search.strip():
        return search_key(search)
    if category and category.lower() in CATEGORY_MAP:
        return category_key(category)
    return DEFAULT_FEED_KEY


def paginate(papers: Sequence[Paper], page: int, limit: int) -> Page:
    start = max(page, 0) * max(limit, 0)
    total = len(papers)
    return Page(
        papers=list(papers[start : start + limit]) if limit > 0 else [],
        page=page,
        total=total,
        has_more=start + limit < total,
    )


class FeedCache:
    def __init__(
        self,
        fetch_and_enrich: LiveLoader,
        store: Optional[PaperStore] = None,
        clock: Callable[[], float] = time.time,
        feed_ttl: float = FEED_CACHE_TTL,
        search_ttl: float = SEARCH_CACHE_TTL,
    ) -> None:
        self._live = fetch_and_enrich
        self.store = store
        self._clock = clock
        self.feed_ttl = feed_ttl
        self.search_ttl = search_ttl
        self._feed = CacheEntry()
        self._keyed: dict[str, CacheEntry] = {}
        self._corpus = CacheEntry()

    @property
    def cached_count(self) -> int:
        return len(self._feed.papers)

    def clear(self) -> None:
        self._feed = CacheEntry()
        self._keyed.clear()
        self._corpus = CacheEntry()

    async def get(self, key: str, refresh: bool = False) -> tuple[list[Paper], CacheTier]:
        """Resolve ``key`` and report which tier served it."""
        if key == DEFAULT_FEED_KEY:
            return await self._get_default(refresh)
        return await self._get_keyed(key, refresh)

    async def get_feed(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        refresh: bool = False,
    ) -> tuple[list[Paper], CacheTier]:
        return await self.get(feed_key(search, category), refresh=refresh)

    async def _read_store(self) -> list[Paper]:
        if self.store is None:
            return []
        try:
            return await self.store.recent(STORE_FEED_LIMIT)
        except Exception as e:
            logger.warning(f"Store read failed, falling back to live fetch: {e}")
            return []

    async def _write_store(self, papers: list[Paper]) -> None:
        if self.store is None or not papers:
            return
        try:
            await self.store.put_many(papers)
        except Exception as e:
            logger.error(f"Failed to persist {len(papers)} papers: {e}")
            return
        self._corpus = CacheEntry()

    async def _get_default(self, refresh: bool) -> tuple[list[Paper], CacheTier]:
        now = self._clock()
        if not refresh and self._feed.is_fresh(now, self.feed_ttl):
            return self._feed.papers, "memory"

        stored = await self._read_store()
        if stored:
            self._feed = CacheEntry(papers=stored, timestamp=now)
            return stored, "store"

        logger.info("Fetching fresh papers from arXiv")
        try:
            papers = await self._live(max_results=DEFAULT_FEED_FETCH_COUNT)
        except Exception as e:
            if self._feed.papers:
                logger.warning(f"Live fetch failed, serving stale feed: {e}")
                return self._feed.papers, "memory"
            raise FeedUnavailableError(f"No tier could produce the feed: {e}") from e

        self._feed = CacheEntry(papers=papers, timestamp=now)
        await self._write_store(papers)
        logger.info(f"Feed updated with {len(papers)} papers")
        return papers, "live"

    async def _get_keyed(self, key: str, refresh: bool) -> tuple[list[Paper], CacheTier]:
        kind, _, value = key.partition(":")
        if kind == "search":
            live_args: dict[str, str] = {"search": value}
        elif kind == "category" and value in CATEGORY_MAP:
            live_args = {"category": CATEGORY_MAP[value]}
        else:
            raise KeyError(f"Unknown feed key: {key}")

        now = self._clock()
        cached = self._keyed.get(key)
        if not refresh and cached is not None and cached.is_fresh(now, self.search_ttl):
            logger.debug(f"Using cached results for {key}")
            return cached.papers, "memory"

        logger.info(f"Performing live arXiv fetch for {key}")
        try:
            papers = await self._live(max_results=SEARCH_FETCH_COUNT, **live_args)
        except Exception as e:
            if cached is not None and cached.papers:
                logger.warning(f"Live fetch for {key} failed, serving stale results: {e}")
                return cached.papers, "memory"
            raise FeedUnavailableError(f"No tier could produce {key}: {e}") from e

        if papers:
            self._keyed[key] = CacheEntry(papers=papers, timestamp=now)
        return papers, "live"

    def _fresh_entries(self) -> list[CacheEntry]:
        now = self._clock()
        entries = []
        if self._feed.is_fresh(now, self.feed_ttl):
            entries.append(self._feed)
        entries.extend(e for e in self._keyed.values() if e.is_fresh(now, self.search_ttl))
        return entries

    async def find_paper(self, paper_id: str) -> Optional[Paper]:
        """Fresh in-process entries win over the store."""
        for entry in self._fresh_entries():
            for paper in entry.papers:
                if paper.id == paper_id:
                    return paper
        if self.store is None:
            return None
        try:
            return await self.store.get(paper_id)
        except Exception as e:
            logger.warning(f"Store lookup for {paper_id} failed: {e}")
            return None

    async def corpus(self) -> list[Paper]:
        """Papers used for similarity and semantic search.

        The store read is held in memory for the feed TTL and dropped whenever
        new papers are written back.
        """
        now = self._clock()
        if self._corpus.is_fresh(now, self.feed_ttl):
            return self._corpus.papers
        if self.store is not None:
            try:
                papers = await self.store.recent(CORPUS_LIMIT)
            except Exception as e:
                logger.warning(f"Store corpus read failed: {e}")
                papers = []
            if papers:
                self._corpus = CacheEntry(papers=papers, timestamp=now)
                return papers
        papers, _ = await self.get(DEFAULT_FEED_KEY)
        return papers
