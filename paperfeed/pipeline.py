"""Fetch -> dedup -> enrich -> persist."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from paperfeed.arxiv import fetch_arxiv_papers
from paperfeed.constants import (
    INGEST_PAGE_DELAY,
    INGEST_PAGE_SIZE,
    INGEST_TARGET_PAPERS,
)
from paperfeed.dedup import split_new_papers
from paperfeed.embeddings import Embedder
from paperfeed.feed_cache import LiveLoader
from paperfeed.llm import TextCompleter
from paperfeed.models import Paper
from paperfeed.store import PaperStore
from paperfeed.summarize import summarize_papers

logger = logging.getLogger(__name__)

Enricher = Callable[[Sequence[Paper]], Awaitable[list[Paper]]]
Fetcher = Callable[..., Awaitable[list[Paper]]]


def make_enricher(complete: TextCompleter, embed: Optional[Embedder]) -> Enricher:
    async def enrich(papers: Sequence[Paper]) -> list[Paper]:
        return await summarize_papers(papers, complete, embed=embed)

    return enrich


def make_live_loader(enrich: Enricher, fetch: Fetcher = fetch_arxiv_papers) -> LiveLoader:
    """Loader used by the feed cache: fetch from arXiv, then enrich."""

    async def fetch_and_enrich(
        max_results: int,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[Paper]:
        raw = await fetch(max_results=max_results, search=search, category=category)
        if not raw:
            return []
        logger.info(f"Summarizing {len(raw)} papers")
        return await enrich(raw)

    return fetch_and_enrich


@dataclass
class IngestReport:
    fetched: int = 0
    new: int = 0
    skipped: int = 0
    with_embeddings: int = 0
    pages: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "fetched": self.fetched,
            "new": self.new,
            "skipped": self.skipped,
            "with_embeddings": self.with_embeddings,
            "pages": self.pages,
        }


async def run_ingest(
    store: PaperStore,
    enrich: Enricher,
    fetch: Fetcher = fetch_arxiv_papers,
    target: int = INGEST_TARGET_PAPERS,
    page_size: int = INGEST_PAGE_SIZE,
    delay: float = INGEST_PAGE_DELAY,
    max_pages: Optional[int] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> IngestReport:
    """Enrich and store up to ``target`` papers not yet in ``store``.

    Pages through the feed newest-first until the target is met, the feed
    runs dry, or ``max_pages`` pages have been read. Store write failures
    propagate.
    """
    report = IngestReport()
    start = 0
    while report.new < target:
        if max_pages is not None and report.pages >= max_pages:
            break

        logger.info(f"Fetching papers {start} to {start + page_size}")
        raw = await fetch(max_results=page_size, start=start)
        report.pages += 1
        if not raw:
            logger.info("No more papers available from arXiv")
            break
        report.fetched += len(raw)

        new_papers, existing = await split_new_papers(store, raw)
        report.skipped += existing
        logger.info(f"{existing} already stored, {len(new_papers)} new")

        to_process = new_papers[: target - report.new]
        if to_process:
            enriched = await enrich(to_process)
            await store.put_many(enriched)
            report.new += len(enriched)
            report.with_embeddings += sum(1 for p in enriched if p.has_embedding)

        if progress_callback:
            progress_callback(report.new, target)

        start += page_size
        if report.new < target and len(raw) == page_size and delay:
            await asyncio.sleep(delay)

    return report
