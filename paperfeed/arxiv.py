from __future__ import annotations

import logging
import re
from typing import Optional

import feedparser
import httpx

from paperfeed.constants import (
    ARXIV_AI_CATEGORIES,
    ARXIV_API_URL,
    ARXIV_DEFAULT_SORT_BY,
    ARXIV_DEFAULT_SORT_ORDER,
    ARXIV_HTTP_TIMEOUT,
)
from paperfeed.models import Paper

logger = logging.getLogger(__name__)


class FeedError(RuntimeError):
    """Raised when the arXiv API cannot be queried."""


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def build_search_query(
    category: Optional[str] = None, search: Optional[str] = None
) -> str:
    if category:
        query = f"cat:{category}"
    else:
        query = " OR ".join(f"cat:{cat}" for cat in ARXIV_AI_CATEGORIES)
    terms = [t for t in re.split(r"\s+", search or "") if t]
    if terms:
        term_query = " AND ".join(f"all:{t}" for t in terms)
        query = f"({query}) AND {term_query}"
    return query


def _entry_id(entry_id: str) -> str:
    if "/abs/" in entry_id:
        return entry_id.split("/abs/", 1)[1]
    return entry_id


def parse_feed(xml: str) -> list[Paper]:
    """Parse an arXiv Atom response into papers, skipping malformed entries."""
    parsed = feedparser.parse(xml)
    papers: list[Paper] = []
    for entry in parsed.entries:
        raw_id = entry.get("id", "")
        if not raw_id:
            continue
        pdf_url = None
        for link in entry.get("links", []):
            if link.get("title") == "pdf":
                pdf_url = link.get("href")
                break
        papers.append(
            Paper(
                id=_entry_id(raw_id),
                title=_clean(entry.get("title", "")),
                abstract=_clean(entry.get("summary", "")),
                authors=tuple(
                    a.get("name", "") for a in entry.get("authors", []) if a.get("name")
                ),
                categories=tuple(
                    t.get("term", "") for t in entry.get("tags", []) if t.get("term")
                ),
                published=entry.get("published", ""),
                updated=entry.get("updated"),
                pdf_url=pdf_url,
                arxiv_url=raw_id,
            )
        )
    return papers


async def fetch_arxiv_papers(
    max_results: int = 20,
    start: int = 0,
    sort_by: str = ARXIV_DEFAULT_SORT_BY,
    sort_order: str = ARXIV_DEFAULT_SORT_ORDER,
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> list[Paper]:
    params: dict[str, str | int] = {
        "search_query": build_search_query(category=category, search=search),
        "start": start,
        "max_results": max_results,
        "sortBy": sort_by,
        "sortOrder": sort_order,
    }
    logger.info(f"Fetching arXiv papers start={start} max={max_results}")
    try:
        async with httpx.AsyncClient(timeout=ARXIV_HTTP_TIMEOUT) as client:
            resp = await client.get(ARXIV_API_URL, params=params)
    except httpx.HTTPError as e:
        raise FeedError(f"arXiv request failed: {e}") from e

    if resp.status_code != 200:
        raise FeedError(f"arXiv API error {resp.status_code}")
    return parse_feed(resp.text)
