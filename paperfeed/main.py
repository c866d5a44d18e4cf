from __future__ import annotations

from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from paperfeed.config import load_settings
from paperfeed.constants import (
    CATEGORY_LISTING,
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    SEMANTIC_DEFAULT_LIMIT,
    SIMILAR_DEFAULT_TOP_K,
)
from paperfeed.feed_cache import FeedUnavailableError, paginate
from paperfeed.logging_config import get_logger
from paperfeed.models import Paper
from paperfeed.semantic_search import check_query, effective_limit, semantic_search
from paperfeed.services import Services, build_services
from paperfeed.similarity import find_similar_papers

logger = get_logger(__name__)

app = FastAPI(title="arXiv Paper Feed API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(load_settings())
    return _services


class SemanticSearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: Any = None
    limit: int = SEMANTIC_DEFAULT_LIMIT
    include_summary: bool = Field(False, alias="includeSummary")


def _matches_keyword(paper: Paper, needle: str) -> bool:
    fields = [paper.title, paper.abstract, *paper.authors, *paper.tags]
    if paper.summary is not None:
        fields.append(paper.summary.headline)
    return any(needle in f.lower() for f in fields if f)


@app.get("/api/health")
def health(services: Services = Depends(get_services)):
    return {"status": "ok", "cached_papers": services.cache.cached_count}


@app.get("/api/feed")
async def feed_route(
    page: int = Query(0, ge=0),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    refresh: bool = False,
    search: str = "",
    category: str = "",
    services: Services = Depends(get_services),
):
    try:
        papers, tier = await services.cache.get_feed(
            search=search.strip() or None,
            category=category.strip() or None,
            refresh=refresh,
        )
    except FeedUnavailableError as e:
        logger.error("feed_unavailable", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to fetch feed")
    logger.debug("feed_resolved", tier=tier, total=len(papers))
    return paginate(papers, page, limit).to_dict()


@app.get("/api/categories")
def categories_route():
    return {"categories": CATEGORY_LISTING}


@app.get("/api/paper/{paper_id}")
async def paper_route(paper_id: str, services: Services = Depends(get_services)):
    paper = await services.cache.find_paper(paper_id)
    if paper is None:
        raise HTTPException(status_code=404, detail="Paper not found")
    return paper.to_public_dict()


@app.get("/api/paper/{paper_id}/similar")
async def similar_route(
    paper_id: str,
    top_k: int = Query(SIMILAR_DEFAULT_TOP_K, ge=0, le=20),
    services: Services = Depends(get_services),
):
    target = await services.cache.find_paper(paper_id)
    if target is None:
        raise HTTPException(status_code=404, detail="Paper not found")
    try:
        pool = await services.cache.corpus()
    except FeedUnavailableError as e:
        logger.error("corpus_unavailable", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to load papers")
    results = find_similar_papers(target, pool, top_k=top_k)
    return {"paper_id": paper_id, "similar": [r.to_dict() for r in results]}


@app.get("/api/search")
async def keyword_search_route(
    q: str = "",
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    services: Services = Depends(get_services),
):
    needle = q.strip().lower()
    if not needle:
        raise HTTPException(status_code=400, detail="Query parameter q is required")
    try:
        corpus = await services.cache.corpus()
    except FeedUnavailableError as e:
        logger.error("corpus_unavailable", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to load papers")
    matches = [p for p in corpus if _matches_keyword(p, needle)]
    return {
        "query": q,
        "total": len(matches),
        "papers": [p.to_public_dict() for p in matches[:limit]],
    }


@app.post("/api/semantic-search")
async def semantic_search_route(
    req: SemanticSearchRequest, services: Services = Depends(get_services)
):
    problem = check_query(req.query)
    if problem == "query_too_long":
        raise HTTPException(status_code=400, detail="Query too long (max 500 characters)")
    if problem is not None:
        raise HTTPException(status_code=400, detail="Query is required")

    try:
        corpus = await services.cache.corpus()
    except FeedUnavailableError as e:
        logger.error("corpus_unavailable", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to load papers")

    outcome = await semantic_search(
        req.query,
        corpus,
        services.complete,
        services.embed,
        limit=effective_limit(req.limit),
        include_summary=req.include_summary,
    )
    logger.info(
        "semantic_search",
        status=outcome.status,
        searched=outcome.total_searched,
        results=len(outcome.papers),
    )
    if outcome.status == "rejected":
        raise HTTPException(status_code=400, detail=outcome.to_dict())
    if outcome.status == "embedding_failed":
        raise HTTPException(status_code=503, detail=outcome.to_dict())
    return outcome.to_dict()
