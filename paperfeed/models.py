"""Typed data models for the paper feed."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Literal, Optional, Sequence, TypedDict

SimilarityMethod = Literal["embedding", "tags"]
CacheTier = Literal["memory", "store", "live"]


class PaperDict(TypedDict, total=False):
    """Serialized Paper payload for storage and API boundaries."""

    id: str
    title: str
    abstract: str
    authors: list[str]
    categories: list[str]
    published: str
    updated: Optional[str]
    pdf_url: Optional[str]
    arxiv_url: Optional[str]
    headline: str
    problem: Optional[str]
    approach: Optional[str]
    method: Optional[str]
    findings: Optional[str]
    takeaway: Optional[str]
    tags: list[str]
    embedding: list[float]


SUMMARY_FIELDS = ("problem", "approach", "method", "findings", "takeaway")


def _as_vector(values: Optional[Sequence[float]]) -> Optional[tuple[float, ...]]:
    if values is None or len(values) == 0:
        return None
    return tuple(float(x) for x in values)


@dataclass(frozen=True)
class Summary:
    """Enrichment produced by the summarizer for one paper."""

    headline: str
    problem: Optional[str] = None
    approach: Optional[str] = None
    method: Optional[str] = None
    findings: Optional[str] = None
    takeaway: Optional[str] = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class Paper:
    """An arXiv paper, optionally enriched with a summary and an embedding."""

    id: str
    title: str
    abstract: str = ""
    authors: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    published: str = ""
    updated: Optional[str] = None
    pdf_url: Optional[str] = None
    arxiv_url: Optional[str] = None
    summary: Optional[Summary] = None
    embedding: Optional[tuple[float, ...]] = None

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    @property
    def tags(self) -> tuple[str, ...]:
        if self.summary is None:
            return ()
        return self.summary.tags

    def with_summary(self, summary: Summary) -> Paper:
        return replace(self, summary=summary)

    def with_embedding(self, embedding: Optional[Sequence[float]]) -> Paper:
        return replace(self, embedding=_as_vector(embedding))

    def without_embedding(self) -> Paper:
        if self.embedding is None:
            return self
        return replace(self, embedding=None)

    @classmethod
    def from_dict(cls, d: PaperDict) -> Paper:
        """Create Paper from dict (e.g., from the store or a fixture)."""
        summary: Optional[Summary] = None
        if d.get("headline"):
            summary = Summary(
                headline=str(d["headline"]),
                problem=d.get("problem"),
                approach=d.get("approach"),
                method=d.get("method"),
                findings=d.get("findings"),
                takeaway=d.get("takeaway"),
                tags=tuple(d.get("tags") or ()),
            )
        embedding = d.get("embedding")
        return cls(
            id=str(d["id"]),
            title=str(d.get("title", "")),
            abstract=str(d.get("abstract", "")),
            authors=tuple(d.get("authors") or ()),
            categories=tuple(d.get("categories") or ()),
            published=str(d.get("published", "")),
            updated=d.get("updated"),
            pdf_url=d.get("pdf_url"),
            arxiv_url=d.get("arxiv_url"),
            summary=summary,
            embedding=_as_vector(embedding),
        )

    def to_public_dict(self) -> PaperDict:
        """Serialize for clients. Embeddings never leave through this path."""
        d: PaperDict = {
            "id": self.id,
            "title": self.title,
            "abstract": self.abstract,
            "authors": list(self.authors),
            "categories": list(self.categories),
            "published": self.published,
            "updated": self.updated,
            "pdf_url": self.pdf_url,
            "arxiv_url": self.arxiv_url,
        }
        if self.summary is not None:
            d["headline"] = self.summary.headline
            for name in SUMMARY_FIELDS:
                d[name] = getattr(self.summary, name)  # type: ignore[literal-required]
            d["tags"] = list(self.summary.tags)
        return d

    def to_dict(self) -> PaperDict:
        """Serialize for storage, including the embedding when present."""
        d = self.to_public_dict()
        if self.embedding is not None:
            d["embedding"] = list(self.embedding)
        return d


@dataclass(frozen=True)
class SimilarityResult:
    """One candidate paper scored against a target paper."""

    target_id: str
    paper: Paper
    score: float
    method: SimilarityMethod

    def to_dict(self) -> dict[str, object]:
        d: dict[str, object] = dict(self.paper.to_public_dict())
        d["similarity_score"] = self.score
        d["similarity_method"] = self.method
        return d


@dataclass
class CacheEntry:
    """Papers resolved for one cache key, replaced wholesale on refresh."""

    papers: list[Paper] = field(default_factory=list)
    timestamp: float = 0.0

    def is_fresh(self, now: float, ttl: float) -> bool:
        return bool(self.papers) and now - self.timestamp <= ttl


@dataclass
class Page:
    """Offset/limit slice over a resolved feed."""

    papers: list[Paper]
    page: int
    total: int
    has_more: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "papers": [p.to_public_dict() for p in self.papers],
            "page": self.page,
            "total_papers": self.total,
            "has_more": self.has_more,
        }
