from typing import Optional, Sequence

import pytest

from paperfeed.models import Paper, Summary


def build_paper(
    pid: str,
    tags: Sequence[str] = (),
    categories: Sequence[str] = ("cs.LG",),
    embedding: Optional[Sequence[float]] = None,
    published: str = "2024-01-15T00:00:00Z",
    title: Optional[str] = None,
) -> Paper:
    paper = Paper(
        id=pid,
        title=title or f"Paper {pid}",
        abstract=f"Abstract of {pid}.",
        authors=("Jane Smith",),
        categories=tuple(categories),
        published=published,
        summary=Summary(headline=f"Headline {pid}", tags=tuple(tags)),
    )
    return paper.with_embedding(embedding)


class FakeStore:
    """In-memory PaperStore with switchable failures."""

    def __init__(self, papers: Sequence[Paper] = ()) -> None:
        self.papers: dict[str, Paper] = {p.id: p for p in papers}
        self.fail_reads = False
        self.fail_writes = False
        self.recent_calls = 0
        self.put_many_calls: list[list[Paper]] = []
        self.existing_calls: list[list[str]] = []

    async def get(self, paper_id: str) -> Optional[Paper]:
        if self.fail_reads:
            raise RuntimeError("store unavailable")
        return self.papers.get(paper_id)

    async def put_many(self, papers: Sequence[Paper]) -> None:
        self.put_many_calls.append(list(papers))
        if self.fail_writes:
            raise RuntimeError("write failed")
        for p in papers:
            self.papers[p.id] = p

    async def existing_ids(self, paper_ids: Sequence[str]) -> set[str]:
        self.existing_calls.append(list(paper_ids))
        if self.fail_reads:
            raise RuntimeError("store unavailable")
        return {pid for pid in paper_ids if pid in self.papers}

    async def recent(self, limit: int) -> list[Paper]:
        self.recent_calls += 1
        if self.fail_reads:
            raise RuntimeError("store unavailable")
        ordered = sorted(self.papers.values(), key=lambda p: p.published, reverse=True)
        return ordered[:limit]

    async def count(self) -> int:
        return len(self.papers)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_paper():
    return build_paper


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store_cls():
    return FakeStore
