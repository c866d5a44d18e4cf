"""Existence checks against the durable store, used before enrichment."""

from __future__ import annotations

import logging
from typing import Sequence

from paperfeed.constants import DEDUP_BATCH_SIZE
from paperfeed.models import Paper
from paperfeed.store import PaperStore

logger = logging.getLogger(__name__)


class DedupLookupError(RuntimeError):
    """Raised when one or more lookup batches failed.

    ``existing`` holds the ids confirmed present by the batches that
    succeeded; ``unknown`` holds the ids from failed batches.
    """

    def __init__(self, message: str, existing: set[str], unknown: set[str]) -> None:
        super().__init__(message)
        self.existing = existing
        self.unknown = unknown


def _unique(ids: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for pid in ids:
        if pid not in seen:
            seen.add(pid)
            out.append(pid)
    return out


async def find_existing_ids(
    store: PaperStore,
    paper_ids: Sequence[str],
    batch_size: int = DEDUP_BATCH_SIZE,
) -> set[str]:
    """Return the subset of ``paper_ids`` already present in ``store``."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    ids = _unique(paper_ids)
    existing: set[str] = set()
    unknown: set[str] = set()
    errors: list[str] = []

    for i in range(0, len(ids), batch_size):
        batch = ids[i : i + batch_size]
        try:
            found = await store.existing_ids(batch)
        except Exception as e:
            logger.warning(f"Existence lookup failed for batch {i // batch_size + 1}: {e}")
            unknown.update(batch)
            errors.append(str(e))
            continue
        # Stores may echo ids outside the batch; only trust what we asked for
        existing.update(pid for pid in found if pid in batch)

    if unknown:
        raise DedupLookupError(
            f"{len(errors)} lookup batch(es) failed: {errors[0]}",
            existing=existing,
            unknown=unknown,
        )
    return existing


async def split_new_papers(
    store: PaperStore,
    papers: Sequence[Paper],
    batch_size: int = DEDUP_BATCH_SIZE,
) -> tuple[list[Paper], int]:
    """Split ``papers`` into those needing enrichment and a count of known ones.

    Ids whose lookup failed are treated as new: re-enriching a paper and
    writing it again replaces the stored record.
    """
    try:
        existing = await find_existing_ids(store, [p.id for p in papers], batch_size)
    except DedupLookupError as e:
        logger.warning(
            f"Treating {len(e.unknown)} papers with unknown status as new: {e}"
        )
        existing = e.existing

    new_papers: list[Paper] = []
    seen: set[str] = set()
    for paper in papers:
        if paper.id in existing or paper.id in seen:
            continue
        seen.add(paper.id)
        new_papers.append(paper)
    return new_papers, len(existing)
