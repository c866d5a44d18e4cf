"""Durable paper store.

The feed treats the store as a keyed, range-queryable collection with batch
writes and per-record expiry. ``JsonPaperStore`` keeps one JSON file per
paper; records carry ``expires_at`` and the store drops expired records on
read, so callers never see them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol, Sequence, TypedDict, cast

from paperfeed.cache_utils import atomic_write_json, read_json
from paperfeed.constants import STORE_ITEM_TTL, STORE_WRITE_BATCH_SIZE
from paperfeed.models import Paper, PaperDict

logger = logging.getLogger(__name__)

ORDER_INDEX_FILE = "_order.json"


class StoreError(RuntimeError):
    """Raised when the durable store cannot complete a read or write."""


class StoredPaper(TypedDict):
    paper: PaperDict
    summarized_at: float
    expires_at: float


class OrderEntry(TypedDict):
    id: str
    published: str
    expires_at: float


class PaperStore(Protocol):
    async def get(self, paper_id: str) -> Optional[Paper]: ...

    async def put_many(self, papers: Sequence[Paper]) -> None: ...

    async def existing_ids(self, paper_ids: Sequence[str]) -> set[str]: ...

    async def recent(self, limit: int) -> list[Paper]: ...

    async def count(self) -> int: ...


def _file_name(paper_id: str) -> str:
    # Old-style arXiv ids contain a slash (e.g. hep-th/9901001v1)
    return paper_id.replace("/", "_") + ".json"


def _chunks(items: Sequence[Paper], size: int) -> Iterable[Sequence[Paper]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class JsonPaperStore:
    """PaperStore backed by a directory of JSON records.

    Newest-first reads go through an ordering index (``_order.json``) that
    maps each id to its ``published`` and ``expires_at``, so ``recent`` and
    ``count`` never scan the record files. The index is rebuilt from the
    records when it is missing.
    """

    def __init__(
        self,
        root: Path | str,
        ttl: int = STORE_ITEM_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.ttl = ttl
        self._clock = clock
        self._order: Optional[dict[str, OrderEntry]] = None

    @property
    def index_path(self) -> Path:
        return self.root / ORDER_INDEX_FILE

    def _path(self, paper_id: str) -> Path:
        return self.root / _file_name(paper_id)

    def _load(self, path: Path) -> Optional[StoredPaper]:
        raw = read_json(path)
        if not isinstance(raw, dict) or "paper" not in raw:
            return None
        record = cast(StoredPaper, raw)
        if float(record.get("expires_at", 0)) <= self._clock():
            with suppress(OSError):
                path.unlink()
            return None
        return record

    def _load_many(self, paper_ids: Sequence[str]) -> list[Optional[Paper]]:
        out: list[Optional[Paper]] = []
        for pid in paper_ids:
            record = self._load(self._path(pid))
            out.append(Paper.from_dict(record["paper"]) if record is not None else None)
        return out

    def _write_batch(self, papers: Sequence[Paper], now: float) -> None:
        for paper in papers:
            record: StoredPaper = {
                "paper": paper.to_dict(),
                "summarized_at": now,
                "expires_at": now + self.ttl,
            }
            try:
                atomic_write_json(self._path(paper.id), record)
            except OSError as e:
                raise StoreError(f"Failed to write paper {paper.id}: {e}") from e

    def _scan_records(self) -> dict[str, OrderEntry]:
        order: dict[str, OrderEntry] = {}
        for path in self.root.glob("*.json"):
            if path.name == ORDER_INDEX_FILE:
                continue
            record = self._load(path)
            if record is None:
                continue
            paper = record["paper"]
            order[paper["id"]] = {
                "id": paper["id"],
                "published": paper.get("published", ""),
                "expires_at": float(record["expires_at"]),
            }
        return order

    async def _ensure_order(self) -> dict[str, OrderEntry]:
        if self._order is not None:
            return self._order
        raw = await asyncio.to_thread(read_json, self.index_path)
        if isinstance(raw, list):
            self._order = {e["id"]: e for e in raw if isinstance(e, dict) and "id" in e}
            return self._order

        logger.info(f"Rebuilding ordering index for {self.root}")
        try:
            self._order = await asyncio.to_thread(self._scan_records)
        except OSError as e:
            raise StoreError(f"Failed to list store {self.root}: {e}") from e
        await self._save_order()
        return self._order

    async def _save_order(self) -> None:
        if self._order is None:
            return
        entries = sorted(self._order.values(), key=lambda e: e["published"], reverse=True)
        try:
            await asyncio.to_thread(atomic_write_json, self.index_path, entries)
        except OSError as e:
            raise StoreError(f"Failed to write ordering index: {e}") from e

    async def _live_order(self) -> list[OrderEntry]:
        """Unexpired index entries, newest first. Expired ones are dropped."""
        order = await self._ensure_order()
        now = self._clock()
        expired = [pid for pid, e in order.items() if e["expires_at"] <= now]
        for pid in expired:
            del order[pid]
        if expired:
            await self._save_order()
        return sorted(order.values(), key=lambda e: e["published"], reverse=True)

    async def get(self, paper_id: str) -> Optional[Paper]:
        (paper,) = await asyncio.to_thread(self._load_many, [paper_id])
        return paper

    async def put_many(self, papers: Sequence[Paper]) -> None:
        order = await self._ensure_order()
        now = self._clock()
        for batch in _chunks(papers, STORE_WRITE_BATCH_SIZE):
            await asyncio.to_thread(self._write_batch, batch, now)
            for paper in batch:
                order[paper.id] = {
                    "id": paper.id,
                    "published": paper.published,
                    "expires_at": now + self.ttl,
                }
            await self._save_order()
            logger.debug(f"Stored batch of {len(batch)} papers")

    async def existing_ids(self, paper_ids: Sequence[str]) -> set[str]:
        order = await self._ensure_order()
        now = self._clock()
        return {pid for pid in paper_ids if pid in order and order[pid]["expires_at"] > now}

    async def recent(self, limit: int) -> list[Paper]:
        """Newest papers first, by publication timestamp.

        Reads only the records the index puts in the top ``limit``. Ids whose
        record has gone missing are dropped from the index.
        """
        if limit <= 0:
            return []
        entries = await self._live_order()
        papers: list[Paper] = []
        missing: list[str] = []
        start = 0
        while len(papers) < limit and start < len(entries):
            ids = [e["id"] for e in entries[start : start + limit - len(papers)]]
            start += len(ids)
            loaded = await asyncio.to_thread(self._load_many, ids)
            for pid, paper in zip(ids, loaded):
                if paper is None:
                    missing.append(pid)
                else:
                    papers.append(paper)

        if missing and self._order is not None:
            logger.warning(f"Dropping {len(missing)} index entries without records")
            for pid in missing:
                self._order.pop(pid, None)
            await self._save_order()
        return papers

    async def count(self) -> int:
        return len(await self._live_order())
