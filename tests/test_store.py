import json

import pytest
from unittest.mock import patch

from conftest import FakeClock, build_paper
from paperfeed.constants import STORE_ITEM_TTL
from paperfeed.store import ORDER_INDEX_FILE, JsonPaperStore


@pytest.fixture
def store(tmp_path, clock):
    return JsonPaperStore(tmp_path / "papers", clock=clock)


@pytest.mark.asyncio
async def test_put_and_get_round_trip(store):
    paper = build_paper("2401.00001v1", tags=("LLM",), embedding=[0.6, 0.8])
    await store.put_many([paper])

    loaded = await store.get("2401.00001v1")

    assert loaded == paper
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_record_layout(store, clock):
    await store.put_many([build_paper("hep-th/9901001v1")])

    path = store.root / "hep-th_9901001v1.json"
    record = json.loads(path.read_text())
    assert record["paper"]["id"] == "hep-th/9901001v1"
    assert record["summarized_at"] == clock.now
    assert record["expires_at"] == clock.now + STORE_ITEM_TTL


@pytest.mark.asyncio
async def test_expired_records_disappear(store, clock):
    await store.put_many([build_paper("a"), build_paper("b")])
    clock.advance(STORE_ITEM_TTL - 1)
    await store.put_many([build_paper("c")])
    clock.advance(2)

    assert await store.get("a") is None
    assert await store.existing_ids(["a", "b", "c"]) == {"c"}
    assert await store.count() == 1
    assert [p.id for p in await store.recent(10)] == ["c"]
    assert not (store.root / "a.json").exists()


@pytest.mark.asyncio
async def test_recent_newest_first(store):
    papers = [
        build_paper("old", published="2023-05-01T00:00:00Z"),
        build_paper("new", published="2024-03-01T00:00:00Z"),
        build_paper("mid", published="2023-11-01T00:00:00Z"),
    ]
    await store.put_many(papers)

    assert [p.id for p in await store.recent(2)] == ["new", "mid"]
    assert await store.recent(0) == []


@pytest.mark.asyncio
async def test_recent_reads_only_top_records(store):
    papers = [build_paper(f"p{i:03d}", published=f"2024-01-01T00:{i:02d}:00Z") for i in range(40)]
    await store.put_many(papers)

    with patch.object(store, "_load_many", wraps=store._load_many) as load:
        recent = await store.recent(5)

    assert [p.id for p in recent] == ["p039", "p038", "p037", "p036", "p035"]
    loaded_ids = [pid for call in load.call_args_list for pid in call.args[0]]
    assert loaded_ids == ["p039", "p038", "p037", "p036", "p035"]


@pytest.mark.asyncio
async def test_index_written_newest_first(store):
    await store.put_many(
        [
            build_paper("old", published="2023-01-01T00:00:00Z"),
            build_paper("new", published="2024-01-01T00:00:00Z"),
        ]
    )

    entries = json.loads((store.root / ORDER_INDEX_FILE).read_text())
    assert [e["id"] for e in entries] == ["new", "old"]


@pytest.mark.asyncio
async def test_index_rebuilt_when_missing(tmp_path, clock):
    first = JsonPaperStore(tmp_path, clock=clock)
    await first.put_many(
        [
            build_paper("a", published="2024-01-01T00:00:00Z"),
            build_paper("b", published="2024-02-01T00:00:00Z"),
        ]
    )
    (tmp_path / ORDER_INDEX_FILE).unlink()

    second = JsonPaperStore(tmp_path, clock=clock)

    assert [p.id for p in await second.recent(10)] == ["b", "a"]
    assert await second.count() == 2
    assert (tmp_path / ORDER_INDEX_FILE).exists()


@pytest.mark.asyncio
async def test_missing_record_dropped_from_index(store):
    await store.put_many(
        [
            build_paper("a", published="2024-01-01T00:00:00Z"),
            build_paper("b", published="2024-02-01T00:00:00Z"),
            build_paper("c", published="2024-03-01T00:00:00Z"),
        ]
    )
    (store.root / "c.json").unlink()

    # The gap is filled from further down the index
    assert [p.id for p in await store.recent(2)] == ["b", "a"]
    assert await store.count() == 2


@pytest.mark.asyncio
async def test_put_many_more_than_one_batch(store):
    papers = [build_paper(f"p{i:03d}") for i in range(60)]
    await store.put_many(papers)

    assert await store.count() == 60
    assert await store.existing_ids(["p000", "p059", "nope"]) == {"p000", "p059"}


@pytest.mark.asyncio
async def test_corrupt_record_ignored(store):
    (store.root / "bad.json").write_text("{not json")
    assert await store.get("bad") is None
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_rewrite_replaces_record(tmp_path):
    clock = FakeClock()
    store = JsonPaperStore(tmp_path, clock=clock)
    await store.put_many([build_paper("a", title="First")])
    await store.put_many([build_paper("a", title="Second")])

    assert (await store.get("a")).title == "Second"
    assert await store.count() == 1
