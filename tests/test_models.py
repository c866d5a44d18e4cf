from paperfeed.models import CacheEntry, Paper, SimilarityResult, Summary


def test_public_dict_flattens_summary_and_hides_embedding(make_paper):
    paper = make_paper("a", tags=("LLM", "NLP"), embedding=[0.6, 0.8])
    d = paper.to_public_dict()

    assert d["headline"] == "Headline a"
    assert d["tags"] == ["LLM", "NLP"]
    assert "embedding" not in d
    assert paper.to_dict()["embedding"] == [0.6, 0.8]


def test_from_dict_round_trip(make_paper):
    paper = make_paper("a", tags=("RL",), embedding=[1.0, 0.0])
    assert Paper.from_dict(paper.to_dict()) == paper


def test_from_dict_without_summary():
    paper = Paper.from_dict({"id": "x", "title": "T", "embedding": []})
    assert paper.summary is None
    assert paper.tags == ()
    assert paper.embedding is None
    assert "headline" not in paper.to_public_dict()


def test_embedding_helpers(make_paper):
    paper = make_paper("a")
    assert not paper.has_embedding
    embedded = paper.with_embedding([1, 2])
    assert embedded.embedding == (1.0, 2.0)
    assert embedded.without_embedding() == paper
    assert paper.without_embedding() is paper


def test_with_summary(make_paper):
    paper = make_paper("a").with_summary(Summary(headline="New", tags=("CV",)))
    assert paper.tags == ("CV",)


def test_similarity_result_dict(make_paper):
    result = SimilarityResult("t", make_paper("a"), 0.42, "tags")
    d = result.to_dict()
    assert d["similarity_score"] == 0.42
    assert d["similarity_method"] == "tags"


def test_cache_entry_freshness(make_paper):
    entry = CacheEntry(papers=[make_paper("a")], timestamp=100.0)
    assert entry.is_fresh(100.0 + 1800, 1800)
    assert not entry.is_fresh(100.0 + 1801, 1800)
    assert not CacheEntry().is_fresh(0.0, 1800)
