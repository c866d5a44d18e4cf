import pytest

from paperfeed.similarity import (
    dot_similarity,
    find_similar_papers,
    paper_similarity,
    tag_similarity,
)


def test_fallback_score_three_tags_one_category(make_paper):
    a = make_paper("a", tags=["LLM", "RL", "Data", "Vision"], categories=["cs.LG", "cs.AI"])
    b = make_paper("b", tags=["LLM", "RL", "Data"], categories=["cs.LG", "cs.CV"])
    assert tag_similarity(a, b) == pytest.approx(0.7)


def test_fallback_score_capped_at_one(make_paper):
    tags = ["LLM", "RL", "Data", "Vision", "NLP", "Safety"]
    a = make_paper("a", tags=tags)
    b = make_paper("b", tags=tags)
    assert tag_similarity(a, b) == 1.0


def test_fallback_ignores_order_and_duplicates(make_paper):
    a = make_paper("a", tags=["LLM", "Efficiency", "LLM"], categories=["cs.LG"])
    b = make_paper("b", tags=["Efficiency", "LLM"], categories=["cs.LG"])
    assert tag_similarity(a, b) == pytest.approx(0.5)


def test_shared_tags_each_in_others_results(make_paper):
    a = make_paper("2401.00001v1", tags=["LLM", "Efficiency"], categories=["cs.LG"])
    b = make_paper("2401.00002v1", tags=["LLM", "Efficiency"], categories=["cs.LG"])
    pool = [a, b]

    for target, other in ((a, b), (b, a)):
        results = find_similar_papers(target, pool, top_k=3)
        assert len(results) == 1
        assert results[0].paper.id == other.id
        assert results[0].score == 0.5
        assert results[0].method == "tags"


def test_embedding_mode_is_raw_dot_product(make_paper):
    # No renormalization: unnormalized inputs give an unbounded score
    a = make_paper("a", embedding=[2.0, 0.0])
    b = make_paper("b", embedding=[1.0, 0.0])
    score, method = paper_similarity(a, b)
    assert method == "embedding"
    assert score == pytest.approx(2.0)


def test_mismatched_embeddings_fall_back_to_tags(make_paper):
    a = make_paper("a", tags=["LLM"], embedding=[1.0, 0.0, 0.0])
    b = make_paper("b", tags=["LLM"], embedding=[1.0, 0.0])
    score, method = paper_similarity(a, b)
    assert method == "tags"
    assert score == pytest.approx(0.3)


def test_explicit_tags_mode(make_paper):
    a = make_paper("a", tags=["LLM"], embedding=[1.0, 0.0])
    b = make_paper("b", tags=["LLM"], embedding=[1.0, 0.0])
    _, method = paper_similarity(a, b, method="tags")
    assert method == "tags"


def test_dot_similarity_missing_vector():
    assert dot_similarity(None, [1.0]) is None
    assert dot_similarity([], []) is None


def test_mode_varies_per_candidate(make_paper):
    target = make_paper("t", tags=["LLM", "RL"], embedding=[1.0, 0.0])
    embedded = make_paper("e", tags=[], categories=["cs.CV"], embedding=[0.9, 0.1])
    tag_only = make_paper("g", tags=["LLM", "RL"])
    results = find_similar_papers(target, [embedded, tag_only], top_k=5)
    methods = {r.paper.id: r.method for r in results}
    assert methods == {"e": "embedding", "g": "tags"}


def test_target_without_embedding_uses_tags(make_paper):
    target = make_paper("t", tags=["LLM", "RL"])
    others = [
        make_paper("x", tags=["LLM", "RL"], embedding=[1.0, 0.0]),
        make_paper("y", tags=["LLM", "RL", "Data"], embedding=[0.0, 1.0]),
    ]
    results = find_similar_papers(target, others, top_k=5)
    assert [r.method for r in results] == ["tags", "tags"]


def test_threshold_is_exclusive(make_paper):
    target = make_paper("t", tags=[], categories=["cs.LG", "cs.AI", "cs.CL"])
    at_threshold = make_paper("x", tags=[], categories=["cs.LG", "cs.AI", "cs.CL"])
    assert find_similar_papers(target, [at_threshold]) == []


def test_threshold_checked_on_reported_score(make_paper):
    target = make_paper("t", embedding=[1.0, 0.0])
    just_above = make_paper("a", embedding=[0.3004, (1 - 0.3004**2) ** 0.5])
    clearly_above = make_paper("b", embedding=[0.3051, (1 - 0.3051**2) ** 0.5])

    results = find_similar_papers(target, [just_above, clearly_above])

    assert [(r.paper.id, r.score) for r in results] == [("b", 0.31)]


def test_empty_pool_and_non_positive_top_k(make_paper):
    target = make_paper("t", tags=["LLM", "RL"])
    other = make_paper("o", tags=["LLM", "RL"])
    assert find_similar_papers(target, []) == []
    assert find_similar_papers(target, [other], top_k=0) == []
    assert find_similar_papers(target, [other], top_k=-1) == []


def test_results_sorted_truncated_and_stripped(make_paper):
    target = make_paper("t", embedding=[1.0, 0.0])
    pool = [
        target,
        make_paper("low", embedding=[0.5, 0.866]),
        make_paper("high", embedding=[0.95, 0.312]),
        make_paper("mid", embedding=[0.8, 0.6]),
        make_paper("none", embedding=[0.0, 1.0]),
    ]
    results = find_similar_papers(target, pool, top_k=2)
    assert [r.paper.id for r in results] == ["high", "mid"]
    assert results[0].score == 0.95
    assert all(r.paper.embedding is None for r in results)
    assert all(r.target_id == "t" for r in results)
    assert "embedding" not in results[0].to_dict()
    assert results[0].to_dict()["similarity_method"] == "embedding"
