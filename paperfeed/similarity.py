"""Paper-to-paper similarity and top-K ranking.

Two scoring modes:

- ``embedding``: dot product of the two embeddings. Embeddings arrive
  L2-normalized from the embedding client, so this is cosine similarity.
  Vectors are not renormalized here.
- ``tags``: ``min((2 * shared tags + 1 * shared categories) / 10, 1.0)``.

The mode is chosen per pair, so a single ranking can mix both.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from paperfeed.constants import (
    CATEGORY_MATCH_WEIGHT,
    SCORE_DECIMALS,
    SIMILAR_DEFAULT_TOP_K,
    SIMILAR_EMBEDDING_THRESHOLD,
    SIMILAR_TAGS_THRESHOLD,
    TAG_MATCH_WEIGHT,
    TAG_SCORE_NORMALIZER,
)
from paperfeed.models import Paper, SimilarityMethod, SimilarityResult

# Scores must be strictly greater than the threshold for their mode
SIMILARITY_THRESHOLDS: dict[SimilarityMethod, float] = {
    "embedding": SIMILAR_EMBEDDING_THRESHOLD,
    "tags": SIMILAR_TAGS_THRESHOLD,
}


def dot_similarity(
    vec_a: Optional[Sequence[float]], vec_b: Optional[Sequence[float]]
) -> Optional[float]:
    """Dot product of two equal-length vectors, or None if not comparable."""
    if vec_a is None or vec_b is None:
        return None
    if len(vec_a) == 0 or len(vec_a) != len(vec_b):
        return None
    return float(np.dot(np.asarray(vec_a, dtype=np.float64), np.asarray(vec_b, dtype=np.float64)))


def tag_similarity(paper_a: Paper, paper_b: Paper) -> float:
    """Weighted tag/category overlap, normalized to [0, 1]."""
    shared_tags = set(paper_a.tags) & set(paper_b.tags)
    shared_cats = set(paper_a.categories) & set(paper_b.categories)
    raw = TAG_MATCH_WEIGHT * len(shared_tags) + CATEGORY_MATCH_WEIGHT * len(shared_cats)
    return min(raw / TAG_SCORE_NORMALIZER, 1.0)


def paper_similarity(
    target: Paper,
    candidate: Paper,
    method: Optional[SimilarityMethod] = None,
) -> tuple[float, SimilarityMethod]:
    """Score ``candidate`` against ``target``.

    With ``method=None`` the embedding mode is used when both papers carry
    comparable embeddings; otherwise the tag score. ``method="tags"`` forces
    the fallback. ``method="embedding"`` still degrades to tags when the
    vectors are missing or mismatched.
    """
    if method != "tags":
        score = dot_similarity(target.embedding, candidate.embedding)
        if score is not None:
            return score, "embedding"
    return tag_similarity(target, candidate), "tags"


def find_similar_papers(
    target: Paper,
    pool: Sequence[Paper],
    top_k: int = SIMILAR_DEFAULT_TOP_K,
) -> list[SimilarityResult]:
    """Return up to ``top_k`` papers from ``pool`` most similar to ``target``.

    Results never include the target, carry scores rounded to two decimals,
    and have their embeddings stripped.
    """
    if top_k <= 0 or not pool:
        return []

    scored: list[tuple[float, SimilarityMethod, Paper]] = []
    for candidate in pool:
        if candidate.id == target.id:
            continue
        score, method = paper_similarity(target, candidate)
        # Threshold applies to the score as reported
        score = round(score, SCORE_DECIMALS)
        if score > SIMILARITY_THRESHOLDS[method]:
            scored.append((score, method, candidate))

    # sort() is stable; ties keep pool order
    scored.sort(key=lambda s: s[0], reverse=True)
    return [
        SimilarityResult(
            target_id=target.id,
            paper=candidate.without_embedding(),
            score=score,
            method=method,
        )
        for score, method, candidate in scored[:top_k]
    ]


def score_against_query(
    query_embedding: Sequence[float], papers: Sequence[Paper]
) -> tuple[list[Paper], NDArray[np.float64]]:
    """Dot-product scores of ``papers`` against a query embedding.

    Papers without an embedding, or whose embedding length differs from the
    query's, are left out. Returns the scored papers and their scores.
    """
    query = np.asarray(query_embedding, dtype=np.float64)
    candidates = [
        p
        for p in papers
        if p.embedding is not None and len(p.embedding) == len(query) and len(query) > 0
    ]
    if not candidates:
        return [], np.zeros(0, dtype=np.float64)
    matrix = np.asarray([p.embedding for p in candidates], dtype=np.float64)
    return candidates, matrix @ query
