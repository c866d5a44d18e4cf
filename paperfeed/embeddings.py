"""Embedding client and paper embedding helpers."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

import httpx
import numpy as np
from numpy.typing import NDArray

from paperfeed.constants import (
    EMBEDDING_DEFAULT_MODEL,
    EMBEDDING_DEFAULT_URL,
    EMBEDDING_DIMENSION,
    EMBEDDING_HTTP_TIMEOUT,
    EMBEDDING_MIN_CLIP,
    EMBEDDING_TEXT_MAX_CHARS,
)
from paperfeed.models import Paper

logger = logging.getLogger(__name__)

# text -> normalized vector
Embedder = Callable[[str], Awaitable[list[float]]]


class EmbeddingError(RuntimeError):
    """Raised when an embedding cannot be produced."""


def normalize_embedding(vec: Sequence[float]) -> NDArray[np.float64]:
    arr = np.asarray(vec, dtype=np.float64)
    norm = np.linalg.norm(arr)
    return arr / np.clip(norm, EMBEDDING_MIN_CLIP, None)


def paper_embedding_text(paper: Paper) -> str:
    return f"{paper.title}\n\n{paper.abstract}"


class EmbeddingClient:
    """Client for an OpenAI-compatible ``/v1/embeddings`` endpoint.

    Output vectors are L2-normalized so that a dot product between two of
    them is their cosine similarity.
    """

    def __init__(
        self,
        api_key: Optional[str],
        url: str = EMBEDDING_DEFAULT_URL,
        model: str = EMBEDDING_DEFAULT_MODEL,
        dimensions: int = EMBEDDING_DIMENSION,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.model = model
        self.dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        truncated = text[:EMBEDDING_TEXT_MAX_CHARS]
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"
        payload = {
            "model": self.model,
            "input": truncated,
            "dimensions": self.dimensions,
        }
        try:
            async with httpx.AsyncClient(timeout=EMBEDDING_HTTP_TIMEOUT) as client:
                resp = await client.post(self.url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        if resp.status_code != 200:
            raise EmbeddingError(
                f"Embedding API error {resp.status_code}: {resp.text[:200]}"
            )
        try:
            vector = resp.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EmbeddingError(f"Malformed embedding response: {e}") from e
        if not isinstance(vector, list) or not vector:
            raise EmbeddingError("Embedding response contained no vector")
        return normalize_embedding(vector).tolist()

    __call__ = embed


async def embed_papers(
    papers: Sequence[Paper],
    embed: Embedder,
    delay: float = 0.0,
) -> list[Paper]:
    """Attach embeddings to ``papers``; a failed paper is kept without one."""
    results: list[Paper] = []
    for i, paper in enumerate(papers):
        try:
            vector = await embed(paper_embedding_text(paper))
            results.append(paper.with_embedding(vector))
        except Exception as e:
            logger.warning(f"Failed to generate embedding for {paper.id}: {e}")
            results.append(paper)
        if delay and i < len(papers) - 1:
            await asyncio.sleep(delay)
    return results
