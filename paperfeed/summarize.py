"""Batch summarization of papers with templated fallbacks."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from paperfeed.constants import (
    ABSTRACT_MAX_CHARS,
    FALLBACK_TAG_COUNT,
    HEADLINE_FALLBACK_CHARS,
    SUMMARY_BATCH_DELAY,
    SUMMARY_BATCH_SIZE,
    SUMMARY_TAG_VOCABULARY,
    SUMMARY_TOKENS_PER_PAPER,
)
from paperfeed.embeddings import Embedder, embed_papers
from paperfeed.llm import TextCompleter
from paperfeed.llm_utils import parse_json_array
from paperfeed.models import Paper, Summary

logger = logging.getLogger(__name__)


def truncate_abstract(abstract: str, max_length: int = ABSTRACT_MAX_CHARS) -> str:
    if len(abstract) <= max_length:
        return abstract
    return abstract[:max_length] + "..."


def _fallback_tags(paper: Paper) -> tuple[str, ...]:
    return tuple(paper.categories[:FALLBACK_TAG_COUNT])


def fallback_summary(paper: Paper) -> Summary:
    return Summary(
        headline=paper.title[:HEADLINE_FALLBACK_CHARS],
        problem="See abstract for problem statement.",
        approach="See abstract for methodology.",
        method="See abstract for technical details.",
        findings="See abstract for key results.",
        takeaway="Read the full paper for insights.",
        tags=_fallback_tags(paper),
    )


def _text_or_none(value: object) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def summary_from_dict(paper: Paper, data: dict[str, object]) -> Summary:
    """Build a Summary from one parsed model item, filling gaps per field."""
    raw_tags = data.get("tags")
    tags: tuple[str, ...]
    if isinstance(raw_tags, list) and raw_tags:
        tags = tuple(str(t) for t in raw_tags if isinstance(t, str) and t.strip())
    else:
        tags = _fallback_tags(paper)
    return Summary(
        headline=_text_or_none(data.get("headline")) or paper.title[:HEADLINE_FALLBACK_CHARS],
        problem=_text_or_none(data.get("problem")),
        approach=_text_or_none(data.get("approach")),
        method=_text_or_none(data.get("method")),
        findings=_text_or_none(data.get("findings")),
        takeaway=_text_or_none(data.get("takeaway")),
        tags=tags,
    )


def build_batch_prompt(papers: Sequence[Paper]) -> str:
    papers_text = "\n\n".join(
        f'[{i + 1}] "{p.title}"\n{truncate_abstract(p.abstract)}'
        for i, p in enumerate(papers)
    )
    vocabulary = ", ".join(SUMMARY_TAG_VOCABULARY)
    return f"""Analyze these {len(papers)} AI/ML papers. Return a JSON array with structured summaries.

{papers_text}

For each paper return:
{{
  "id": 1,
  "headline": "Catchy 5-10 word headline",
  "problem": "One sentence: What problem does this solve?",
  "approach": "One sentence: How do they solve it?",
  "method": "One sentence: Key technical innovation",
  "findings": "One sentence: Main results/impact",
  "takeaway": "One sentence: Why this matters for practitioners",
  "tags": ["tag1", "tag2"]
}}

Keep each field concise (under 25 words). Tags: {vocabulary}

Return ONLY a JSON array, no markdown."""


def _match_item(items: list[object], index: int) -> Optional[dict[str, object]]:
    if index < len(items) and isinstance(items[index], dict):
        return items[index]  # type: ignore[return-value]
    for item in items:
        if isinstance(item, dict) and item.get("id") == index + 1:
            return item
    return None


async def summarize_batch(papers: Sequence[Paper], complete: TextCompleter) -> list[Paper]:
    """Summarize ``papers`` in one request.

    Collaborator errors propagate. An unparseable response falls back for
    the whole batch; a missing item falls back for that paper only.
    """
    text = await complete(
        build_batch_prompt(papers), SUMMARY_TOKENS_PER_PAPER * len(papers)
    )
    items = parse_json_array(text)
    if items is None:
        logger.warning(f"Failed to parse batch response: {text[:200]!r}")
        return [p.with_summary(fallback_summary(p)) for p in papers]

    logger.debug(f"Parsed {len(items)} summaries")
    results: list[Paper] = []
    for i, paper in enumerate(papers):
        item = _match_item(items, i)
        if item is None:
            results.append(paper.with_summary(fallback_summary(paper)))
        else:
            results.append(paper.with_summary(summary_from_dict(paper, item)))
    return results


async def summarize_papers(
    papers: Sequence[Paper],
    complete: TextCompleter,
    embed: Optional[Embedder] = None,
    batch_size: int = SUMMARY_BATCH_SIZE,
    delay: float = SUMMARY_BATCH_DELAY,
) -> list[Paper]:
    """Summarize ``papers`` in batches, then embed them when ``embed`` is given.

    Never raises for collaborator failures: a failed batch gets templated
    summaries and a failed embedding leaves that paper without one.
    """
    summarized: list[Paper] = []
    total = len(papers)
    for i in range(0, total, batch_size):
        batch = papers[i : i + batch_size]
        try:
            summarized.extend(await summarize_batch(batch, complete))
        except Exception as e:
            logger.warning(f"Batch {i // batch_size + 1} failed: {e}")
            summarized.extend(p.with_summary(fallback_summary(p)) for p in batch)

        logger.info(f"Processed {min(i + batch_size, total)}/{total} papers")
        if delay and i + batch_size < total:
            await asyncio.sleep(delay)

    if embed is None:
        return summarized
    return await embed_papers(summarized, embed)
