from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from paperfeed.config import Settings
from paperfeed.embeddings import Embedder, EmbeddingClient
from paperfeed.feed_cache import FeedCache
from paperfeed.llm import AnthropicClient, TextCompleter
from paperfeed.pipeline import make_enricher, make_live_loader
from paperfeed.store import JsonPaperStore, PaperStore


@dataclass
class Services:
    """Collaborators shared by the HTTP app and the CLI."""

    complete: TextCompleter
    embed: Embedder
    store: Optional[PaperStore]
    cache: FeedCache


def build_services(settings: Settings) -> Services:
    complete = AnthropicClient(settings.anthropic_api_key, model=settings.llm_model)
    embed = EmbeddingClient(
        settings.embedding_api_key,
        url=settings.embedding_url,
        model=settings.embedding_model,
    )
    # No store directory means live-fetch-only mode
    store = JsonPaperStore(settings.store_dir) if settings.store_dir else None
    loader = make_live_loader(make_enricher(complete, embed))
    return Services(
        complete=complete,
        embed=embed,
        store=store,
        cache=FeedCache(loader, store=store),
    )
