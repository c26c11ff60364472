"""
Translate a phrase against an ingested corpus and print the split view.

Example
-------
    python scripts/query_corpus.py "good morning" --from en --to ff
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from malinali.config import settings
from malinali.db.pair_store import TranslationStore
from malinali.embeddings.embedder import EmbeddingProvider
from malinali.embeddings.registry import VectorIndexRegistry
from malinali.retrieval.hybrid import HybridSearcher
from malinali.retrieval.presentation import render_split_view


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Look up translations of a phrase.")
    parser.add_argument("query")
    parser.add_argument("--from", dest="source_language", required=True)
    parser.add_argument("--to", dest="target_language", required=True)
    parser.add_argument("--corpus-id", default=settings.default_corpus_id)
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> None:
    store = await TranslationStore.open(settings.database_url)
    try:
        async with EmbeddingProvider() as provider:
            registry = VectorIndexRegistry(provider.generation, settings.data_root_path)
            searcher = HybridSearcher(store, provider, registry)
            result = await searcher.translate(
                args.query,
                args.source_language,
                args.target_language,
                corpus_id=args.corpus_id,
            )
    finally:
        await store.close()

    print(render_split_view(result))


def main() -> None:
    logging.basicConfig(level=settings.log_level)
    asyncio.run(run(parse_args()))


if __name__ == "__main__":
    main()
