"""
Ingest a line-aligned parallel corpus.

Example
-------
    python scripts/ingest_corpus.py \\
        --corpus-id fula \\
        --source data/src_eng.txt:en \\
        --source data/src_fra.txt:fr \\
        --target data/tgt_ful.txt:ff
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Tuple

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from tqdm import tqdm

from malinali.config import settings
from malinali.db.pair_store import TranslationStore
from malinali.embeddings.embedder import EmbeddingProvider
from malinali.embeddings.registry import VectorIndexRegistry
from malinali.ingestion.pipeline import IngestCancelledError, IngestionPipeline

logger = logging.getLogger("malinali.ingest")


def _file_and_language(value: str) -> Tuple[str, str]:
    path, sep, language = value.rpartition(":")
    if not sep or not path or not language:
        raise argparse.ArgumentTypeError(f"expected PATH:LANGUAGE, got {value!r}")
    return path, language


def parse_args(argv: List[str] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--corpus-id", default=settings.default_corpus_id)
    parser.add_argument(
        "--source",
        action="append",
        required=True,
        type=_file_and_language,
        metavar="PATH:LANGUAGE",
        help="Source file and its language; repeat for each source file.",
    )
    parser.add_argument(
        "--target",
        required=True,
        type=_file_and_language,
        metavar="PATH:LANGUAGE",
    )
    parser.add_argument(
        "--embed",
        choices=["source", "target"],
        default="source",
        help="Which side of each pair gets embedded.",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    except NotImplementedError:
        logger.debug("Signal handlers unsupported here; Ctrl+C aborts without cleanup")

    store = await TranslationStore.open(settings.database_url)
    try:
        async with EmbeddingProvider() as provider:
            registry = VectorIndexRegistry(provider.generation, settings.data_root_path)
            pipeline = IngestionPipeline(store, provider, registry)

            with tqdm(desc=f"Embedding {args.corpus_id}", unit="pair") as bar:

                def on_progress(current: int, total: int) -> None:
                    bar.total = total
                    bar.n = current
                    bar.refresh()

                try:
                    handle = await pipeline.ingest(
                        args.corpus_id,
                        [path for path, _ in args.source],
                        args.target[0],
                        source_languages=[lang for _, lang in args.source],
                        target_language=args.target[1],
                        embedded_side=args.embed,
                        on_progress=on_progress,
                        cancel=cancel,
                    )
                except IngestCancelledError as exc:
                    logger.warning("%s", exc)
                    return 130
    finally:
        await store.close()

    logger.info(
        "Ingested %d pairs into corpus %s (%s)",
        handle.pair_count,
        handle.corpus_id,
        handle.generation,
    )
    return 0


def main() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(run(parse_args())))


if __name__ == "__main__":
    main()
