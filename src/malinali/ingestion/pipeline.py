"""
Corpus Ingestion Pipeline

Builds a corpus from line-aligned text files:

1. Read and validate the files (alignment is checked before any work)
2. Embed one side of every pair, strictly one row at a time
3. Commit rows, full-text entries and vectors all at once

Ingestion is all-or-nothing. A validation error, an embedding failure or a
cancellation leaves the previously committed corpus untouched.

Commit Protocol
---------------
Under the store's write lock, one SQLite transaction replaces the corpus.
The new FAISS index is staged in temporary files before the transaction
commits and moved over the live files afterwards; any failure before the
commit rolls back the transaction and removes the staged files.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from .progress import ProgressCallback, ProgressReporter
from ..db.pair_store import EMBEDDED_SIDES, CorpusInfo, TranslationStore
from ..embeddings.embedder import EmbeddingProvider
from ..embeddings.index import IndexGenerationMismatchError
from ..embeddings.models import IndexGeneration, TranslationPair
from ..embeddings.registry import VectorIndexRegistry
from ..corpora import validate_corpus_id
from ..languages import Language

logger = logging.getLogger("malinali.ingest")

PathLike = Union[str, Path]

LOG_EVERY = 500
STAGING_SUFFIX = ".staging"


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class LineCountMismatchError(ValueError):
    """Raised when a source file and the target file disagree on line count."""

    def __init__(self, source_count: int, target_count: int, source_path: str = "") -> None:
        self.source_count = source_count
        self.target_count = target_count
        self.source_path = source_path
        where = f" in {source_path}" if source_path else ""
        super().__init__(
            f"Line count mismatch{where}: {source_count} source lines vs "
            f"{target_count} target lines (blank lines ignored)."
        )


class BlankLineMisalignmentError(ValueError):
    """Raised when a blank line in one file faces text in the other."""

    def __init__(self, line_number: int, source_path: str = "") -> None:
        self.line_number = line_number
        self.source_path = source_path
        where = f" of {source_path}" if source_path else ""
        super().__init__(
            f"Blank line misalignment at line {line_number}{where}: "
            f"one file is blank where the aligned file has text."
        )


class IngestError(RuntimeError):
    """Base error for ingestion aborts."""


class IngestEmbeddingError(IngestError):
    """Raised when embedding a row fails. The cause is chained."""

    def __init__(self, row: int, text: str) -> None:
        self.row = row
        self.text = text
        super().__init__(f"Embedding failed at row {row}: {text[:60]!r}")


class IngestCancelledError(IngestError):
    """Raised when ingestion is cancelled before commit."""

    def __init__(self, completed: int, total: int) -> None:
        self.completed = completed
        self.total = total
        super().__init__(f"Ingestion cancelled after {completed}/{total} rows; nothing was written.")


class IndexHandle(BaseModel):
    """
    Handle to a committed corpus.
    """

    corpus_id: str
    pair_count: int
    generation: IndexGeneration

    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------
# Reading & Validation
# ---------------------------------------------------------------------

def read_lines(path: PathLike) -> List[str]:
    """
    Read a UTF-8 file as trimmed lines. Blank lines are kept as "".

    A leading byte-order mark is dropped.
    """
    text = Path(path).read_text(encoding="utf-8-sig")
    return [line.strip() for line in text.splitlines()]


def align_lines(
    source_lines: Sequence[str],
    target_lines: Sequence[str],
    source_path: str = "",
) -> List[Tuple[str, str]]:
    """
    Pair two trimmed line lists, dropping blank lines.

    Raises
    ------
    LineCountMismatchError
        If the non-blank line counts differ.
    BlankLineMisalignmentError
        If the counts agree but a blank line faces text.
    """
    source_count = sum(1 for line in source_lines if line)
    target_count = sum(1 for line in target_lines if line)
    if source_count != target_count:
        raise LineCountMismatchError(source_count, target_count, source_path)

    pairs: List[Tuple[str, str]] = []
    for number in range(max(len(source_lines), len(target_lines))):
        source = source_lines[number] if number < len(source_lines) else ""
        target = target_lines[number] if number < len(target_lines) else ""
        if bool(source) != bool(target):
            raise BlankLineMisalignmentError(number + 1, source_path)
        if source:
            pairs.append((source, target))

    return pairs


def load_corpus_files(
    source_files: Sequence[Tuple[PathLike, Language]],
    target_path: PathLike,
) -> List[Tuple[str, str, Language]]:
    """
    Read every source file against the target file, in order.

    Returns (source_text, target_text, source_language) rows.
    """
    target_lines = read_lines(target_path)
    rows: List[Tuple[str, str, Language]] = []
    for source_path, language in source_files:
        aligned = align_lines(read_lines(source_path), target_lines, str(source_path))
        rows.extend((source, target, language) for source, target in aligned)
    return rows


# ---------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------

class IngestionPipeline:
    """
    Builds corpora into one store and its vector index registry.
    """

    def __init__(
        self,
        store: TranslationStore,
        embedder: EmbeddingProvider,
        registry: VectorIndexRegistry,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._registry = registry

    async def ingest(
        self,
        corpus_id: str,
        source_paths: Union[PathLike, Sequence[PathLike]],
        target_path: PathLike,
        *,
        source_languages: Sequence["str | Language"],
        target_language: "str | Language",
        embedded_side: str = "source",
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> IndexHandle:
        """
        Ingest a corpus, replacing any corpus with the same id.

        Parameters
        ----------
        corpus_id : str
            Identifier of the corpus in the store.

        source_paths : path or list of paths
            One file per source language, each line-aligned with the target.

        target_path : path
            The target-language file.

        source_languages : Sequence[str | Language]
            Language of each source file, in the same order.

        target_language : str | Language
            Language of the target file.

        embedded_side : str
            "source" or "target": which text of each pair is embedded.

        on_progress : callable(current, total)
            Called after each row, without blocking ingestion.

        cancel : asyncio.Event
            Checked at every row boundary.

        Returns
        -------
        IndexHandle

        Raises
        ------
        LineCountMismatchError, BlankLineMisalignmentError
            If the files are not aligned.
        IngestEmbeddingError
            If embedding a row fails.
        IngestCancelledError
            If `cancel` is set before commit.
        """
        corpus_id = validate_corpus_id(corpus_id)

        if isinstance(source_paths, (str, Path)):
            source_paths = [source_paths]
        source_paths = list(source_paths)
        languages = tuple(Language.parse(lang) for lang in source_languages)
        target = Language.parse(target_language)

        if not source_paths:
            raise ValueError("At least one source file is required.")
        if len(languages) != len(source_paths):
            raise ValueError(
                f"Got {len(source_paths)} source files but {len(languages)} source languages."
            )
        if target in languages:
            raise ValueError(f"Target language {target.value} is also a source language.")
        if embedded_side not in EMBEDDED_SIDES:
            raise ValueError(f"embedded_side must be one of {EMBEDDED_SIDES}, got {embedded_side!r}")

        generation = self._embedder.generation
        if generation != self._registry.generation:
            raise IndexGenerationMismatchError(self._registry.generation, generation)

        rows = load_corpus_files(list(zip(source_paths, languages)), target_path)
        total = len(rows)
        logger.info(
            "Ingesting corpus %s: %d pairs from %d source file(s), embedding %s side",
            corpus_id,
            total,
            len(source_paths),
            embedded_side,
        )

        reporter = ProgressReporter(on_progress)
        try:
            pairs = await self._embed_rows(
                [(source, target_text) for source, target_text, _ in rows],
                embedded_side,
                reporter,
                cancel,
            )
        finally:
            await reporter.flush()

        if cancel is not None and cancel.is_set():
            raise IngestCancelledError(total, total)

        info = CorpusInfo(
            corpus_id=corpus_id,
            source_languages=languages,
            target_language=target,
            embedded_side=embedded_side,
            generation=generation,
            pair_count=total,
        )
        await self._commit(info, pairs, [language for _, _, language in rows])

        logger.info("Corpus %s committed: %d pairs (%s)", corpus_id, total, generation)
        return IndexHandle(corpus_id=corpus_id, pair_count=total, generation=generation)

    async def _embed_rows(
        self,
        rows: Sequence[Tuple[str, str]],
        embedded_side: str,
        reporter: ProgressReporter,
        cancel: Optional[asyncio.Event],
    ) -> List[TranslationPair]:
        total = len(rows)
        # Several source files share one target file; embed each text once.
        cache: Dict[str, List[float]] = {}
        pairs: List[TranslationPair] = []

        for row, (source_text, target_text) in enumerate(rows, start=1):
            if cancel is not None and cancel.is_set():
                logger.info("Ingestion cancelled at row %d/%d", row - 1, total)
                raise IngestCancelledError(row - 1, total)

            text = source_text if embedded_side == "source" else target_text
            vector = cache.get(text)
            if vector is None:
                try:
                    vector = await self._embedder.embed(text)
                except Exception as exc:
                    logger.error("Embedding failed at row %d/%d: %s", row, total, exc)
                    raise IngestEmbeddingError(row, text) from exc
                cache[text] = vector

            pairs.append(
                TranslationPair(source_text=source_text, target_text=target_text, embedding=vector)
            )
            reporter.report(row, total)

            if row % LOG_EVERY == 0:
                logger.info("Embedded %d/%d rows", row, total)

        return pairs

    async def _commit(
        self,
        info: CorpusInfo,
        pairs: Sequence[TranslationPair],
        row_languages: Sequence[Language],
    ) -> None:
        index = self._registry.new_index(info.corpus_id)
        staged_index = index.index_path + STAGING_SUFFIX
        staged_meta = index.meta_path + STAGING_SUFFIX

        async with self._store.write_lock:
            try:
                async with self._store.session() as session:
                    async with session.begin():
                        ids = await self._store.replace_corpus(session, info, pairs, row_languages)
                        # FAISS build and write run off the event loop
                        await asyncio.to_thread(
                            index.add_vectors, ids, [pair.embedding for pair in pairs]
                        )
                        await asyncio.to_thread(index.save, staged_index, staged_meta)
            except BaseException:
                _remove_quietly(staged_index, staged_meta)
                raise

            os.replace(staged_index, index.index_path)
            os.replace(staged_meta, index.meta_path)
            self._registry.replace(info.corpus_id, index)


def _remove_quietly(*paths: str) -> None:
    for path in paths:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
