"""
FAISS Vector Index

This module implements a persistent FAISS HNSW index over the embeddings of
one corpus.

Key Properties
--------------
- Explicit ID management via IndexIDMap2 (ids are the corpus point indexes)
- Cosine distance over L2-normalised vectors (lower is better)
- Per-query search radius (HNSW efSearch)
- Generation metadata persisted next to the index and checked on load
- Concurrency-safe (thread locking)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import RLock
from typing import List, Optional, Sequence, Tuple

import faiss
import numpy as np

from .models import IndexGeneration
from ..config import settings

logger = logging.getLogger("malinali.index")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class FaissIndexError(RuntimeError):
    """Base error for FAISS index failures."""


class FaissPersistenceError(FaissIndexError):
    """Raised when index persistence fails."""


class IndexGenerationMismatchError(FaissIndexError):
    """Raised when stored vectors come from a different embedding model."""

    def __init__(self, expected: IndexGeneration, observed: IndexGeneration) -> None:
        self.expected = expected
        self.observed = observed
        super().__init__(
            f"Index generation mismatch: current model is {expected}, "
            f"stored vectors were produced by {observed}. Re-ingest the corpus."
        )


# ---------------------------------------------------------------------
# FAISS Index Wrapper
# ---------------------------------------------------------------------

class FaissIndex:
    """
    Persistent FAISS HNSW index with explicit ID mapping.
    """

    def __init__(
        self,
        generation: IndexGeneration,
        index_path: Optional[str] = None,
        meta_path: Optional[str] = None,
        *,
        m: Optional[int] = None,
        ef_construction: Optional[int] = None,
    ) -> None:
        """
        Parameters
        ----------
        generation : IndexGeneration
            Embedding space of the vectors this index accepts.

        index_path, meta_path : Optional[str]
            Where `save()` and `load()` persist the index and its metadata.

        m, ef_construction : Optional[int]
            HNSW graph parameters. Default to settings.
        """
        self.generation = generation
        self._index_path = index_path
        self._meta_path = meta_path
        self._m = m or settings.hnsw_m
        self._ef_construction = ef_construction or settings.hnsw_ef_construction

        self._index: Optional[faiss.IndexIDMap2] = None
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _init_index(self) -> None:
        base = faiss.IndexHNSWFlat(
            self.generation.dimension, self._m, faiss.METRIC_INNER_PRODUCT
        )
        base.hnsw.efConstruction = self._ef_construction
        self._index = faiss.IndexIDMap2(base)

    def _as_matrix(self, vectors: Sequence[Sequence[float]]) -> np.ndarray:
        matrix = np.asarray(vectors, dtype="float32")
        if matrix.ndim != 2 or matrix.shape[1] != self.generation.dimension:
            observed = matrix.shape[-1] if matrix.ndim >= 1 else 0
            raise FaissIndexError(
                f"Vector dimension mismatch: expected {self.generation.dimension}, got {observed}."
            )
        matrix = np.ascontiguousarray(matrix)
        faiss.normalize_L2(matrix)
        return matrix

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def index_path(self) -> Optional[str]:
        return self._index_path

    @property
    def meta_path(self) -> Optional[str]:
        return self._meta_path

    @property
    def count(self) -> int:
        with self._lock:
            return int(self._index.ntotal) if self._index is not None else 0

    def add_vectors(
        self,
        ids: Sequence[int],
        vectors: Sequence[Sequence[float]],
    ) -> None:
        """
        Add vectors under explicit ids.
        """
        if not ids:
            return

        if len(ids) != len(vectors):
            raise FaissIndexError("Vector count does not match id count.")

        matrix = self._as_matrix(vectors)
        id_array = np.asarray(ids, dtype="int64")

        with self._lock:
            if self._index is None:
                self._init_index()

            try:
                self._index.add_with_ids(matrix, id_array)
            except Exception as exc:
                raise FaissIndexError(
                    f"Failed to add vectors to FAISS: {type(exc).__name__}"
                ) from exc

    def search(
        self,
        query: Sequence[float],
        k: int,
        search_radius: int,
    ) -> List[Tuple[int, float]]:
        """
        Return up to k (id, cosine distance) pairs, nearest first.

        `search_radius` is the HNSW efSearch used for this call; a wider
        radius explores more of the graph (better recall, more latency).
        """
        q = self._as_matrix([query])

        with self._lock:
            if self._index is None or self._index.ntotal == 0 or k <= 0:
                return []

            hnsw = faiss.downcast_index(self._index.index)
            hnsw.hnsw.efSearch = max(int(search_radius), 1)

            similarities, idxs = self._index.search(q, k)

        results: List[Tuple[int, float]] = []
        for similarity, idx in zip(similarities[0], idxs[0]):
            idx = int(idx)
            if idx == -1:
                continue
            results.append((idx, float(1.0 - similarity)))

        results.sort(key=lambda item: item[1])
        return results

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(
        self,
        index_path: Optional[str] = None,
        meta_path: Optional[str] = None,
    ) -> None:
        """
        Persist the index and its generation metadata.

        Explicit paths override the configured ones (used to stage a new
        index next to the live one before swapping it in).
        """
        index_path = Path(index_path or self._index_path)
        meta_path = Path(meta_path or self._meta_path)

        with self._lock:
            if self._index is None:
                self._init_index()

            index_path.parent.mkdir(parents=True, exist_ok=True)

            try:
                faiss.write_index(self._index, str(index_path))
            except Exception as exc:
                raise FaissPersistenceError(
                    f"Failed to write FAISS index: {type(exc).__name__}"
                ) from exc

            meta = {
                "model_id": self.generation.model_id,
                "dimension": self.generation.dimension,
                "count": int(self._index.ntotal),
            }

            try:
                meta_path.parent.mkdir(parents=True, exist_ok=True)
                with meta_path.open("w", encoding="utf-8") as f:
                    json.dump(meta, f)
            except Exception as exc:
                raise FaissPersistenceError(
                    f"Failed to write FAISS metadata: {type(exc).__name__}"
                ) from exc

    def load(self) -> bool:
        """
        Load index and metadata from disk.

        Returns False when no index has been written yet.

        Raises
        ------
        IndexGenerationMismatchError
            If the stored vectors belong to another embedding model.
        FaissPersistenceError
            If the files exist but cannot be read.
        """
        index_path = Path(self._index_path)
        meta_path = Path(self._meta_path)

        if not index_path.exists():
            return False

        if not meta_path.exists():
            raise FaissPersistenceError(
                f"FAISS index {index_path} has no metadata file; its generation is unknown."
            )

        try:
            with meta_path.open("r", encoding="utf-8") as f:
                meta = json.load(f)
            stored = IndexGeneration(
                model_id=meta["model_id"],
                dimension=int(meta["dimension"]),
            )
        except Exception as exc:
            raise FaissPersistenceError(
                f"Failed to load FAISS metadata: {type(exc).__name__}"
            ) from exc

        if stored != self.generation:
            raise IndexGenerationMismatchError(self.generation, stored)

        with self._lock:
            try:
                index = faiss.read_index(str(index_path))
            except Exception as exc:
                raise FaissPersistenceError(
                    f"Failed to read FAISS index: {type(exc).__name__}"
                ) from exc

            if index.d != self.generation.dimension:
                raise IndexGenerationMismatchError(
                    self.generation,
                    IndexGeneration(model_id=stored.model_id, dimension=index.d),
                )

            self._index = index

        logger.info("Loaded FAISS index %s (%d vectors, %s)", index_path, self.count, stored)
        return True
