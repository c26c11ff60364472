"""
Per-Corpus FAISS Index Registry

Each corpus gets its own vector index under DATA_ROOT/{corpus_id}/. The
registry loads an index on first use, caches it, and lets the ingestion
pipeline swap in a freshly committed index.

Thread Safety
-------------
- The registry is protected by an RLock
- Individual FaissIndex instances have their own locks
"""

from __future__ import annotations

from threading import RLock
from typing import Dict, List, Optional

from .index import FaissIndex
from .models import IndexGeneration
from ..corpora import (
    ensure_corpus_directory,
    get_corpus_index_path,
    get_corpus_meta_path,
    validate_corpus_id,
)


class VectorIndexRegistry:
    """
    Owns the loaded FAISS indexes of one store, keyed by corpus_id.

    All indexes must belong to `generation`; loading an index from another
    generation raises IndexGenerationMismatchError.
    """

    def __init__(
        self,
        generation: IndexGeneration,
        data_root: Optional[str] = None,
    ) -> None:
        self.generation = generation
        self._data_root = data_root
        self._indexes: Dict[str, FaissIndex] = {}
        self._lock = RLock()

    def new_index(self, corpus_id: str) -> FaissIndex:
        """
        Create an empty, unregistered index bound to the corpus paths.
        """
        ensure_corpus_directory(corpus_id, self._data_root)
        return FaissIndex(
            self.generation,
            index_path=get_corpus_index_path(corpus_id, self._data_root),
            meta_path=get_corpus_meta_path(corpus_id, self._data_root),
        )

    def get(self, corpus_id: str) -> FaissIndex:
        """
        Get or load the index for a corpus.

        A corpus with no index on disk yields an empty index.
        """
        corpus_id = validate_corpus_id(corpus_id)

        with self._lock:
            if corpus_id in self._indexes:
                return self._indexes[corpus_id]

            index = self.new_index(corpus_id)
            index.load()

            self._indexes[corpus_id] = index
            return index

    def replace(self, corpus_id: str, index: FaissIndex) -> None:
        """
        Register `index` as the live index for a corpus.
        """
        corpus_id = validate_corpus_id(corpus_id)
        with self._lock:
            self._indexes[corpus_id] = index

    def evict(self, corpus_id: str) -> bool:
        """
        Remove a corpus index from the registry (does not delete files).
        """
        with self._lock:
            return self._indexes.pop(corpus_id, None) is not None

    def loaded_corpora(self) -> List[str]:
        with self._lock:
            return list(self._indexes.keys())
