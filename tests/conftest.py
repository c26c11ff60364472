"""
Shared fixtures: a temporary SQLite store, a vector index registry under
tmp_path, and a deterministic bag-of-words embedder standing in for the
ONNX model.
"""

import zlib
from pathlib import Path
from typing import Iterable, List, Optional

import pytest

from malinali.db.pair_store import TranslationStore
from malinali.db.user_store import UserPairStore
from malinali.embeddings.models import IndexGeneration
from malinali.embeddings.registry import VectorIndexRegistry
from malinali.ingestion.pipeline import IngestionPipeline

TEST_DIM = 16
TEST_GENERATION = IndexGeneration(model_id="test-minilm", dimension=TEST_DIM)


class FakeEmbedder:
    """
    Hashes each lowercased word into a bucket. Texts sharing words land
    close together; identical texts get identical vectors.
    """

    def __init__(self, generation: IndexGeneration = TEST_GENERATION, fail_on: Optional[str] = None):
        self.generation = generation
        self.fail_on = fail_on
        self.calls: List[str] = []

    def vector_for(self, text: str) -> List[float]:
        vector = [0.0] * self.generation.dimension
        for word in text.lower().split():
            vector[zlib.crc32(word.encode("utf-8")) % self.generation.dimension] += 1.0
        vector[0] += 1e-3
        return vector

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail_on is not None and text == self.fail_on:
            raise RuntimeError(f"model exploded on {text!r}")
        return self.vector_for(text)


def write_lines(path: Path, lines: Iterable[str]) -> Path:
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
async def store(tmp_path):
    store = await TranslationStore.open(f"sqlite+aiosqlite:///{tmp_path / 'translations.db'}")
    yield store
    await store.close()


@pytest.fixture
def registry(tmp_path):
    return VectorIndexRegistry(TEST_GENERATION, str(tmp_path / "data"))


@pytest.fixture
def user_pairs(store):
    return UserPairStore(store)


@pytest.fixture
def pipeline(store, fake_embedder, registry):
    return IngestionPipeline(store, fake_embedder, registry)


@pytest.fixture
def corpus_files(tmp_path):
    """
    Builds corpus files under tmp_path: corpus_files("en", [...]) -> Path.
    """

    def _make(name: str, lines: Iterable[str]) -> Path:
        return write_lines(tmp_path / f"{name}.txt", lines)

    return _make
