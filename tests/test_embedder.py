"""
Embedding provider tests with an in-memory tokenizer and inference session.
"""

import asyncio
import threading
import time
from types import SimpleNamespace

import numpy as np
import pytest

from malinali.embeddings.embedder import (
    DimensionMismatchError,
    EmbeddingError,
    EmbeddingInitError,
    EmbeddingProvider,
    EmptyQueryError,
    EmptyTokenizationError,
    OutputNameMismatchError,
    extract_vector,
    fit_to_length,
)
from malinali.embeddings.output_names import choose_output_name

CLS, SEP, PAD = 101, 102, 0
DIM = 8
MAX_LEN = 8


class FakeTokenizer:
    """Word-per-token tokenizer wrapped in [CLS] ... [SEP]."""

    vocab = {"[CLS]": CLS, "[SEP]": SEP, "[PAD]": PAD}

    def token_to_id(self, token):
        return self.vocab.get(token)

    def encode(self, text):
        words = [w for w in text.split() if w != "<special>"]
        ids = [CLS] + [1000 + len(w) for w in words] + [SEP]
        mask = [1] + [0] * len(words) + [1]
        return SimpleNamespace(ids=ids, special_tokens_mask=mask)


class XlmRobertaTokenizer:
    """Same shape with <s> ... </s> markers and <pad> padding."""

    vocab = {"<s>": 0, "<pad>": 1, "</s>": 2}

    def token_to_id(self, token):
        return self.vocab.get(token)

    def encode(self, text):
        words = text.split()
        ids = [0] + [1000 + len(w) for w in words] + [2]
        mask = [1] + [0] * len(words) + [1]
        return SimpleNamespace(ids=ids, special_tokens_mask=mask)


class FakeSession:

    def __init__(self, outputs=None, output_names=("sentence_embedding",), input_names=None, error=None):
        self.outputs = outputs
        self.output_names = list(output_names)
        self.input_names = list(input_names or ["input_ids", "attention_mask"])
        self.error = error
        self.calls = []

    def get_inputs(self):
        return [SimpleNamespace(name=name) for name in self.input_names]

    def get_outputs(self):
        return [SimpleNamespace(name=name) for name in self.output_names]

    def run(self, output_names, feed):
        self.calls.append((output_names, feed))
        if self.error is not None:
            raise self.error
        if self.outputs is not None:
            return self.outputs
        return [np.arange(DIM * 2, dtype=np.float32).reshape(1, DIM * 2)]


class SlowSession(FakeSession):
    """Records how many run() calls overlap."""

    def __init__(self):
        super().__init__()
        self.in_flight = 0
        self.peak = 0
        self._guard = threading.Lock()

    def run(self, output_names, feed):
        with self._guard:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            time.sleep(0.02)
            return super().run(output_names, feed)
        finally:
            with self._guard:
                self.in_flight -= 1


def make_provider(session, tokenizer=None, **kwargs):
    tokenizer = tokenizer or FakeTokenizer()
    provider = EmbeddingProvider(
        "model.onnx",
        "tokenizer.json",
        dimension=DIM,
        max_length=MAX_LEN,
        model_id="fake",
        session_factory=lambda path: session,
        tokenizer_factory=lambda path: tokenizer,
        **kwargs,
    )
    provider.initialize()
    return provider


# ---------------------------------------------------------------------
# Sequence fitting
# ---------------------------------------------------------------------

class TestFitToLength:

    def test_pads_short_sequences(self):
        ids, mask = fit_to_length([CLS, 7, SEP], 6, SEP, PAD)
        assert ids == [CLS, 7, SEP, PAD, PAD, PAD]
        assert mask == [1, 1, 1, 0, 0, 0]

    def test_truncation_forces_end_marker(self):
        ids, mask = fit_to_length(list(range(1, 13)), 8, SEP, PAD)
        assert ids == [1, 2, 3, 4, 5, 6, 7, SEP]
        assert mask == [1] * 8

    def test_exact_length_untouched(self):
        ids, mask = fit_to_length([CLS, 5, 6, SEP], 4, SEP, PAD)
        assert ids == [CLS, 5, 6, SEP]
        assert mask == [1, 1, 1, 1]


class TestExtractVector:

    def test_sentence_output_truncated_to_dimension(self):
        raw = np.arange(10, dtype=np.float32).reshape(1, 10)
        assert extract_vector(raw, np.ones((1, 4)), 4) == [0.0, 1.0, 2.0, 3.0]

    def test_token_output_mean_pooled_over_mask(self):
        raw = np.array([[[1.0, 2.0], [3.0, 4.0], [100.0, 100.0]]], dtype=np.float32)
        mask = np.array([[1, 1, 0]])
        assert extract_vector(raw, mask, 2) == [2.0, 3.0]

    def test_short_output_is_an_error(self):
        raw = np.zeros((1, 3), dtype=np.float32)
        with pytest.raises(DimensionMismatchError) as exc_info:
            extract_vector(raw, np.ones((1, 4)), 8)
        assert exc_info.value.expected == 8
        assert exc_info.value.observed == 3


# ---------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------

class TestEmbeddingProvider:

    async def test_embed_returns_exactly_dimension_components(self):
        provider = make_provider(FakeSession())
        vector = await provider.embed("good morning")
        assert len(vector) == DIM
        assert vector == [float(i) for i in range(DIM)]

    async def test_feed_is_padded_int64(self):
        session = FakeSession()
        provider = make_provider(session)
        await provider.embed("hello there")

        output_names, feed = session.calls[0]
        assert output_names == ["sentence_embedding"]
        assert set(feed) == {"input_ids", "attention_mask"}
        assert feed["input_ids"].dtype == np.int64
        assert feed["input_ids"].shape == (1, MAX_LEN)
        assert feed["input_ids"][0].tolist() == [CLS, 1005, 1005, SEP, PAD, PAD, PAD, PAD]
        assert feed["attention_mask"][0].tolist() == [1, 1, 1, 1, 0, 0, 0, 0]

    async def test_long_input_truncated_with_end_marker(self):
        session = FakeSession()
        provider = make_provider(session)
        await provider.embed(" ".join(["word"] * 20))

        _, feed = session.calls[0]
        assert feed["input_ids"][0].tolist()[-1] == SEP
        assert feed["attention_mask"][0].tolist() == [1] * MAX_LEN

    async def test_token_type_ids_fed_when_declared(self):
        session = FakeSession(input_names=["input_ids", "attention_mask", "token_type_ids"])
        provider = make_provider(session)
        await provider.embed("hello")

        _, feed = session.calls[0]
        assert feed["token_type_ids"].tolist() == [[0] * MAX_LEN]

    async def test_blank_text_rejected(self):
        provider = make_provider(FakeSession())
        with pytest.raises(EmptyQueryError):
            await provider.embed("   ")

    async def test_only_special_tokens_rejected(self):
        session = FakeSession()
        provider = make_provider(session)
        with pytest.raises(EmptyTokenizationError):
            await provider.embed("<special>")
        assert session.calls == []

    async def test_short_model_output_fails(self):
        session = FakeSession(outputs=[np.zeros((1, DIM - 1), dtype=np.float32)])
        provider = make_provider(session)
        with pytest.raises(DimensionMismatchError):
            await provider.embed("hello")

    async def test_unknown_output_name_is_descriptive(self):
        session = FakeSession(
            output_names=["last_hidden_state"],
            error=RuntimeError("Invalid Output Name:embeddings"),
        )
        provider = make_provider(session, output_name="embeddings")

        with pytest.raises(OutputNameMismatchError) as exc_info:
            await provider.embed("hello")

        message = str(exc_info.value)
        assert '"embeddings"' in message
        assert '"last_hidden_state"' in message
        assert exc_info.value.available == ["last_hidden_state"]

    async def test_other_runtime_failures_wrapped(self):
        session = FakeSession(error=RuntimeError("out of memory"))
        provider = make_provider(session)
        with pytest.raises(EmbeddingError) as exc_info:
            await provider.embed("hello")
        assert not isinstance(exc_info.value, OutputNameMismatchError)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    async def test_embed_before_initialize_fails(self):
        provider = EmbeddingProvider(
            "model.onnx",
            "tokenizer.json",
            dimension=DIM,
            session_factory=lambda path: FakeSession(),
            tokenizer_factory=lambda path: FakeTokenizer(),
        )
        with pytest.raises(EmbeddingInitError):
            await provider.embed("hello")

    def test_missing_special_token_fails_initialize(self):
        provider = EmbeddingProvider(
            "model.onnx",
            "tokenizer.json",
            dimension=DIM,
            end_token="</s>",
            session_factory=lambda path: FakeSession(),
            tokenizer_factory=lambda path: FakeTokenizer(),
        )
        with pytest.raises(EmbeddingInitError):
            provider.initialize()

    async def test_xlm_roberta_special_tokens_resolved(self):
        session = FakeSession()
        provider = make_provider(session, tokenizer=XlmRobertaTokenizer())
        await provider.embed("hello")
        await provider.embed(" ".join(["word"] * 20))

        short_feed, long_feed = session.calls[0][1], session.calls[1][1]
        assert short_feed["input_ids"][0].tolist() == [0, 1005, 2, 1, 1, 1, 1, 1]
        assert short_feed["attention_mask"][0].tolist() == [1, 1, 1, 0, 0, 0, 0, 0]
        assert long_feed["input_ids"][0].tolist()[-1] == 2

    def test_configured_token_is_not_replaced_by_fallback(self):
        with pytest.raises(EmbeddingInitError):
            make_provider(FakeSession(), tokenizer=XlmRobertaTokenizer(), end_token="[SEP]")

    async def test_one_inference_at_a_time(self):
        session = SlowSession()
        provider = make_provider(session)

        vectors = await asyncio.gather(*(provider.embed(f"text {i}") for i in range(5)))

        assert len(vectors) == 5
        assert len(session.calls) == 5
        assert session.peak == 1

    def test_model_load_failure_wrapped(self):
        def broken(path):
            raise FileNotFoundError(path)

        provider = EmbeddingProvider(
            "missing.onnx",
            "tokenizer.json",
            session_factory=broken,
            tokenizer_factory=lambda path: FakeTokenizer(),
        )
        with pytest.raises(EmbeddingInitError):
            provider.initialize()
        assert not provider.is_initialized

    def test_generation_reflects_model_and_dimension(self):
        provider = make_provider(FakeSession())
        assert provider.generation.model_id == "fake"
        assert provider.generation.dimension == DIM

    async def test_context_manager_releases_session(self):
        provider = EmbeddingProvider(
            dimension=DIM,
            session_factory=lambda path: FakeSession(),
            tokenizer_factory=lambda path: FakeTokenizer(),
        )
        async with provider:
            assert provider.is_initialized
        assert not provider.is_initialized


class TestOutputNameSelection:

    def test_preferred_declared_name_wins(self):
        declared = ["last_hidden_state", "sentence_embedding"]
        assert choose_output_name(declared) == "sentence_embedding"

    def test_falls_back_to_first_declared(self):
        assert choose_output_name(["output_0", "output_1"]) == "output_0"

    def test_configured_name_overrides(self):
        assert choose_output_name(["sentence_embedding"], "embeddings") == "embeddings"

    def test_nothing_declared(self):
        assert choose_output_name([]) is None

    def test_provider_records_chosen_name(self):
        session = FakeSession(output_names=["token_embeddings", "embeddings"])
        provider = make_provider(session)
        assert provider.output_name == "embeddings"
        assert provider.declared_output_names == ["token_embeddings", "embeddings"]
