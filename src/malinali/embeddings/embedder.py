"""
Embedding Provider

This module wraps a local ONNX sentence-embedding model (a multilingual
MiniLM export) and its HuggingFace `tokenizer.json`. It is responsible for:

- Tokenizing text and fitting it to the model's fixed sequence length
- Running exactly one inference per call, serialized per instance
- Resolving the output tensor name, which varies between model exports
- Strict output validation (no silent padding of short vectors)

The provider owns its inference session. Create it once, `initialize()`
it (or use it as an async context manager) and pass it explicitly to the
components that need it.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np
import onnxruntime as ort
from tokenizers import Tokenizer

from ..config import settings
from .models import IndexGeneration
from .output_names import (
    choose_output_name,
    describe_output_name_error,
    inspect_input_names,
    inspect_output_names,
    is_output_name_error,
)

logger = logging.getLogger("malinali.embedder")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class EmbeddingError(RuntimeError):
    """Raised when embedding generation fails."""


class EmbeddingInitError(EmbeddingError):
    """Raised when the model or tokenizer cannot be loaded."""


class DimensionMismatchError(EmbeddingError):
    """Raised when the model output is shorter than the configured dimension."""

    def __init__(self, expected: int, observed: int) -> None:
        self.expected = expected
        self.observed = observed
        super().__init__(
            f"Embedding dimension mismatch: expected at least {expected} "
            f"components, model produced {observed}."
        )


class OutputNameMismatchError(EmbeddingError):
    """Raised when the model rejects the requested output tensor name."""

    def __init__(
        self,
        expected: Optional[str],
        available: Sequence[str],
        original: Optional[BaseException] = None,
    ) -> None:
        self.expected = expected
        self.available = list(available)
        super().__init__(describe_output_name_error(expected, self.available, original))


class EmptyQueryError(ValueError):
    """Raised when the text to embed or search is blank."""


class EmptyTokenizationError(ValueError):
    """Raised when the tokenizer yields no content tokens for a text."""


# ---------------------------------------------------------------------
# Sequence helpers
# ---------------------------------------------------------------------

def fit_to_length(
    token_ids: Sequence[int],
    length: int,
    end_token_id: int,
    pad_token_id: int,
) -> Tuple[List[int], List[int]]:
    """
    Pad or truncate a token sequence to exactly `length` positions.

    Truncation keeps the leading tokens and forces the last position to the
    end marker so the model still sees a terminated sequence.

    Returns
    -------
    (input_ids, attention_mask)
    """
    ids = list(token_ids)

    if len(ids) > length:
        ids = ids[:length]
        ids[-1] = end_token_id
        return ids, [1] * length

    mask = [1] * len(ids) + [0] * (length - len(ids))
    ids = ids + [pad_token_id] * (length - len(ids))
    return ids, mask


def extract_vector(
    raw_output: Any,
    attention_mask: np.ndarray,
    dimension: int,
) -> List[float]:
    """
    Turn a raw model output into a `dimension`-length vector.

    Sentence-level outputs (batch, hidden) are used as-is; token-level
    outputs (batch, seq, hidden) are mean-pooled over the attention mask.

    Raises
    ------
    DimensionMismatchError
        If fewer than `dimension` components are available.
    """
    arr = np.asarray(raw_output, dtype=np.float32)

    if arr.ndim == 3:
        mask = attention_mask.astype(np.float32)[..., None]
        summed = (arr * mask).sum(axis=1)
        counts = np.clip(mask.sum(axis=1), 1e-9, None)
        arr = summed / counts

    flat = arr.reshape(-1)
    if flat.size < dimension:
        raise DimensionMismatchError(dimension, int(flat.size))

    return [float(x) for x in flat[:dimension]]


# Tried in order when no special token is configured: XLM-R style vocabularies
# (the multilingual MiniLM) first, then BERT style.
END_TOKEN_CANDIDATES = ("</s>", "[SEP]")
PAD_TOKEN_CANDIDATES = ("<pad>", "[PAD]")


def resolve_special_token(
    tokenizer: Any,
    configured: Optional[str],
    candidates: Sequence[str],
) -> Tuple[Optional[str], Optional[int]]:
    """
    Find the first token of `candidates` (or only `configured`, when set)
    present in the vocabulary.

    Returns
    -------
    (token, token_id), or (None, None) when none is present.
    """
    for token in ([configured] if configured else candidates):
        token_id = tokenizer.token_to_id(token)
        if token_id is not None:
            return token, int(token_id)
    return None, None


def _default_session_factory(model_path: str) -> Any:
    return ort.InferenceSession(model_path, providers=["CPUExecutionProvider"])


def _default_tokenizer_factory(tokenizer_path: str) -> Any:
    tokenizer = Tokenizer.from_file(tokenizer_path)
    # Sequence fitting is done by the provider.
    tokenizer.no_truncation()
    tokenizer.no_padding()
    return tokenizer


# ---------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------

class EmbeddingProvider:
    """
    Local ONNX embedding provider producing fixed-dimension vectors.

    At most one inference runs at a time per instance; tokenization of the
    next text may proceed while another inference is in flight.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        tokenizer_path: Optional[str] = None,
        *,
        dimension: Optional[int] = None,
        max_length: Optional[int] = None,
        output_name: Optional[str] = None,
        model_id: Optional[str] = None,
        end_token: Optional[str] = None,
        pad_token: Optional[str] = None,
        session_factory: Optional[Callable[[str], Any]] = None,
        tokenizer_factory: Optional[Callable[[str], Any]] = None,
    ) -> None:
        """
        Parameters
        ----------
        model_path, tokenizer_path : Optional[str]
            ONNX model and tokenizer.json locations. Default to settings.

        dimension : Optional[int]
            Number of leading output components returned (D).

        max_length : Optional[int]
            Fixed sequence length (L) fed to the model.

        output_name : Optional[str]
            Force a specific output tensor. When omitted the name is chosen
            from what the model declares.

        session_factory, tokenizer_factory : Optional[Callable]
            Overrides for loading the runtime objects (used by tests).
        """
        self.model_path = model_path or settings.embedding_model_path
        self.tokenizer_path = tokenizer_path or settings.tokenizer_path
        self.dimension = dimension or settings.embedding_dim
        self.max_length = max_length or settings.max_sequence_length
        self.model_id = model_id or settings.embedding_model_id
        self._configured_output_name = output_name or settings.embedding_output_name
        self._end_token = end_token or settings.end_token
        self._pad_token = pad_token or settings.pad_token
        self._session_factory = session_factory or _default_session_factory
        self._tokenizer_factory = tokenizer_factory or _default_tokenizer_factory

        self._session: Any = None
        self._tokenizer: Any = None
        self._input_names: List[str] = []
        self._output_names: List[str] = []
        self._output_name: Optional[str] = None
        self._end_token_id: Optional[int] = None
        self._pad_token_id: Optional[int] = None

        self._inference_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._session is not None and self._tokenizer is not None

    @property
    def generation(self) -> IndexGeneration:
        return IndexGeneration(model_id=self.model_id, dimension=self.dimension)

    @property
    def output_name(self) -> Optional[str]:
        return self._output_name

    @property
    def declared_output_names(self) -> List[str]:
        return list(self._output_names)

    def initialize(self) -> None:
        """
        Load tokenizer and model, and resolve the output tensor name.

        Safe to call more than once.

        Raises
        ------
        EmbeddingInitError
            If either artifact cannot be loaded or the special tokens are
            missing from the vocabulary.
        """
        if self.is_initialized:
            return

        try:
            tokenizer = self._tokenizer_factory(self.tokenizer_path)
        except Exception as exc:
            raise EmbeddingInitError(
                f"Failed to load tokenizer from {self.tokenizer_path}: {exc}"
            ) from exc

        end_token, end_id = resolve_special_token(
            tokenizer, self._end_token, END_TOKEN_CANDIDATES
        )
        pad_token, pad_id = resolve_special_token(
            tokenizer, self._pad_token, PAD_TOKEN_CANDIDATES
        )
        if end_id is None or pad_id is None:
            raise EmbeddingInitError(
                f"Tokenizer vocabulary lacks special tokens: "
                f"end {self._end_token or END_TOKEN_CANDIDATES!r} -> {end_id}, "
                f"pad {self._pad_token or PAD_TOKEN_CANDIDATES!r} -> {pad_id}"
            )
        logger.info("Special tokens: end=%r (%d), pad=%r (%d)", end_token, end_id, pad_token, pad_id)

        try:
            session = self._session_factory(self.model_path)
        except Exception as exc:
            raise EmbeddingInitError(
                f"Failed to load ONNX model from {self.model_path}: {exc}"
            ) from exc

        self._input_names = inspect_input_names(session)
        self._output_names = inspect_output_names(session)
        self._output_name = choose_output_name(
            self._output_names, self._configured_output_name
        )

        logger.info("Model output names: %s", self._output_names)
        if self._output_name not in self._output_names:
            logger.warning(
                "Requested output %r is not declared by the model (declared: %s)",
                self._output_name,
                self._output_names,
            )

        self._tokenizer = tokenizer
        self._end_token_id = int(end_id)
        self._pad_token_id = int(pad_id)
        self._session = session

    def close(self) -> None:
        """Release the inference session and tokenizer."""
        self._session = None
        self._tokenizer = None

    async def __aenter__(self) -> "EmbeddingProvider":
        self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> List[float]:
        """
        Generate the embedding for one text.

        The work runs in a worker thread so the event loop stays free while
        the model computes.

        Raises
        ------
        EmptyQueryError, EmptyTokenizationError
            For blank input or input with no content tokens.
        DimensionMismatchError, OutputNameMismatchError, EmbeddingError
            For model-side failures.
        """
        if not text or not text.strip():
            raise EmptyQueryError("Cannot embed empty text.")
        self._ensure_initialized()
        return await asyncio.to_thread(self.embed_sync, text)

    def embed_sync(self, text: str) -> List[float]:
        self._ensure_initialized()

        input_ids, attention_mask = self._encode(text)
        raw = self._run(input_ids, attention_mask)
        return extract_vector(raw, attention_mask, self.dimension)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_initialized(self) -> None:
        if not self.is_initialized:
            raise EmbeddingInitError(
                "EmbeddingProvider not initialized. Call initialize() first."
            )

    def _encode(self, text: str) -> Tuple[np.ndarray, np.ndarray]:
        encoding = self._tokenizer.encode(text)
        ids = list(encoding.ids)
        special = list(getattr(encoding, "special_tokens_mask", [0] * len(ids)))

        if not ids or all(special):
            raise EmptyTokenizationError(f"Tokenization returned no tokens for: {text!r}")

        fitted, mask = fit_to_length(
            ids, self.max_length, self._end_token_id, self._pad_token_id
        )
        return (
            np.asarray([fitted], dtype=np.int64),
            np.asarray([mask], dtype=np.int64),
        )

    def _run(self, input_ids: np.ndarray, attention_mask: np.ndarray) -> Any:
        feed = {
            "input_ids": input_ids,
            "attention_mask": attention_mask,
            "token_type_ids": np.zeros_like(input_ids),
        }
        if self._input_names:
            feed = {name: value for name, value in feed.items() if name in self._input_names}

        with self._inference_lock:
            try:
                requested = [self._output_name] if self._output_name else None
                outputs = self._session.run(requested, feed)
            except Exception as exc:
                if is_output_name_error(exc):
                    logger.error(
                        "Output name %r rejected by model (declared: %s)",
                        self._output_name,
                        self._output_names,
                    )
                    raise OutputNameMismatchError(
                        self._output_name, self._output_names, exc
                    ) from exc
                raise EmbeddingError(
                    f"Model inference failed: {type(exc).__name__}: {exc}"
                ) from exc

        if not outputs:
            raise EmbeddingError("Model inference returned no outputs.")

        return outputs[0]
