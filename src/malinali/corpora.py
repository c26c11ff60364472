"""
Corpus Identifiers

A single store can hold several independent corpora (e.g. "fula" for
English/French -> Fula). Each corpus is addressed by a `corpus_id` which is
also used to derive its on-disk vector index location:

    DATA_ROOT/{corpus_id}/vectors.faiss
    DATA_ROOT/{corpus_id}/vectors_meta.json

Security
--------
- corpus_id is validated to prevent path traversal
- Only alphanumeric characters, hyphens, and underscores allowed
- Maximum 64 characters
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from .config import settings


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

CORPUS_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")

INDEX_FILENAME = "vectors.faiss"
META_FILENAME = "vectors_meta.json"


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class InvalidCorpusIdError(ValueError):
    """Raised when a corpus_id is missing or malformed."""


# ---------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------

def validate_corpus_id(corpus_id: str) -> str:
    """Return the normalized corpus_id or raise InvalidCorpusIdError."""
    if not corpus_id or not isinstance(corpus_id, str):
        raise InvalidCorpusIdError("corpus_id is required")

    corpus_id = corpus_id.strip()

    if not CORPUS_ID_PATTERN.match(corpus_id):
        raise InvalidCorpusIdError(
            f"Invalid corpus_id '{corpus_id}': must be 1-64 alphanumeric chars, hyphens, or underscores"
        )

    if ".." in corpus_id or "/" in corpus_id or "\\" in corpus_id:
        raise InvalidCorpusIdError(f"Invalid corpus_id '{corpus_id}': path traversal detected")

    return corpus_id


# ---------------------------------------------------------------------
# Path Utilities
# ---------------------------------------------------------------------

def get_data_root(data_root: Optional[str] = None) -> Path:
    return Path(data_root or settings.data_root_path)


def get_corpus_data_path(corpus_id: str, data_root: Optional[str] = None) -> Path:
    """
    Get the data directory for a specific corpus.

    Raises
    ------
    InvalidCorpusIdError
        If corpus_id is invalid.
    """
    return get_data_root(data_root) / validate_corpus_id(corpus_id)


def get_corpus_index_path(corpus_id: str, data_root: Optional[str] = None) -> str:
    return str(get_corpus_data_path(corpus_id, data_root) / INDEX_FILENAME)


def get_corpus_meta_path(corpus_id: str, data_root: Optional[str] = None) -> str:
    return str(get_corpus_data_path(corpus_id, data_root) / META_FILENAME)


def ensure_corpus_directory(corpus_id: str, data_root: Optional[str] = None) -> Path:
    """
    Ensure the corpus data directory exists and return it.
    """
    path = get_corpus_data_path(corpus_id, data_root)
    path.mkdir(parents=True, exist_ok=True)
    return path
