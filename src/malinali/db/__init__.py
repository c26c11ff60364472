"""
Database Package

Provides the async SQLAlchemy engine, the schema, and the SQLite store for
corpora, corpus pairs and user-contributed pairs (with FTS5 indexes).
"""

from .session import build_engine, build_sessionmaker
from .models import Base, Corpus, PairRow, UserPairRow
from .pair_store import CorpusInfo, CorpusNotFoundError, TranslationStore
from .user_store import InvalidUserPairError, UserPairEntry, UserPairStore

__all__ = [
    "build_engine",
    "build_sessionmaker",
    "Base",
    "Corpus",
    "PairRow",
    "UserPairRow",
    "CorpusInfo",
    "CorpusNotFoundError",
    "TranslationStore",
    "InvalidUserPairError",
    "UserPairEntry",
    "UserPairStore",
]
