"""
Request dependencies.

Long-lived resources are created by the application lifespan and kept on
`app.state`; these accessors hand them to routes and are the seams tests
override.
"""

from fastapi import Request

from ..db.pair_store import TranslationStore
from ..db.user_store import UserPairStore
from ..embeddings.registry import VectorIndexRegistry
from ..retrieval.hybrid import HybridSearcher


def get_store(request: Request) -> TranslationStore:
    return request.app.state.store


def get_registry(request: Request) -> VectorIndexRegistry:
    return request.app.state.registry


def get_user_pairs(request: Request) -> UserPairStore:
    return request.app.state.user_pairs


def get_searcher(request: Request) -> HybridSearcher:
    return request.app.state.searcher
