"""
HTTP surface tests. Resources on app.state are replaced through
dependency overrides; the lifespan never runs under ASGITransport.
"""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from malinali.api.dependencies import get_registry, get_searcher, get_store, get_user_pairs
from malinali.db.pair_store import CorpusNotFoundError, TranslationStore
from malinali.db.user_store import InvalidUserPairError, UserPairEntry, UserPairStore
from malinali.embeddings.embedder import DimensionMismatchError, EmptyQueryError
from malinali.embeddings.index import IndexGenerationMismatchError
from malinali.embeddings.models import IndexGeneration, SearchCandidate, TranslationPair
from malinali.embeddings.registry import VectorIndexRegistry
from malinali.languages import Language
from malinali.main import create_app
from malinali.retrieval.hybrid import HybridSearcher, UnsupportedLanguagePairError
from malinali.retrieval.rerank import Direction, TranslationResult


@pytest.fixture
def searcher():
    return AsyncMock(spec=HybridSearcher)


@pytest.fixture
def user_pairs():
    return AsyncMock(spec=UserPairStore)


@pytest.fixture
def store():
    return AsyncMock(spec=TranslationStore)


@pytest.fixture
def registry():
    return MagicMock(spec=VectorIndexRegistry)


@pytest.fixture
def app(searcher, user_pairs, store, registry):
    app = create_app()
    app.dependency_overrides[get_searcher] = lambda: searcher
    app.dependency_overrides[get_user_pairs] = lambda: user_pairs
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_registry] = lambda: registry
    yield app
    app.dependency_overrides = {}


@pytest.fixture
async def async_client(app):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


TRANSLATE = {"query": "hello", "source_language": "en", "target_language": "ff"}


async def test_health(async_client):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "default_corpus": "fula"}


# ---------------------------------------------------------------------
# /translate
# ---------------------------------------------------------------------

async def test_translate_split_view(async_client, searcher):
    exact = SearchCandidate(
        pair=TranslationPair(source_text="hello", target_text="xxx", point_index=1),
        lexical_rank=-2.5,
        in_lexical=True,
        is_exact_match=True,
    )
    close = SearchCandidate(
        pair=TranslationPair(source_text="hello there", target_text="yyy", point_index=2),
        semantic_distance=0.1,
        composite_score=0.12,
    )
    searcher.translate.return_value = TranslationResult(
        direction=Direction.FORWARD,
        lexical=[exact],
        semantic=[close],
        semantic_searched=True,
    )

    resp = await async_client.post("/translate", json={**TRANSLATE, "corpus_id": "fula"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["direction"] == "forward"
    assert body["exact_match"] is True
    assert body["semantic_searched"] is True
    assert body["lexical"][0]["target_text"] == "xxx"
    assert body["lexical"][0]["is_exact_match"] is True
    assert body["semantic"][0]["composite_score"] == pytest.approx(0.12)
    searcher.translate.assert_awaited_once_with("hello", "en", "ff", corpus_id="fula")


async def test_translate_no_match_is_ok(async_client, searcher):
    searcher.translate.return_value = TranslationResult(
        direction=Direction.REVERSE,
        semantic_searched=False,
    )
    resp = await async_client.post("/translate", json=TRANSLATE)

    assert resp.status_code == 200
    body = resp.json()
    assert body["lexical"] == [] and body["semantic"] == []
    assert body["exact_match"] is False
    assert body["semantic_searched"] is False


@pytest.mark.parametrize(
    "error, status, code",
    [
        (EmptyQueryError("Query text is empty."), 422, "invalid_input"),
        (UnsupportedLanguagePairError("fula", Language.ENGLISH, Language.FRENCH), 422, "invalid_input"),
        (CorpusNotFoundError("missing"), 404, "not_found"),
        (DimensionMismatchError(384, 256), 503, "model_index_error"),
        (
            IndexGenerationMismatchError(
                IndexGeneration(model_id="new", dimension=384),
                IndexGeneration(model_id="old", dimension=384),
            ),
            503,
            "model_index_error",
        ),
    ],
)
async def test_translate_error_mapping(async_client, searcher, error, status, code):
    searcher.translate.side_effect = error

    resp = await async_client.post("/translate", json=TRANSLATE)

    assert resp.status_code == status
    assert resp.json()["error"] == code
    assert resp.json()["detail"] == str(error)


async def test_unexpected_error_is_opaque(async_client, searcher):
    searcher.translate.side_effect = RuntimeError("secret connection string")

    resp = await async_client.post("/translate", json=TRANSLATE)

    assert resp.status_code == 500
    assert resp.json() == {"error": "internal_server_error", "detail": "Internal server error"}
    assert "secret" not in resp.text


async def test_translate_request_validation(async_client, searcher):
    resp = await async_client.post("/translate", json={"query": "", "source_language": "en"})
    assert resp.status_code == 422
    searcher.translate.assert_not_awaited()


# ---------------------------------------------------------------------
# /user-pairs
# ---------------------------------------------------------------------

async def test_add_user_pair(async_client, user_pairs):
    user_pairs.add.return_value = 7

    resp = await async_client.post(
        "/user-pairs",
        json={
            "source_text": "bonjour",
            "target_text": "xyz",
            "source_language": "fr",
            "target_language": "ff",
        },
    )

    assert resp.status_code == 201
    assert resp.json() == {"status": "created", "id": 7}
    user_pairs.add.assert_awaited_once_with("bonjour", "xyz", "fr", "ff")


async def test_add_invalid_user_pair(async_client, user_pairs):
    user_pairs.add.side_effect = InvalidUserPairError("Both source_text and target_text are required.")

    resp = await async_client.post(
        "/user-pairs",
        json={
            "source_text": "  ",
            "target_text": "xyz",
            "source_language": "fr",
            "target_language": "ff",
        },
    )
    assert resp.status_code == 422
    assert resp.json()["error"] == "invalid_input"


async def test_list_user_pairs(async_client, user_pairs):
    user_pairs.list_all.return_value = [
        UserPairEntry(
            id=1,
            source_text="bonjour",
            target_text="xyz",
            source_language="fr",
            target_language="ff",
            created_at=datetime(2026, 1, 1),
        )
    ]

    resp = await async_client.get("/user-pairs")

    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    assert body["pairs"][0]["source_text"] == "bonjour"


async def test_export_user_pairs(async_client, user_pairs):
    user_pairs.export.return_value = ("good morning\nthank you", "jam waali\na jaaraama")

    resp = await async_client.get(
        "/user-pairs/export",
        params={"source_language": "english", "target_language": "ff"},
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "source_block": "good morning\nthank you",
        "target_block": "jam waali\na jaaraama",
        "count": 2,
    }
    user_pairs.export.assert_awaited_once_with(Language.ENGLISH, Language.FULA)


async def test_export_unknown_language(async_client, user_pairs):
    resp = await async_client.get("/user-pairs/export", params={"source_language": "klingon"})
    assert resp.status_code == 422
    user_pairs.export.assert_not_awaited()


async def test_delete_user_pair(async_client, user_pairs):
    user_pairs.delete.return_value = True
    resp = await async_client.delete("/user-pairs/3")
    assert resp.status_code == 200
    assert resp.json() == {"status": "deleted", "id": 3}


async def test_delete_missing_user_pair(async_client, user_pairs):
    user_pairs.delete.return_value = False
    resp = await async_client.delete("/user-pairs/3")
    assert resp.status_code == 404


# ---------------------------------------------------------------------
# /corpora
# ---------------------------------------------------------------------

async def test_corpus_stats(async_client, store, registry):
    store.get_stats.return_value = {
        "corpus_id": "fula",
        "source_languages": ["en", "fr"],
        "target_language": "ff",
        "embedded_side": "source",
        "model_id": "all-MiniLM-L6-v2",
        "dimension": 384,
        "pair_count": 10,
        "created_at": None,
    }
    registry.get.return_value = MagicMock(count=10)

    resp = await async_client.get("/corpora/fula")

    assert resp.status_code == 200
    body = resp.json()
    assert body["pair_count"] == body["vector_count"] == 10
    assert body["source_languages"] == ["en", "fr"]
    registry.get.assert_called_once_with("fula")


async def test_unknown_corpus_stats(async_client, store):
    store.get_stats.side_effect = CorpusNotFoundError("nope")
    resp = await async_client.get("/corpora/nope")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


async def test_list_corpora(async_client, store):
    store.list_corpora.return_value = [MagicMock(corpus_id="fula"), MagicMock(corpus_id="wolof")]
    resp = await async_client.get("/corpora")
    assert resp.json() == ["fula", "wolof"]
