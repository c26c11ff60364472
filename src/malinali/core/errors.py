"""
Global Error Handling

Maps the service's exception taxonomy onto HTTP responses.

- Input errors (ValueError subclasses) -> 422 "invalid_input"
- Unknown corpus -> 404 "not_found"
- Model / index errors -> 503 "model_index_error"
- Anything else -> generic 500, logged, details never returned

Every response body has the same shape: {"error": ..., "detail": ...}.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..db.pair_store import CorpusNotFoundError
from ..embeddings.embedder import EmbeddingError
from ..embeddings.index import FaissIndexError

logger = logging.getLogger("malinali.errors")


def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    payload: Dict[str, Any] = {"error": error, "detail": detail}
    return JSONResponse(status_code=status_code, content=payload)


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def invalid_input_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.info(
        "Rejected input on %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )
    return _error(422, "invalid_input", str(exc))


async def corpus_not_found_handler(request: Request, exc: CorpusNotFoundError) -> JSONResponse:
    logger.info("Unknown corpus requested: %s", exc.corpus_id)
    return _error(404, "not_found", str(exc))


async def model_index_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Model and index failures are fatal to the request. The message names
    expected and observed values so an operator can act on it.
    """
    logger.error(
        "Model/index failure during %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
    )
    return _error(503, "model_index_error", str(exc))


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """
    # Full traceback stays in the log
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return _error(500, "internal_server_error", "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValueError, invalid_input_handler)
    app.add_exception_handler(CorpusNotFoundError, corpus_not_found_handler)
    app.add_exception_handler(EmbeddingError, model_index_error_handler)
    app.add_exception_handler(FaissIndexError, model_index_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
