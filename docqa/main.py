"""Quart application exposing one document question-answering session."""
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
import structlog
from pydantic import ValidationError
from quart import Blueprint, Quart, Response, current_app, jsonify, request

from docqa import config
from docqa.errors import (
    EmbeddingUnavailable,
    ExtractionError,
    RetrievalUnavailable,
)
from docqa.logs import configure_logging
from docqa.rag.embedder import OllamaEmbedder
from docqa.rag.engine import RAGEngine
from docqa.rag.extract import check_document, iter_pages
from docqa.rag.prompt import Answerer
from docqa.rag.store import SearchResult
from docqa.schemas import AskRequest, DocumentRequest, QueryRequest

configure_logging()

logger = structlog.get_logger()

api = Blueprint("api", __name__)


def _engine() -> RAGEngine:
    return current_app.extensions["docqa"]["engine"]


def _answerer() -> Answerer:
    return current_app.extensions["docqa"]["answerer"]


def _serialize_result(result: SearchResult, preview: bool = False) -> Dict[str, Any]:
    text = result.chunk.text
    if preview and len(text) > 200:
        text = text[:200] + "..."
    return {
        "id": result.chunk.id,
        "text": text,
        "source": result.chunk.source,
        "metadata": result.chunk.metadata,
        "score": round(result.score, 4),
        "rank": result.rank,
    }


async def _ingest(pages, source: Optional[str], append: bool) -> Dict[str, Any]:
    engine = _engine()
    await engine.ensure_embedder_ready()

    if not append:
        engine.reset()

    stats = await engine.ingest_pages(pages, source=source)
    return {
        "source": source,
        "stats": stats,
        "total_chunks": len(engine.store),
        "state": engine.state.value,
    }


@api.route("/api/documents", methods=["POST"])
async def ingest_document():
    """Index a document, replacing the current one unless appending.

    Accepts either a multipart upload (field "file", optional form fields
    "source" and "append") or a JSON body:
    {
        "path": "/path/to/document.pdf",      // or
        "pages": [{"page": 1, "text": "..."}],
        "source": "optional display name",
        "append": false
    }

    Returns JSON with ingestion statistics.
    """
    files = await request.files
    if "file" in files:
        upload = files["file"]
        form = await request.form
        source = form.get("source") or upload.filename
        append = form.get("append", "false").lower() == "true"
        suffix = Path(upload.filename or "").suffix.lower() or ".pdf"

        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp_path = Path(tmp_dir) / f"upload{suffix}"
            await upload.save(tmp_path)
            logger.info("document_uploaded", source=source, size=tmp_path.stat().st_size)
            result = await _ingest(iter_pages(tmp_path), source, append)

        return jsonify(result), 201

    data = await request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Expected JSON body or 'file' upload"}), 400

    body = DocumentRequest(**data)
    source = body.source

    if body.path is not None:
        path = check_document(body.path)
        pages = iter_pages(path)
        source = source or path.name
    else:
        pages = body.numbered_pages()

    logger.info("document_ingest_requested", source=source, append=body.append)
    result = await _ingest(pages, source, body.append)
    return jsonify(result), 201


@api.route("/api/query", methods=["POST"])
async def query():
    """Retrieve the chunks most similar to a query.

    Expects JSON body:
    {
        "query": "text",
        "limit": 3  // optional
    }
    """
    data = await request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Missing 'query' in request body"}), 400

    body = QueryRequest(**data)

    results = await _engine().search(body.query, limit=body.limit)
    return jsonify({
        "query": body.query,
        "results": [_serialize_result(r) for r in results],
    })


@api.route("/api/ask", methods=["POST"])
async def ask():
    """Answer a question from the indexed document.

    Expects JSON body:
    {
        "question": "text",
        "limit": 5,        // optional, chunks used as context
        "stream": false    // optional, stream plain-text fragments
    }
    """
    data = await request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Missing 'question' in request body"}), 400

    body = AskRequest(**data)
    answerer = _answerer()

    if body.stream:
        sources = await answerer.retrieve(body.question, body.limit)
        return Response(
            answerer.stream(body.question, sources=sources),
            mimetype="text/plain",
        )

    answer = await answerer.answer(body.question, body.limit)
    return jsonify({
        "question": body.question,
        "answer": answer.text,
        "model": answerer.model,
        "sources": [_serialize_result(s, preview=True) for s in answer.sources],
    })


@api.route("/api/status")
async def status():
    """Current session state and index statistics."""
    return jsonify(_engine().get_stats())


@api.route("/health/ready")
async def health_ready():
    """Readiness probe - check if app can serve requests.

    Checks:
    - Ollama service is reachable
    - Required models are available
    - Embedding model is loaded
    """
    checks = {
        "status": "healthy",
        "ollama": False,
        "models": False,
        "embedder": False,
    }

    try:
        models = await _answerer().client.list_models()
        checks["ollama"] = True

        missing = [m for m in (config.CHAT_MODEL, config.EMBEDDING_MODEL) if m not in models]
        if missing:
            checks["status"] = "unhealthy"
            checks["error"] = f"Missing models: {', '.join(missing)}"
        else:
            checks["models"] = True

        checks["embedder"] = _engine().embedder.is_ready
        if not checks["embedder"]:
            checks["status"] = "unhealthy"

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    except httpx.HTTPError as e:
        logger.error("health_check_failed", error=str(e))
        checks["status"] = "unhealthy"
        checks["error"] = str(e)
        return jsonify(checks), 503


@api.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


@api.app_errorhandler(ValidationError)
async def invalid_request(error):
    messages = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"])
        messages.append(f"{location}: {err['msg']}" if location else err["msg"])
    return jsonify({"error": "; ".join(messages)}), 400


@api.app_errorhandler(RetrievalUnavailable)
@api.app_errorhandler(EmbeddingUnavailable)
async def embedding_unavailable(error):
    logger.error("embedding_unavailable", error=str(error), error_type=type(error).__name__)
    return jsonify({"error": str(error)}), 503


@api.app_errorhandler(ExtractionError)
async def extraction_failed(error):
    logger.error("extraction_failed", error=str(error))
    return jsonify({"error": str(error)}), 422


@api.app_errorhandler(httpx.HTTPError)
async def upstream_failed(error):
    logger.error("upstream_request_failed", error=str(error), error_type=type(error).__name__)
    return jsonify({"error": "Language model service error"}), 502


@api.app_errorhandler(404)
async def not_found(error):
    """Handle 404 errors."""
    return jsonify({"error": "Not found"}), 404


@api.app_errorhandler(500)
async def internal_error(error):
    """Handle 500 errors."""
    logger.error("internal_server_error", error=str(error))
    return jsonify({"error": "Internal server error"}), 500


def create_app(
    engine: Optional[RAGEngine] = None,
    answerer: Optional[Answerer] = None,
) -> Quart:
    """Build the Quart app around one RAG engine.

    Args:
        engine: Engine for the session (Ollama-backed by default)
        answerer: Answer generator (built on the engine by default)
    """
    app = Quart(__name__)

    engine = engine or RAGEngine(embedder=OllamaEmbedder())
    answerer = answerer or Answerer(engine)
    app.extensions["docqa"] = {"engine": engine, "answerer": answerer}
    app.register_blueprint(api)

    @app.before_serving
    async def load_embedder():
        try:
            await engine.ensure_embedder_ready()
        except EmbeddingUnavailable as e:
            # Retried on the first ingestion request
            logger.warning("embedder_not_ready_at_startup", error=str(e))

    return app


app = create_app()


if __name__ == "__main__":
    # For development - use hypercorn in production
    app.run(host="0.0.0.0", port=5000, debug=True)
