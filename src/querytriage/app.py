"""FastAPI application exposing the query triage engine."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from typing import Any, Awaitable, TypeVar

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from .briefs import ProjectBriefStore
from .config import Settings
from .engine import (
    AnalysisRequest,
    TriageEngine,
    error_payload,
    parse_optional_number,
    parse_query_records,
    parse_safe_words,
    parse_word_statistics,
)
from .errors import AnalysisRequestError, LLMError, TriageError
from .exporting import export_minus_words
from .history import AnalysisHistoryStore
from .llm import JSONChatClient
from .observability import MetricsRecorder

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LOGGING_CONFIGURED = False
_DISCONNECT_POLL_SECONDS = 0.5
_CLIENT_CLOSED_REQUEST = 499


def _ensure_logging() -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    triage_logger = logging.getLogger("querytriage")
    uvicorn_logger = logging.getLogger("uvicorn.error")

    handlers = list(uvicorn_logger.handlers)
    if handlers:
        triage_logger.handlers = list(handlers)
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        triage_logger.addHandler(handler)

    level_name = os.getenv("TRIAGE_LOG_LEVEL", "INFO").strip().upper()
    triage_logger.setLevel(getattr(logging, level_name, logging.INFO))
    triage_logger.propagate = False
    _LOGGING_CONFIGURED = True


class ApplicationState:
    """Runtime dependencies shared by the request handlers."""

    def __init__(
        self,
        *,
        settings: Settings,
        engine: TriageEngine,
        history: AnalysisHistoryStore | None,
        metrics: MetricsRecorder | None,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.history = history
        self.metrics = metrics


async def _read_json(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise AnalysisRequestError("body", "request body must be valid JSON") from exc
    if not isinstance(payload, dict):
        raise AnalysisRequestError("body", "request body must be a JSON object")
    return payload


async def _cancel_on_disconnect(request: Request, awaitable: Awaitable[T]) -> T:
    """Await ``awaitable``, cancelling it if the client goes away first."""

    task = asyncio.ensure_future(awaitable)
    while True:
        done, _ = await asyncio.wait({task}, timeout=_DISCONNECT_POLL_SECONDS)
        if done:
            return task.result()
        if await request.is_disconnected():
            logger.info("triage.request.client_disconnected path=%s", request.url.path)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            raise HTTPException(status_code=_CLIENT_CLOSED_REQUEST, detail="client closed request")


def create_app(
    *,
    settings: Settings | None = None,
    engine: TriageEngine | None = None,
    llm_client: JSONChatClient | None = None,
    briefs: ProjectBriefStore | None = None,
    history: AnalysisHistoryStore | None = None,
    metrics: MetricsRecorder | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    _ensure_logging()

    settings = settings or Settings.from_env()
    metrics = metrics or settings.build_metrics_recorder()
    if engine is None:
        llm_client = llm_client or JSONChatClient(settings)
        if briefs is None:
            briefs = ProjectBriefStore.from_file(settings.briefs_path)
        if history is None and settings.history_enabled:
            history = AnalysisHistoryStore(settings.history_path())
        engine = TriageEngine(
            settings=settings,
            llm_client=llm_client,
            briefs=briefs,
            history=history,
            metrics=metrics,
        )
    else:
        history = history or engine.history
    logger.info(
        "app.start backend=%s ai_available=%s history=%s",
        settings.chat_backend,
        engine.ai_available,
        history.root if history is not None else None,
    )

    app = FastAPI(title="Query Triage")
    app.state.services = ApplicationState(
        settings=settings, engine=engine, history=history, metrics=metrics
    )

    @app.exception_handler(AnalysisRequestError)
    async def _handle_request_error(request: Request, exc: AnalysisRequestError) -> JSONResponse:
        logger.info("triage.request.rejected path=%s field=%s error=%s", request.url.path, exc.field, exc)
        return JSONResponse(error_payload(str(exc)), status_code=400)

    @app.exception_handler(LLMError)
    async def _handle_llm_error(request: Request, exc: LLMError) -> JSONResponse:
        logger.warning("triage.request.llm_failed path=%s error=%s", request.url.path, exc)
        return JSONResponse(error_payload(str(exc)), status_code=502)

    @app.exception_handler(TriageError)
    async def _handle_triage_error(request: Request, exc: TriageError) -> JSONResponse:
        logger.exception("triage.request.failed path=%s", request.url.path)
        return JSONResponse(error_payload(str(exc)), status_code=500)

    @app.exception_handler(Exception)
    async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("triage.request.crashed path=%s", request.url.path)
        return JSONResponse(error_payload("internal error"), status_code=500)

    def get_state(request: Request) -> ApplicationState:
        return request.app.state.services

    def get_engine(request: Request) -> TriageEngine:
        return get_state(request).engine

    def get_history(request: Request) -> AnalysisHistoryStore | None:
        return get_state(request).history

    def get_metrics(request: Request) -> MetricsRecorder | None:
        return get_state(request).metrics

    @app.post("/api/queries/analyze", response_class=JSONResponse)
    async def analyze_queries(
        request: Request,
        engine: TriageEngine = Depends(get_engine),
    ) -> JSONResponse:
        analysis_request = AnalysisRequest.from_payload(await _read_json(request))
        response = await _cancel_on_disconnect(request, engine.analyze(analysis_request))
        return JSONResponse(response.to_payload())

    @app.post("/api/queries/quick-analyze", response_class=JSONResponse)
    async def quick_analyze_queries(
        request: Request,
        engine: TriageEngine = Depends(get_engine),
    ) -> JSONResponse:
        payload = await _read_json(request)
        records = parse_query_records(payload.get("queries"))
        overrides = payload.get("config")
        if overrides is not None and not isinstance(overrides, dict):
            raise AnalysisRequestError("config", "config must be an object")
        try:
            response = engine.quick_analyze(
                records,
                overrides=overrides,
                target_cpl=parse_optional_number(payload, "targetCpl"),
            )
        except (TypeError, ValueError) as exc:
            raise AnalysisRequestError("config", f"invalid heuristic config: {exc}") from exc
        return JSONResponse(response.to_payload())

    @app.post("/api/queries/analyze-words", response_class=JSONResponse)
    async def analyze_words(
        request: Request,
        engine: TriageEngine = Depends(get_engine),
    ) -> JSONResponse:
        payload = await _read_json(request)
        words = parse_word_statistics(payload.get("words"))
        safe_words = parse_safe_words(payload.get("safeWords"))
        result = await _cancel_on_disconnect(
            request,
            engine.analyze_words(words, payload.get("businessDescription"), safe_words),
        )
        return JSONResponse({"success": True, "data": result.to_payload()})

    @app.post("/api/queries/classify-queries", response_class=JSONResponse)
    async def classify_queries(
        request: Request,
        engine: TriageEngine = Depends(get_engine),
    ) -> JSONResponse:
        payload = await _read_json(request)
        records = parse_query_records(payload.get("queries"))
        safe_words = parse_safe_words(payload.get("safeWords"))
        result = await _cancel_on_disconnect(
            request,
            engine.resolve_review(records, payload.get("businessDescription"), safe_words),
        )
        return JSONResponse({"success": True, "data": result.to_payload()})

    @app.post("/api/queries/export-minus-words")
    async def export_minus_words_endpoint(request: Request) -> Response:
        payload = await _read_json(request)
        words = payload.get("words")
        if not isinstance(words, list):
            raise AnalysisRequestError("words", "words array is required")
        body = export_minus_words(item for item in words if isinstance(item, (str, dict)))
        return Response(
            content=body,
            media_type="text/plain; charset=utf-8",
            headers={"Content-Disposition": "attachment; filename=minus-words.txt"},
        )

    @app.get("/api/projects/{project_id}/history", response_class=JSONResponse)
    async def project_history(
        project_id: str,
        limit: int = Query(10, ge=1, le=100),
        history: AnalysisHistoryStore | None = Depends(get_history),
    ) -> JSONResponse:
        if history is None:
            raise HTTPException(status_code=404, detail="Analysis history is disabled")
        snapshots = history.list_recent(project_id, limit)
        return JSONResponse(
            {"success": True, "data": [snapshot.to_payload() for snapshot in snapshots]}
        )

    @app.get("/metrics")
    async def metrics_endpoint(metrics: MetricsRecorder | None = Depends(get_metrics)) -> Response:
        if metrics is None or not metrics.prometheus_enabled:
            raise HTTPException(status_code=404, detail="Metrics export disabled")
        return Response(content=metrics.render_prometheus(), media_type=metrics.prometheus_content_type)

    return app


__all__ = ["ApplicationState", "create_app"]
