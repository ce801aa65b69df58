"""HTTP surface for vacancy matching.

Routes:
- POST /vacancies/{id}/match/refresh: clear stored results and queue a run
- GET /vacancies/{id}/match: live ranked candidates, nothing persisted
- GET /vacancies/{id}/match/results: stored results, best first
- GET /health: configuration status and queue reachability

Run with: `uvicorn talentmatch.api.app:app` or `talentmatch serve`
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from talentmatch.db.connection import Datastore, init_tables
from talentmatch.db.match_results import get_match_results
from talentmatch.db.vacancies import get_vacancy_title
from talentmatch.errors import (
    QueueConfigurationError,
    ServiceUnavailableError,
    TransientStoreContentionError,
    VacancyNotFoundError,
)
from talentmatch.matching.retriever import is_search_configured
from talentmatch.schemas.match import MatchResult
from talentmatch.schemas.vacancy import Vacancy
from talentmatch.services.match_service import get_live_matches, request_match_refresh
from talentmatch.services.queue_service import MatchingQueue
from talentmatch.utils import is_llm_configured

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = Datastore.from_config().open()
    init_tables(store)
    app.state.store = store

    try:
        app.state.queue = MatchingQueue.from_config()
    except QueueConfigurationError as e:
        logger.warning(f"Matching queue unavailable: {e}")
        app.state.queue = None

    yield

    store.close()


app = FastAPI(
    title="TalentMatch API",
    description="Candidate matching for vacancies",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store(request: Request) -> Datastore:
    return request.app.state.store


def get_queue(request: Request) -> MatchingQueue:
    queue = getattr(request.app.state, "queue", None)
    if queue is None:
        raise QueueConfigurationError("Queue connection not configured")
    return queue


def parse_vacancy_id(vacancy_id: str) -> int:
    try:
        return int(vacancy_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid vacancy ID") from None


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(VacancyNotFoundError)
async def not_found_handler(request: Request, exc: VacancyNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Vacancy not found"})


@app.exception_handler(ServiceUnavailableError)
async def unavailable_handler(request: Request, exc: ServiceUnavailableError) -> JSONResponse:
    logger.error(f"Search unavailable: {exc}")
    return JSONResponse(
        status_code=503,
        content={"error": "Search service not configured or unavailable", "details": str(exc)},
    )


@app.exception_handler(TransientStoreContentionError)
async def contention_handler(request: Request, exc: TransientStoreContentionError) -> JSONResponse:
    logger.warning(f"Store contention: {exc}")
    return JSONResponse(status_code=503, content={"error": "Database busy, please retry"})


@app.exception_handler(QueueConfigurationError)
async def queue_error_handler(request: Request, exc: QueueConfigurationError) -> JSONResponse:
    logger.error(f"Failed to queue match refresh: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Failed to queue match refresh", "details": str(exc)},
    )


def _vacancy_payload(vacancy: Vacancy) -> dict[str, Any]:
    return {
        "id": vacancy.id,
        "title": vacancy.title,
        "description": vacancy.description,
        "client": vacancy.client,
        "location": vacancy.location,
        "duration": vacancy.duration,
        "isRemote": vacancy.is_remote,
        "startDate": vacancy.start_date.isoformat() if vacancy.start_date else None,
        "budget": vacancy.budget,
        "requirements": [
            {
                "type": r.requirement_type.value,
                "value": r.value,
                "isRequired": r.is_required,
                "priority": int(r.priority),
            }
            for r in vacancy.requirements
        ],
    }


def _result_payload(result: MatchResult) -> dict[str, Any]:
    return {
        "userId": result.user_id,
        "score": result.score,
        "overallScore": result.overall_score,
        "matchedRequirements": result.matched_requirements,
        "missingRequirements": result.missing_requirements,
        "reasoning": result.reasoning,
        "requirementBreakdown": [b.model_dump(by_alias=True) for b in result.requirement_breakdown],
        "evaluationVersion": result.evaluation_version,
        "lastEvaluatedAt": str(result.last_evaluated_at) if result.last_evaluated_at else None,
    }


@app.post("/vacancies/{vacancy_id}/match/refresh", status_code=202)
def refresh_matches(
    parsed_id: int = Depends(parse_vacancy_id),
    store: Datastore = Depends(get_store),
    queue: MatchingQueue = Depends(get_queue),
) -> dict[str, Any]:
    ticket = request_match_refresh(parsed_id, store, queue)
    return {
        "success": True,
        "message": "Re-evaluation queued successfully",
        "vacancyId": ticket.vacancy_id,
        "estimatedCompletionTime": ticket.estimated_completion_time,
    }


@app.get("/vacancies/{vacancy_id}/match")
def live_matches(
    parsed_id: int = Depends(parse_vacancy_id),
    store: Datastore = Depends(get_store),
) -> dict[str, Any]:
    view = get_live_matches(parsed_id, store)
    return {
        "success": True,
        "vacancy": _vacancy_payload(view.vacancy),
        "candidates": [
            {**c.profile.model_dump(by_alias=True), "score": c.score}
            for c in view.candidates
        ],
        "searchQuery": view.search_query,
    }


@app.get("/vacancies/{vacancy_id}/match/results")
def stored_results(
    parsed_id: int = Depends(parse_vacancy_id),
    limit: int | None = None,
    store: Datastore = Depends(get_store),
) -> dict[str, Any]:
    if get_vacancy_title(store, parsed_id) is None:
        raise VacancyNotFoundError(parsed_id)

    results = get_match_results(store, parsed_id, limit=limit)
    return {
        "success": True,
        "vacancyId": parsed_id,
        "count": len(results),
        "results": [_result_payload(r) for r in results],
    }


@app.get("/health")
def health(request: Request) -> dict[str, Any]:
    queue = getattr(request.app.state, "queue", None)
    return {
        "status": "ok",
        "llm_configured": is_llm_configured(),
        "search_configured": is_search_configured(),
        "queue_configured": queue is not None and queue.ping(),
    }
