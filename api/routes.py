"""
api/routes.py: FastAPI endpoints
"""

import asyncio
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Path, Request

from config import MIN_YEAR
from api.identity import Identity, require_admin, require_identity
from jee_mains_cbt.db.database import Database
from jee_mains_cbt.models.attempt_model import Attempt
from jee_mains_cbt.models.question_model import SLOT_PATTERN, QuestionSetKey
from jee_mains_cbt.services.attempt_service import AttemptManager
from jee_mains_cbt.services.ingestion_service import ingest_question_set
from jee_mains_cbt.services.question_set_service import get_question_set, summarize

router = APIRouter()


# ── helpers ─────────────────────────────────────────────────────────────────

def _db(request: Request) -> Database:
    return request.app.state.db


def _attempts(request: Request) -> AttemptManager:
    return request.app.state.attempts


def _attempt_to_dict(attempt: Attempt) -> dict:
    return {
        "id": attempt.id,
        "question_set_id": attempt.question_set_id,
        "status": attempt.status.value,
        "responses": [r.model_dump(mode="json") for r in attempt.responses],
        "answered_count": attempt.answered_count(),
        "subject_boundaries": [b.model_dump(mode="json") for b in attempt.subject_boundaries],
        "score": attempt.score,
        "started_at": attempt.started_at.isoformat(),
        "expires_at": attempt.expires_at.isoformat() if attempt.expires_at else None,
        "expired": attempt.is_expired(),
        "completed_at": attempt.completed_at.isoformat() if attempt.completed_at else None,
    }


# ── endpoints ───────────────────────────────────────────────────────────────

@router.get("/api/health")
async def health():
    return {"ok": True}


@router.post("/api/question-sets", status_code=201)
async def upload_question_set(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    identity: Identity = Depends(require_admin),
):
    result = await asyncio.to_thread(ingest_question_set, _db(request), payload)
    return {"status": "success", "data": result.model_dump(mode="json")}


@router.get("/api/question-sets/{year}/{slot}")
async def get_question_set_summary(
    request: Request,
    year: int = Path(..., ge=MIN_YEAR),
    slot: str = Path(..., pattern=SLOT_PATTERN),
    identity: Identity = Depends(require_identity),
):
    key = QuestionSetKey(year=year, slot=slot)
    question_set = await asyncio.to_thread(get_question_set, _db(request), key)
    return {"status": "success", "data": summarize(question_set).model_dump(mode="json")}


@router.post("/api/attempts/start", status_code=201)
async def start_attempt(
    body: QuestionSetKey,
    request: Request,
    identity: Identity = Depends(require_identity),
):
    result = await asyncio.to_thread(
        _attempts(request).start_attempt, identity.candidate_id, body
    )
    return result.model_dump(mode="json")


@router.get("/api/attempts/{attempt_id}")
async def get_attempt(
    attempt_id: str,
    request: Request,
    identity: Identity = Depends(require_identity),
):
    attempt = await asyncio.to_thread(
        _attempts(request).get_attempt, attempt_id, identity.candidate_id
    )
    return _attempt_to_dict(attempt)


@router.patch("/api/attempts/{attempt_id}")
async def save_progress(
    attempt_id: str,
    request: Request,
    identity: Identity = Depends(require_identity),
):
    # raw body: the service decodes it after the ownership check
    body = await request.body()
    attempt = await asyncio.to_thread(
        _attempts(request).save_progress, attempt_id, identity.candidate_id, body
    )
    return {"status": "success", "answered_count": attempt.answered_count()}


@router.post("/api/attempts/{attempt_id}/submit")
async def submit_attempt(
    attempt_id: str,
    request: Request,
    identity: Identity = Depends(require_identity),
):
    result = await asyncio.to_thread(
        _attempts(request).submit_attempt, attempt_id, identity.candidate_id
    )
    return result.model_dump(mode="json")


@router.get("/api/attempts/{attempt_id}/results")
async def get_results(
    attempt_id: str,
    request: Request,
    identity: Identity = Depends(require_identity),
):
    result = await asyncio.to_thread(
        _attempts(request).get_result, attempt_id, identity.candidate_id
    )
    return result.model_dump(mode="json")
