"""
PCN Challenge Engine - Challenge API Routes

Internal endpoints that trigger challenge-letter generation.
Called by the web app's job runner, never by end users directly.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Header, Request
from pydantic import BaseModel, field_validator

from .. import config
from ..errors import (
    ChallengePipelineError, AlreadyInProgress, GenerationTimeout,
    ChallengeGenerationFailed, RenderFailed, TicketNotFound
)
from ..models.ssot import ChallengeContext, ChallengeGround, ChallengeResult
from ..services.integrations.base import StoredLetter
from ..services.pipeline import ChallengeOrchestrator
from ..services.strategy import resolve_reason

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["challenges"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for job-trigger endpoints."""
    if x_internal_key != config.INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


def get_orchestrator(request: Request) -> ChallengeOrchestrator:
    """Dependency - the orchestrator built during app startup."""
    return request.app.state.orchestrator


# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================

class ChallengeRequest(BaseModel):
    user_context: Optional[str] = None
    arrival_time: Optional[datetime] = None
    vehicle_registration: Optional[str] = None
    reason: Optional[ChallengeGround] = None  # ground value, ground name or app reason id
    regenerate: bool = False

    @field_validator("reason", mode="before")
    @classmethod
    def parse_reason(cls, value):
        return resolve_reason(value)


class SweepRequest(BaseModel):
    ticket_ids: List[str]
    regenerate: bool = False


ERROR_STATUS = {
    AlreadyInProgress: 409,
    TicketNotFound: 404,
    GenerationTimeout: 504,
    ChallengeGenerationFailed: 502,
    RenderFailed: 500,
}


def status_for(error: ChallengePipelineError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status_code
    return 500


def result_to_dict(result: ChallengeResult) -> dict:
    return {
        "ticket_id": result.ticket_id,
        "letter_id": result.letter_id,
        "letter_text": result.letter_text,
        "document_ref": result.document_ref,
        "grounds": [g.value for g in result.grounds],
        "attempts": result.attempts,
        "page_count": result.page_count,
        "generated_at": result.generated_at.isoformat() if result.generated_at else None,
        "reused": result.reused,
    }


def letter_to_dict(letter: StoredLetter) -> dict:
    return {
        "letter_id": letter.letter_id,
        "ticket_id": letter.ticket_id,
        "grounds": [g.value for g in letter.grounds],
        "document_ref": letter.document_ref,
        "page_count": letter.page_count,
        "attempts": letter.attempts,
        "generated_at": letter.generated_at.isoformat() if letter.generated_at else None,
        "is_active": letter.is_active,
        "body": letter.body,
    }


# =============================================================================
# ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/tickets/{ticket_id}/challenge", response_model=dict)
async def challenge_ticket(
    ticket_id: str,
    request: Optional[ChallengeRequest] = None,
    orchestrator: ChallengeOrchestrator = Depends(get_orchestrator),
    _: bool = Depends(verify_internal_key),
):
    """
    Generate the challenge letter for one ticket.

    Returns the stored letter unchanged when facts have not changed,
    unless `regenerate` is set.
    """
    request = request or ChallengeRequest()
    context = ChallengeContext(
        user_context=request.user_context,
        arrival_time=request.arrival_time,
        vehicle_registration=request.vehicle_registration,
        reason=request.reason,
    )
    try:
        result = await orchestrator.challenge_ticket(ticket_id, context, regenerate=request.regenerate)
    except ChallengePipelineError as exc:
        raise HTTPException(status_code=status_for(exc), detail=exc.to_dict())

    return result_to_dict(result)


@router.post("/challenge-sweep", response_model=dict)
async def challenge_sweep(
    request: SweepRequest,
    orchestrator: ChallengeOrchestrator = Depends(get_orchestrator),
    _: bool = Depends(verify_internal_key),
):
    """
    Run challenge jobs for several tickets concurrently.

    Every ticket gets an outcome; one failure does not stop the others.
    """
    outcomes = await orchestrator.sweep(request.ticket_ids, regenerate=request.regenerate)

    results = {}
    succeeded = 0
    for ticket_id, outcome in outcomes.items():
        if isinstance(outcome, ChallengePipelineError):
            results[ticket_id] = {"status": "failed", "error": outcome.to_dict()}
        else:
            succeeded += 1
            results[ticket_id] = {"status": "completed", "result": result_to_dict(outcome)}

    logger.info(f"Challenge sweep: {succeeded}/{len(outcomes)} completed")
    return {
        "total": len(outcomes),
        "completed": succeeded,
        "failed": len(outcomes) - succeeded,
        "results": results,
    }


@router.get("/tickets/{ticket_id}/letters", response_model=dict)
async def list_letters(
    ticket_id: str,
    orchestrator: ChallengeOrchestrator = Depends(get_orchestrator),
    _: bool = Depends(verify_internal_key),
):
    """Letter history for a ticket, newest first."""
    try:
        letters = await orchestrator.list_letters(ticket_id)
    except TicketNotFound as exc:
        raise HTTPException(status_code=404, detail=exc.to_dict())

    return {"ticket_id": ticket_id, "letters": [letter_to_dict(letter) for letter in letters]}
