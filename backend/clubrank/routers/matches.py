from typing import Optional

from fastapi import APIRouter, Depends

from ..dependencies import get_current_user_id, get_match_service
from ..exceptions import MatchAlreadyCompleted, http_problem
from ..records import MatchRecord, SIDES
from ..schemas import (
    MatchCompleteIn,
    MatchCompletionOut,
    MatchOut,
    MatchResultIn,
    Participant,
    ParticipantDeltaOut,
)
from ..services import MatchService, MatchState

# Resource-only prefix; versioning is added in main.py
router = APIRouter(prefix="/matches", tags=["matches"])


def to_match_out(state: MatchState) -> MatchOut:
    match = state.match
    return MatchOut(
        id=match.id,
        clubId=match.club_id,
        opponentClubId=match.opponent_club_id,
        gameFormat=match.game_format,
        matchType=match.match_type,
        status=match.status,
        result=match.result,
        reportedResult=match.reported_result,
        sideAScore=match.side_a_score,
        sideBScore=match.side_b_score,
        participants=[
            Participant(side=side, playerIds=match.side_players(side)) for side in SIDES
        ],
        location=match.location,
        notes=match.notes,
        scheduledAt=match.scheduled_at,
        createdBy=match.created_by,
        createdAt=match.created_at,
        completedAt=match.completed_at,
        deltas=[
            ParticipantDeltaOut(
                userId=d.user_id,
                side=d.side,
                partnerId=d.partner_id,
                ratingBefore=d.rating_before,
                ratingAfter=d.rating_after,
                delta=d.delta,
            )
            for d in state.deltas
        ],
    )


def _ensure_participant(match: MatchRecord, user_id: str) -> None:
    if user_id not in match.user_ids:
        raise http_problem(
            status_code=403,
            detail="only participants can change this match",
            code="match_forbidden",
        )


async def _load_for_participant(
    service: MatchService, match_id: str, user_id: str
) -> MatchState:
    state = await service.get_match(match_id)
    _ensure_participant(state.match, user_id)
    return state


@router.get("/{match_id}", response_model=MatchOut)
async def get_match(
    match_id: str, service: MatchService = Depends(get_match_service)
) -> MatchOut:
    return to_match_out(await service.get_match(match_id))


@router.post("/{match_id}/result", response_model=MatchOut)
async def record_match_result(
    match_id: str,
    body: MatchResultIn,
    user_id: str = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
) -> MatchOut:
    await _load_for_participant(service, match_id, user_id)
    match = await service.record_result(
        match_id,
        result=body.result,
        side_a_score=body.sideAScore,
        side_b_score=body.sideBScore,
    )
    return to_match_out(MatchState(match=match))


@router.post("/{match_id}/complete", response_model=MatchCompletionOut)
async def complete_match(
    match_id: str,
    body: Optional[MatchCompleteIn] = None,
    user_id: str = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
) -> MatchCompletionOut:
    await _load_for_participant(service, match_id, user_id)
    try:
        state = await service.complete_match(match_id, body.result if body else None)
    except MatchAlreadyCompleted as exc:
        state = MatchState(match=exc.match, deltas=exc.deltas)
        return MatchCompletionOut(match=to_match_out(state), alreadyCompleted=True)
    return MatchCompletionOut(match=to_match_out(state))


@router.post("/{match_id}/cancel", response_model=MatchOut)
async def cancel_match(
    match_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
) -> MatchOut:
    await _load_for_participant(service, match_id, user_id)
    return to_match_out(MatchState(match=await service.cancel_match(match_id)))


@router.post("/{match_id}/reject", response_model=MatchOut)
async def reject_match(
    match_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
) -> MatchOut:
    await _load_for_participant(service, match_id, user_id)
    return to_match_out(MatchState(match=await service.reject_match(match_id)))
