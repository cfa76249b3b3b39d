from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..dependencies import get_current_user_id, get_match_service, get_ranking_service
from ..records import RatingRecord
from ..schemas import (
    HistoryEntryOut,
    MatchCreate,
    MatchOut,
    MatchSummary,
    PartnershipOut,
    RankingEntryOut,
    RankingsOut,
    RatingOut,
    UserStatsOut,
)
from ..services import MatchService, MatchState, RankingService
from .matches import to_match_out

router = APIRouter(prefix="/clubs", tags=["clubs"])


def _rating_fields(record: RatingRecord) -> dict:
    return {
        "userId": record.user_id,
        "clubId": record.club_id,
        "gameFormat": record.game_format,
        "rating": record.rating,
        "wins": record.wins,
        "losses": record.losses,
        "draws": record.draws,
        "gamesPlayed": record.games_played,
        "winRate": record.win_rate,
        "updatedAt": record.updated_at,
    }


@router.post(
    "/{club_id}/matches", response_model=MatchOut, status_code=status.HTTP_201_CREATED
)
async def create_match(
    club_id: str,
    body: MatchCreate,
    user_id: str = Depends(get_current_user_id),
    service: MatchService = Depends(get_match_service),
) -> MatchOut:
    match = await service.create_match(
        club_id,
        body.gameFormat,
        body.side_players(),
        created_by=user_id,
        match_type=body.matchType,
        opponent_club_id=body.opponentClubId,
        location=body.location,
        notes=body.notes,
        scheduled_at=body.scheduledAt,
        result=body.result,
        side_a_score=body.sideAScore,
        side_b_score=body.sideBScore,
    )
    return to_match_out(MatchState(match=match))


@router.get("/{club_id}/rankings/user/{user_id}", response_model=list[RatingOut])
async def user_rankings(
    club_id: str,
    user_id: str,
    service: RankingService = Depends(get_ranking_service),
) -> list[RatingOut]:
    records = await service.user_rankings(club_id, user_id)
    return [RatingOut(**_rating_fields(r)) for r in records]


@router.get("/{club_id}/rankings/{game_format}", response_model=RankingsOut)
async def club_rankings(
    club_id: str,
    game_format: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: RankingService = Depends(get_ranking_service),
) -> RankingsOut:
    page = await service.club_rankings(club_id, game_format, limit=limit, offset=offset)
    return RankingsOut(
        clubId=page.club_id,
        gameFormat=page.game_format,
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        rankings=[
            RankingEntryOut(rank=entry.rank, **_rating_fields(entry.record))
            for entry in page.entries
        ],
    )


@router.get("/{club_id}/users/{user_id}/stats", response_model=UserStatsOut)
async def user_stats(
    club_id: str,
    user_id: str,
    limit: int = Query(20, ge=1, le=100),
    service: RankingService = Depends(get_ranking_service),
) -> UserStatsOut:
    stats = await service.user_stats(club_id, user_id, history_limit=limit)
    return UserStatsOut(
        userId=stats.user_id,
        clubId=stats.club_id,
        formats=[RatingOut(**_rating_fields(r)) for r in stats.formats],
        summary=MatchSummary(
            total=stats.total_matches,
            wins=stats.wins,
            losses=stats.losses,
            draws=stats.draws,
            winPct=stats.win_rate,
        ),
        history=[
            HistoryEntryOut(
                matchId=entry.match.id,
                gameFormat=entry.match.game_format,
                matchType=entry.match.match_type,
                side=entry.side,
                outcome=entry.outcome,
                result=entry.match.result,
                sideAScore=entry.match.side_a_score,
                sideBScore=entry.match.side_b_score,
                partnerId=entry.partner_id,
                opponentIds=entry.opponent_ids,
                ratingBefore=entry.rating_before,
                ratingAfter=entry.rating_after,
                delta=entry.delta,
                completedAt=entry.match.completed_at,
            )
            for entry in stats.history
        ],
    )


@router.get(
    "/{club_id}/users/{user_id}/partnerships", response_model=list[PartnershipOut]
)
async def partnerships(
    club_id: str,
    user_id: str,
    game_format: Optional[str] = Query(None, alias="gameFormat"),
    service: RankingService = Depends(get_ranking_service),
) -> list[PartnershipOut]:
    rows = await service.partnership_stats(club_id, user_id, game_format)
    return [
        PartnershipOut(
            partnerId=row.partner_id,
            gamesPlayed=row.games_played,
            wins=row.wins,
            losses=row.losses,
            draws=row.draws,
            winRate=row.win_rate,
        )
        for row in rows
    ]
