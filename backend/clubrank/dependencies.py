from fastapi import Header, Request

from .exceptions import http_problem
from .identity import IdentityVerifier
from .services import MatchService, RankingService


def _extract_bearer_token(authorization: str | None) -> str:
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        if token:
            return token
    raise http_problem(
        status_code=401,
        detail="missing token",
        code="auth_missing_token",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    request: Request,
    authorization: str | None = Header(None),
) -> str:
    token = _extract_bearer_token(authorization)
    verifier: IdentityVerifier = request.app.state.verifier
    return await verifier.verify(token)


def get_match_service(request: Request) -> MatchService:
    return request.app.state.match_service


def get_ranking_service(request: Request) -> RankingService:
    return request.app.state.ranking_service
