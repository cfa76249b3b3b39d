from typing import Any, Optional

from fastapi import HTTPException
from pydantic import BaseModel


class ProblemDetail(BaseModel):
    """RFC 7807 compliant error response."""

    type: str = "about:blank"
    title: str
    detail: Optional[str] = None
    status: int
    instance: Optional[str] = None
    code: str


class DomainException(Exception):
    """Base class for domain-specific exceptions."""

    def __init__(
        self,
        status_code: int,
        title: str,
        *,
        code: str,
        detail: str | None = None,
        type_: str = "about:blank",
    ) -> None:
        super().__init__(detail or title)
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type = type_
        self.code = code


class MatchNotFound(DomainException):
    def __init__(self, match_id: str) -> None:
        super().__init__(
            status_code=404,
            title="Match not found",
            detail=f"match '{match_id}' not found",
            code="match_not_found",
        )
        self.match_id = match_id


class InvalidMatchState(DomainException):
    def __init__(self, match_id: str, status: str, action: str) -> None:
        super().__init__(
            status_code=409,
            title="Invalid match state",
            detail=f"cannot {action} match '{match_id}' in status '{status}'",
            code="match_invalid_state",
        )
        self.match_id = match_id
        self.status = status


class MatchAlreadyCompleted(DomainException):
    """Idempotency signal: the match was completed before this request.

    Stores raise it bare; the match service re-raises it with the existing
    completed ``match`` and its ``deltas`` attached so callers can report the
    settled state instead of treating it as a failure.
    """

    def __init__(
        self,
        match_id: str,
        *,
        match: Any = None,
        deltas: Any = None,
    ) -> None:
        super().__init__(
            status_code=409,
            title="Match already completed",
            detail=f"match '{match_id}' is already completed",
            code="match_already_completed",
        )
        self.match_id = match_id
        self.match = match
        self.deltas = list(deltas or [])


class MissingResult(DomainException):
    def __init__(self, match_id: str) -> None:
        super().__init__(
            status_code=422,
            title="Missing result",
            detail=f"match '{match_id}' has no result to complete with",
            code="match_missing_result",
        )
        self.match_id = match_id


class InvalidParticipants(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=422,
            title="Invalid participants",
            detail=detail,
            code="match_invalid_participants",
        )


class InvalidResult(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=422,
            title="Invalid result",
            detail=detail,
            code="match_invalid_result",
        )


class InvalidGameFormat(DomainException):
    def __init__(self, game_format: str) -> None:
        super().__init__(
            status_code=400,
            title="Invalid game format",
            detail=f"unknown game format '{game_format}'",
            code="invalid_game_format",
        )


class ConcurrentUpdate(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=409,
            title="Concurrent update",
            detail=detail,
            code="rating_conflict",
        )


class AuthError(DomainException):
    def __init__(self, detail: str = "invalid token", *, code: str = "auth_invalid_token") -> None:
        super().__init__(
            status_code=401,
            title="Unauthorized",
            detail=detail,
            code=code,
        )


def http_problem(
    status_code: int,
    detail: str,
    code: str,
    *,
    headers: Optional[dict[str, str]] = None,
) -> HTTPException:
    """Create an HTTPException with an attached problem code."""

    exc = HTTPException(status_code=status_code, detail=detail, headers=headers)
    setattr(exc, "code", code)
    return exc
