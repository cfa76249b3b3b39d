from sqlalchemy.orm import relationship
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .config import DEFAULT_STARTING_RATING
from .db import Base


class ClubMatch(Base):
    __tablename__ = "club_match"
    id = Column(String, primary_key=True)
    club_id = Column(String, nullable=False)
    opponent_club_id = Column(String, nullable=True)
    game_format = Column(String(30), nullable=False)
    match_type = Column(String(20), nullable=False, default="friendly")
    status = Column(String(20), nullable=False, default="pending")
    result = Column(String(20), nullable=True)
    reported_result = Column(String(20), nullable=True)
    side_a_score = Column(Integer, nullable=True)
    side_b_score = Column(Integer, nullable=True)
    location = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    participants = relationship(
        "MatchParticipant",
        cascade="all, delete-orphan",
        order_by="MatchParticipant.position",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "(status = 'completed') = (result IS NOT NULL)",
            name="ck_club_match_result_iff_completed",
        ),
        Index("ix_club_match_club_id_status", "club_id", "status"),
    )


class MatchParticipant(Base):
    __tablename__ = "match_participant"
    id = Column(String, primary_key=True)
    match_id = Column(
        String, ForeignKey("club_match.id", ondelete="CASCADE"), nullable=False
    )
    side = Column(String(1), nullable=False)  # "A" | "B"
    user_id = Column(String, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint(
            "match_id", "user_id", name="uq_match_participant_match_id_user_id"
        ),
        Index("ix_match_participant_user_id", "user_id"),
    )


class UserRating(Base):
    """Current rating of a user in a club for one game format."""

    __tablename__ = "user_rating"
    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    club_id = Column(String, nullable=False)
    game_format = Column(String(30), nullable=False)
    rating = Column(Integer, nullable=False, default=DEFAULT_STARTING_RATING)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    draws = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True, server_default=func.now())

    # UPDATEs carry "WHERE version = :old" and fail with StaleDataError otherwise.
    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "club_id",
            "game_format",
            name="uq_user_rating_user_id_club_id_game_format",
        ),
        CheckConstraint("rating >= 0", name="ck_user_rating_rating_non_negative"),
        Index("ix_user_rating_club_id_game_format", "club_id", "game_format"),
    )


class MatchRatingDelta(Base):
    """Audit row written once per participant when a match completes."""

    __tablename__ = "participant_delta"
    id = Column(String, primary_key=True)
    match_id = Column(
        String, ForeignKey("club_match.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String, nullable=False)
    side = Column(String(1), nullable=False)
    partner_id = Column(String, nullable=True)
    rating_before = Column(Integer, nullable=False)
    rating_after = Column(Integer, nullable=False)
    delta = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "match_id", "user_id", name="uq_participant_delta_match_id_user_id"
        ),
        CheckConstraint(
            "delta = rating_after - rating_before",
            name="ck_participant_delta_delta_consistent",
        ),
        Index("ix_participant_delta_user_id", "user_id"),
    )
