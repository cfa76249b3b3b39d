from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "club_match",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("club_id", sa.String(), nullable=False),
        sa.Column("opponent_club_id", sa.String(), nullable=True),
        sa.Column("game_format", sa.String(length=30), nullable=False),
        sa.Column("match_type", sa.String(length=20), nullable=False, server_default="friendly"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("result", sa.String(length=20), nullable=True),
        sa.Column("reported_result", sa.String(length=20), nullable=True),
        sa.Column("side_a_score", sa.Integer(), nullable=True),
        sa.Column("side_b_score", sa.Integer(), nullable=True),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "(status = 'completed') = (result IS NOT NULL)",
            name="ck_club_match_result_iff_completed",
        ),
    )
    op.create_index("ix_club_match_club_id_status", "club_match", ["club_id", "status"])

    op.create_table(
        "match_participant",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("match_id", sa.String(), sa.ForeignKey("club_match.id", ondelete="CASCADE"), nullable=False),
        sa.Column("side", sa.String(length=1), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("match_id", "user_id", name="uq_match_participant_match_id_user_id"),
    )
    op.create_index("ix_match_participant_user_id", "match_participant", ["user_id"])

    op.create_table(
        "user_rating",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("club_id", sa.String(), nullable=False),
        sa.Column("game_format", sa.String(length=30), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False, server_default="1200"),
        sa.Column("wins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("losses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("draws", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "user_id",
            "club_id",
            "game_format",
            name="uq_user_rating_user_id_club_id_game_format",
        ),
        sa.CheckConstraint("rating >= 0", name="ck_user_rating_rating_non_negative"),
    )
    op.create_index(
        "ix_user_rating_club_id_game_format", "user_rating", ["club_id", "game_format"]
    )

    op.create_table(
        "participant_delta",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("match_id", sa.String(), sa.ForeignKey("club_match.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("side", sa.String(length=1), nullable=False),
        sa.Column("partner_id", sa.String(), nullable=True),
        sa.Column("rating_before", sa.Integer(), nullable=False),
        sa.Column("rating_after", sa.Integer(), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("match_id", "user_id", name="uq_participant_delta_match_id_user_id"),
        sa.CheckConstraint(
            "delta = rating_after - rating_before",
            name="ck_participant_delta_delta_consistent",
        ),
    )
    op.create_index("ix_participant_delta_user_id", "participant_delta", ["user_id"])

def downgrade():
    op.drop_index("ix_participant_delta_user_id", table_name="participant_delta")
    op.drop_table("participant_delta")
    op.drop_index("ix_user_rating_club_id_game_format", table_name="user_rating")
    op.drop_table("user_rating")
    op.drop_index("ix_match_participant_user_id", table_name="match_participant")
    op.drop_table("match_participant")
    op.drop_index("ix_club_match_club_id_status", table_name="club_match")
    op.drop_table("club_match")
