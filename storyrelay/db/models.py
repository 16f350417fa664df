"""SQLAlchemy ORM models for sessions, rosters and turn ledgers."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


class SessionModel(Base):
    """ORM model for story sessions (goal state embedded)."""

    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String, primary_key=True)
    creator_user_id: Mapped[str] = mapped_column(String, nullable=False)
    theme: Mapped[str] = mapped_column(String, nullable=False)

    is_multiplayer: Mapped[bool] = mapped_column(Boolean, default=False)
    max_players: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_player_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    invite_code: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)

    # JSON-encoded lists, decoded only by the session store
    game_goal: Mapped[str] = mapped_column(Text, nullable=False, default="")
    goal_prerequisites: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    met_prerequisites: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    is_goal_met: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    players: Mapped[list["SessionPlayerModel"]] = relationship(
        "SessionPlayerModel",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionPlayerModel.player_index",
    )
    turns: Mapped[list["TurnModel"]] = relationship(
        "TurnModel",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="TurnModel.turn_index",
    )

    __table_args__ = (Index("idx_sessions_creator", "creator_user_id"),)


class SessionPlayerModel(Base):
    """ORM model for roster entries."""

    __tablename__ = "session_players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String, ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    player_index: Mapped[int] = mapped_column(Integer, nullable=False)
    character_name: Mapped[str] = mapped_column(String, nullable=False)
    character_gender: Mapped[str] = mapped_column(String, nullable=False)
    character_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    session: Mapped["SessionModel"] = relationship(
        "SessionModel", back_populates="players"
    )

    __table_args__ = (
        UniqueConstraint("session_id", "user_id", name="uq_player_session_user"),
        UniqueConstraint("session_id", "player_index", name="uq_player_session_index"),
        Index("idx_players_user", "user_id"),
    )


class TurnModel(Base):
    """ORM model for the turn ledger."""

    __tablename__ = "turns"

    turn_id: Mapped[str] = mapped_column(String, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        String, ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False
    )
    turn_index: Mapped[int] = mapped_column(Integer, nullable=False)
    scenario_text: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    image_prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")
    suggested_actions: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    action_taken: Mapped[str | None] = mapped_column(Text, nullable=True)
    time_of_day: Mapped[str] = mapped_column(String, nullable=False, default="")
    is_same_location: Mapped[bool] = mapped_column(Boolean, default=True)
    characters: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    acting_player_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    acting_player_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    session: Mapped["SessionModel"] = relationship(
        "SessionModel", back_populates="turns"
    )

    __table_args__ = (
        UniqueConstraint("session_id", "turn_index", name="uq_turn_session_index"),
    )
