from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Text,
    UniqueConstraint, Index, JSON, text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from poolside.core.database import Base


# Sentinel stored in a cycle's "evicted" slot when the house voted nobody out
NO_EVICTION = "no-eviction"


# --- Models ---

class Pool(Base):
    __tablename__ = "pools"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    season_number = Column(Integer)
    max_nominees = Column(Integer, default=4, nullable=False)
    picks_per_team = Column(Integer, default=5, nullable=False)
    enabled_special_events = Column(JSON, nullable=False, default=list)  # Empty = every rule-backed type
    draft_locked = Column(Boolean, default=False, nullable=False)
    season_complete = Column(Boolean, default=False, nullable=False)
    season_completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    contestants = relationship("Contestant", back_populates="pool", cascade="all, delete-orphan")
    weeks = relationship("WeekEventRecord", back_populates="pool", cascade="all, delete-orphan", order_by="WeekEventRecord.week_number")
    scoring_rules = relationship("ScoringRule", back_populates="pool", cascade="all, delete-orphan")
    special_events = relationship("SpecialEvent", back_populates="pool", cascade="all, delete-orphan")
    entries = relationship("PoolEntry", back_populates="pool", cascade="all, delete-orphan")
    bonus_questions = relationship("BonusQuestion", back_populates="pool", cascade="all, delete-orphan")
    winners = relationship("PoolWinner", back_populates="pool", cascade="all, delete-orphan")


class Contestant(Base):
    __tablename__ = "contestants"

    id = Column(Integer, primary_key=True, index=True)
    pool_id = Column(Integer, ForeignKey("pools.id"), nullable=False)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)  # Base flag; week-aware status is derived
    final_placement = Column(Integer)  # 1 = winner, 2 = runner-up
    americas_favorite = Column(Boolean, default=False, nullable=False)
    sort_order = Column(Integer, default=0)

    # Relationships
    pool = relationship("Pool", back_populates="contestants")

    __table_args__ = (
        UniqueConstraint("pool_id", "name", name="uq_contestant_pool_name"),
    )


class ScoringRule(Base):
    """
    Point values keyed by (category, subcategory). A rule with pool_id NULL is a
    default shared by every pool; a pool-scoped rule overrides it. The engine
    reads this table on every computation, so edits apply retroactively.
    """
    __tablename__ = "scoring_rules"

    id = Column(Integer, primary_key=True, index=True)
    pool_id = Column(Integer, ForeignKey("pools.id"), nullable=True)
    category = Column(String(50), nullable=False)  # e.g. "competition"
    subcategory = Column(String(50), nullable=False)  # e.g. "hoh_winner"
    points = Column(Integer, nullable=False)
    description = Column(Text)
    emoji = Column(String(16))
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0)

    # Relationships
    pool = relationship("Pool", back_populates="scoring_rules")

    __table_args__ = (
        # NULL pool_id never collides in a unique index, so defaults are policed in the rule table
        Index(
            "uq_rule_pool_key_active", "pool_id", "category", "subcategory",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )


class WeekEventRecord(Base):
    """
    One week's ceremony facts for a pool.

    The eviction cycles live in ``cycles`` as a JSON list, one dict per cycle:

    [
        {
            "hoh_winner": 3,
            "nominees": [5, 8],
            "pov_winner": 5,
            "pov_used": true,
            "pov_used_on": 5,
            "replacement_nominee": 9,
            "ai_arena_winner": null,
            "evicted": 8
        },
        ...  # second / third cycle on double and triple eviction weeks
    ]

    Final weeks leave ``cycles`` empty and fill winner / runner_up /
    americas_favorite instead.
    """
    __tablename__ = "week_event_records"

    id = Column(Integer, primary_key=True, index=True)
    pool_id = Column(Integer, ForeignKey("pools.id"), nullable=False)
    week_number = Column(Integer, nullable=False)
    is_draft = Column(Boolean, default=True, nullable=False)
    is_complete = Column(Boolean, default=False, nullable=False)
    is_double_eviction = Column(Boolean, default=False, nullable=False)
    is_triple_eviction = Column(Boolean, default=False, nullable=False)
    is_final_week = Column(Boolean, default=False, nullable=False)
    is_jury_phase = Column(Boolean, default=False, nullable=False)
    ai_arena_enabled = Column(Boolean, default=False, nullable=False)
    cycles = Column(JSON, nullable=False, default=list)
    winner = Column(Integer, ForeignKey("contestants.id"))
    runner_up = Column(Integer, ForeignKey("contestants.id"))
    americas_favorite = Column(Integer, ForeignKey("contestants.id"))
    version = Column(Integer, default=1, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    pool = relationship("Pool", back_populates="weeks")

    __table_args__ = (
        UniqueConstraint("pool_id", "week_number", name="uq_week_pool_number"),
        Index(
            "uq_week_pool_jury_phase", "pool_id",
            unique=True,
            sqlite_where=text("is_jury_phase = 1"),
            postgresql_where=text("is_jury_phase"),
        ),
    )


class SpecialEvent(Base):
    __tablename__ = "special_events"

    id = Column(Integer, primary_key=True, index=True)
    pool_id = Column(Integer, ForeignKey("pools.id"), nullable=False)
    contestant_id = Column(Integer, ForeignKey("contestants.id"), nullable=False)
    week_number = Column(Integer, nullable=False)
    event_type = Column(String(64), nullable=False)  # Subcategory, rule id reference, or "custom"
    points_awarded = Column(Integer, nullable=False, default=0)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    pool = relationship("Pool", back_populates="special_events")
    contestant = relationship("Contestant")


class PoolEntry(Base):
    """A participant's drafted team. Picks are contestant ids."""
    __tablename__ = "pool_entries"

    id = Column(Integer, primary_key=True, index=True)
    pool_id = Column(Integer, ForeignKey("pools.id"), nullable=False)
    team_name = Column(String(100), nullable=False)
    participant_name = Column(String(100), nullable=False)
    picks = Column(JSON, nullable=False, default=list)
    bonus_answers = Column(JSON, nullable=False, default=dict)  # {question_id: answer}
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    pool = relationship("Pool", back_populates="entries")


class BonusQuestion(Base):
    __tablename__ = "bonus_questions"

    id = Column(Integer, primary_key=True, index=True)
    pool_id = Column(Integer, ForeignKey("pools.id"), nullable=False)
    question_text = Column(Text, nullable=False)
    correct_answer = Column(JSON)  # Null until revealed
    points_value = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0)

    # Relationships
    pool = relationship("Pool", back_populates="bonus_questions")


class PoolWinner(Base):
    """Standings snapshot taken the moment the season is completed."""
    __tablename__ = "pool_winners"

    id = Column(Integer, primary_key=True, index=True)
    pool_id = Column(Integer, ForeignKey("pools.id"), nullable=False)
    entry_id = Column(Integer, ForeignKey("pool_entries.id"), nullable=False)
    place = Column(Integer, nullable=False)
    total_points = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    pool = relationship("Pool", back_populates="winners")
    entry = relationship("PoolEntry")

    __table_args__ = (
        UniqueConstraint("pool_id", "place", name="uq_winner_pool_place"),
    )
