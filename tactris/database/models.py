from sqlalchemy import (
    Column, Integer, String, DateTime, Float, BigInteger,
    UniqueConstraint, CheckConstraint, Index, select
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import Select
from datetime import datetime
from typing import Optional

from tactris.config import Config
from tactris.constants import StorageConstants
from tactris.data_models.leaderboard import Period, RankedEntry
from tactris.data_models.statistics import StatisticsRecord
from tactris.utils.time_utils import ensure_utc, utc_now

Base = declarative_base()

class GameStatistics(Base):
    """
    Lifetime statistics for one user.

    Exactly one row per user. Rows are only written through
    StatisticsService under a per-user lock and SELECT ... FOR UPDATE.
    """
    __tablename__ = 'game_statistics'

    id = Column(Integer, primary_key=True)
    user_id = Column(BigInteger, nullable=False, unique=True, index=True)

    # Counters
    total_games = Column(Integer, nullable=False, default=0)
    total_score = Column(BigInteger, nullable=False, default=0)
    total_lines_cleared = Column(BigInteger, nullable=False, default=0)
    total_figures_placed = Column(BigInteger, nullable=False, default=0)
    total_duration = Column(BigInteger, nullable=False, default=0)  # Seconds
    total_moves = Column(BigInteger, nullable=False, default=0)

    # Extremes
    best_score = Column(Integer, nullable=False, default=0)
    best_lines_cleared = Column(Integer, nullable=False, default=0)
    best_duration = Column(Integer, nullable=False, default=0)  # 0 = unset

    # Streaks
    current_games_streak = Column(Integer, nullable=False, default=0)
    best_games_streak = Column(Integer, nullable=False, default=0)

    # Derived
    avg_placement_efficiency = Column(Float, nullable=False, default=0.0)
    rating = Column(Float, nullable=False, default=Config.DEFAULT_RATING)

    # Metadata
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        CheckConstraint('total_games >= 0', name='non_negative_total_games_check'),
        CheckConstraint('best_score >= 0', name='non_negative_best_score_check'),
        CheckConstraint('best_duration >= 0', name='non_negative_best_duration_check'),
        CheckConstraint(f'rating >= {Config.RATING_FLOOR}', name='rating_floor_check'),
    )

    def to_record(self) -> StatisticsRecord:
        """Convert the row into an immutable record, typing numeric columns once"""
        return StatisticsRecord(
            user_id=int(self.user_id),
            total_games=int(self.total_games or 0),
            total_score=int(self.total_score or 0),
            best_score=int(self.best_score or 0),
            total_lines_cleared=int(self.total_lines_cleared or 0),
            best_lines_cleared=int(self.best_lines_cleared or 0),
            total_figures_placed=int(self.total_figures_placed or 0),
            total_duration=int(self.total_duration or 0),
            best_duration=int(self.best_duration or 0),
            total_moves=int(self.total_moves or 0),
            avg_placement_efficiency=float(self.avg_placement_efficiency or 0.0),
            current_games_streak=int(self.current_games_streak or 0),
            best_games_streak=int(self.best_games_streak or 0),
            rating=float(self.rating if self.rating is not None else Config.DEFAULT_RATING),
            created_at=ensure_utc(self.created_at) or utc_now(),
            updated_at=ensure_utc(self.updated_at) or utc_now(),
        )

    def update_from_record(self, record: StatisticsRecord) -> None:
        """Copy a computed record onto the row"""
        self.total_games = record.total_games
        self.total_score = record.total_score
        self.best_score = record.best_score
        self.total_lines_cleared = record.total_lines_cleared
        self.best_lines_cleared = record.best_lines_cleared
        self.total_figures_placed = record.total_figures_placed
        self.total_duration = record.total_duration
        self.best_duration = record.best_duration
        self.total_moves = record.total_moves
        self.avg_placement_efficiency = record.avg_placement_efficiency
        self.current_games_streak = record.current_games_streak
        self.best_games_streak = record.best_games_streak
        self.rating = record.rating
        self.updated_at = record.updated_at
        if self.created_at is None:
            self.created_at = record.created_at

    @classmethod
    def for_user_query(cls, user_id: int, lock: bool = False) -> Select:
        query = select(cls).where(cls.user_id == user_id)
        if lock:
            query = query.with_for_update()
        return query

    def __repr__(self):
        return f"<GameStatistics(user_id={self.user_id}, games={self.total_games}, rating={self.rating})>"

class LeaderboardEntry(Base):
    """
    Best result of a user within one (game_mode, period) scope.

    Ranks are not stored: they only mean something relative to the
    (period, game_mode, sort field) scope they were computed for.
    """
    __tablename__ = 'leaderboard_entries'

    id = Column(Integer, primary_key=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    display_name = Column(String(StorageConstants.MAX_DISPLAY_NAME_LENGTH), nullable=False)

    score = Column(Integer, nullable=False, default=0)
    lines_cleared = Column(Integer, nullable=False, default=0)
    game_mode = Column(String(StorageConstants.MAX_GAME_MODE_LENGTH), nullable=False, default='classic')
    period = Column(String(20), nullable=False, default=Period.ALL_TIME.value)

    # Metadata
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        UniqueConstraint('user_id', 'game_mode', 'period', name='uq_leaderboard_user_mode_period'),
        CheckConstraint('score >= 0', name='non_negative_score_check'),
        CheckConstraint('lines_cleared >= 0', name='non_negative_lines_check'),
        CheckConstraint(
            "period IN ('all_time', 'weekly', 'monthly')",
            name='valid_period_check'
        ),
        Index('ix_leaderboard_scope', 'period', 'game_mode'),
    )

    def to_ranked_entry(self) -> RankedEntry:
        """Convert the row into an unranked RankedEntry"""
        return RankedEntry(
            id=self.id,
            user_id=int(self.user_id),
            display_name=self.display_name,
            score=int(self.score or 0),
            lines_cleared=int(self.lines_cleared or 0),
            game_mode=self.game_mode,
            period=Period(self.period),
            rank=0,
            created_at=ensure_utc(self.created_at) or utc_now(),
            updated_at=ensure_utc(self.updated_at) or utc_now(),
        )

    @classmethod
    def scoped_query(
        cls,
        period: Optional[Period] = None,
        game_mode: Optional[str] = None,
        since: Optional[datetime] = None
    ) -> Select:
        """Entries of a scope in stable id order"""
        query = select(cls)
        if period is not None:
            query = query.where(cls.period == period.value)
        if game_mode is not None:
            query = query.where(cls.game_mode == game_mode)
        if since is not None:
            query = query.where(cls.created_at >= since)
        return query.order_by(cls.id)

    def __repr__(self):
        return f"<LeaderboardEntry(user_id={self.user_id}, mode='{self.game_mode}', period='{self.period}', score={self.score})>"
