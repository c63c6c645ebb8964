"""
랭킹 엔진 테이블 정의

- standings: 선수 × 파티션별 현재 순위/포인트 (파티션당 1행)
- point_calculations: 선수 × 대회별 포인트 계산 기록 (불변, 1회)
- standing_transitions: 순위/포인트 변동 이력 (추가 전용)
"""
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    UniqueConstraint,
)

from .engine import Base


class Standing(Base):
    __tablename__ = "standings"
    __table_args__ = (
        UniqueConstraint("competitor_id", "partition", name="uq_standings_competitor_partition"),
        Index("ix_standings_partition_active_points", "partition", "is_active", "points"),
        Index("ix_standings_category", "ranking_type", "category"),
        CheckConstraint("points >= 0", name="ck_standings_points_non_negative"),
        CheckConstraint("position >= 1", name="ck_standings_position_positive"),
        CheckConstraint("decay_factor > 0 AND decay_factor <= 1", name="ck_standings_decay_factor"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    competitor_id = Column(Integer, nullable=False, index=True)

    # 파티션 키
    ranking_type = Column(String(20), nullable=False)
    category = Column(String(20), nullable=False)
    state_id = Column(Integer, nullable=True, index=True)
    age_group = Column(String(20), nullable=True)
    gender = Column(String(10), nullable=True)
    partition = Column(String(120), nullable=False)

    # 상태
    position = Column(Integer, nullable=False, default=1)
    points = Column(Numeric(12, 2), nullable=False, default=0)
    previous_position = Column(Integer, nullable=False, default=0)
    previous_points = Column(Numeric(12, 2), nullable=False, default=0)
    tournaments_played = Column(Integer, nullable=False, default=0)
    last_tournament_date = Column(DateTime, nullable=True, index=True)
    activity_bonus = Column(Numeric(7, 2), nullable=False, default=0)
    decay_factor = Column(Numeric(6, 4), nullable=False, default=1)
    last_calculated = Column(DateTime, nullable=False, default=datetime.now)
    is_active = Column(Boolean, nullable=False, default=True)

    # 마지막 변동 이력 (재계산 시 정확한 이력 보정용)
    last_transition_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def __repr__(self) -> str:
        return (
            f"<Standing competitor={self.competitor_id} partition={self.partition} "
            f"position={self.position} points={self.points}>"
        )


class PointCalculation(Base):
    __tablename__ = "point_calculations"
    __table_args__ = (
        UniqueConstraint("tournament_id", "competitor_id", name="uq_point_calculations_tournament_competitor"),
        Index("ix_point_calculations_competitor", "competitor_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(Integer, nullable=False, index=True)
    competitor_id = Column(Integer, nullable=False)

    # 입력 스냅샷
    placement = Column(Integer, nullable=False)
    field_size = Column(Integer, nullable=False)
    matches_won = Column(Integer, nullable=False, default=0)
    matches_lost = Column(Integer, nullable=False, default=0)
    avg_opponent_rating = Column(Float, nullable=False, default=0)
    competitor_rating = Column(Float, nullable=False, default=0)
    tournament_level = Column(String(20), nullable=False)
    skill_level = Column(String(20), nullable=True)
    prior_tournament_count = Column(Integer, nullable=False, default=0)
    event_type = Column(String(20), nullable=True)

    # 계산 내역
    base_points = Column(Numeric(10, 2), nullable=False)
    placement_multiplier = Column(Numeric(6, 4), nullable=False)
    level_multiplier = Column(Numeric(6, 4), nullable=False)
    opponent_bonus = Column(Numeric(8, 2), nullable=False)
    activity_bonus = Column(Numeric(8, 2), nullable=False)
    participation_bonus = Column(Numeric(6, 4), nullable=False)
    total_points = Column(Numeric(12, 2), nullable=False)
    calculation_details = Column(JSON, nullable=True)

    calculated_at = Column(DateTime, nullable=False, default=datetime.now)
    # 랭킹 반영 시각 (NULL = 기록만 됨)
    applied_at = Column(DateTime, nullable=True)


class StandingTransition(Base):
    __tablename__ = "standing_transitions"
    __table_args__ = (
        Index("ix_standing_transitions_competitor_date", "competitor_id", "change_date"),
        Index("ix_standing_transitions_change_date", "change_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    standing_id = Column(Integer, ForeignKey("standings.id"), nullable=False, index=True)
    competitor_id = Column(Integer, nullable=False)

    ranking_type = Column(String(20), nullable=False)
    category = Column(String(20), nullable=False)
    state_id = Column(Integer, nullable=True)
    age_group = Column(String(20), nullable=True)
    gender = Column(String(10), nullable=True)

    old_position = Column(Integer, nullable=False, default=0)
    new_position = Column(Integer, nullable=False, default=0)
    old_points = Column(Numeric(12, 2), nullable=False, default=0)
    new_points = Column(Numeric(12, 2), nullable=False, default=0)
    points_change = Column(Numeric(12, 2), nullable=False, default=0)
    position_change = Column(Integer, nullable=False, default=0)

    reason_code = Column(String(30), nullable=False)
    tournament_id = Column(Integer, nullable=True, index=True)
    change_date = Column(DateTime, nullable=False, default=datetime.now)
    is_reconciled = Column(Boolean, nullable=False, default=False)
