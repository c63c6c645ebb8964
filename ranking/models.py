"""
랭킹 엔진 데이터 모델 정의 (Pydantic)
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Any, Dict
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class RankingType(str, Enum):
    """랭킹 종류"""
    OVERALL = "overall"
    SINGLES = "singles"
    DOUBLES = "doubles"
    MIXED_DOUBLES = "mixed_doubles"


class RankingCategory(str, Enum):
    """랭킹 카테고리 (파티션 축)"""
    NATIONAL = "national"
    STATE = "state"
    AGE_GROUP = "age_group"
    GENDER = "gender"
    TOURNAMENT_LEVEL = "tournament_level"


class ChangeReason(str, Enum):
    """순위 변동 사유"""
    TOURNAMENT_COMPLETION = "tournament_completion"
    DECAY = "decay"
    MANUAL_CORRECTION = "manual_correction"


class TournamentLevel(str, Enum):
    """대회 등급"""
    NATIONAL = "national"
    STATE = "state"
    MUNICIPAL = "municipal"
    LOCAL = "local"


class SkillLevel(str, Enum):
    """선수 실력 등급"""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    PROFESSIONAL = "professional"


class TournamentStatus(str, Enum):
    """대회 상태"""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class NotificationKind(str, Enum):
    """알림 종류"""
    RANKING_UPDATED = "ranking_updated"
    ACTIVITY_REMINDER = "activity_reminder"


# ==================== 외부 조회 모델 ====================

class StateInfo(BaseModel):
    """시도 정보"""
    id: int = Field(..., description="시도 ID")
    name: str = Field(..., description="시도명")


class CompetitorProfile(BaseModel):
    """선수 프로필"""
    id: int = Field(..., description="선수 ID")
    name: str = Field(default="", description="선수명")
    birth_date: Optional[date] = Field(None, description="생년월일")
    gender: Optional[str] = Field(None, description="성별")
    skill_level: Optional[str] = Field(None, description="실력 등급")
    current_rating: float = Field(default=0.0, description="현재 레이팅")


class TournamentInfo(BaseModel):
    """대회 정보"""
    id: int = Field(..., description="대회 ID")
    name: str = Field(default="", description="대회명")
    level: str = Field(default=TournamentLevel.LOCAL.value, description="대회 등급")
    state_id: Optional[int] = Field(None, description="개최 시도 ID")
    status: TournamentStatus = Field(default=TournamentStatus.SCHEDULED, description="대회 상태")
    start_date: Optional[date] = Field(None, description="시작일")
    end_date: Optional[date] = Field(None, description="종료일")

    class Config:
        use_enum_values = True


class CompetitorResult(BaseModel):
    """선수별 최종 대회 결과"""
    competitor_id: int = Field(..., description="선수 ID")
    placement: int = Field(..., description="최종 순위")
    field_size: int = Field(..., description="참가자 수")
    matches_won: int = Field(default=0, description="승리 경기 수")
    matches_lost: int = Field(default=0, description="패배 경기 수")
    avg_opponent_rating: float = Field(default=0.0, description="상대 평균 레이팅")
    event_type: Optional[RankingType] = Field(None, description="종목 (단식/복식/혼합복식)")

    class Config:
        use_enum_values = True


# ==================== 조회 결과 모델 ====================

class StandingView(BaseModel):
    """랭킹 행"""
    id: int
    competitor_id: int
    ranking_type: str
    category: str
    state_id: Optional[int] = None
    age_group: Optional[str] = None
    gender: Optional[str] = None
    position: int
    points: Decimal
    previous_position: int = 0
    previous_points: Decimal = Decimal("0")
    tournaments_played: int = 0
    last_tournament_date: Optional[datetime] = None
    activity_bonus: Decimal = Decimal("0")
    decay_factor: Decimal = Decimal("1")
    last_calculated: Optional[datetime] = None
    is_active: bool = True

    class Config:
        from_attributes = True


class StandingPage(BaseModel):
    """카테고리 랭킹 페이지"""
    standings: List[StandingView] = Field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


class TransitionView(BaseModel):
    """순위 변동 이력"""
    id: int
    competitor_id: int
    ranking_type: str
    category: str
    state_id: Optional[int] = None
    age_group: Optional[str] = None
    gender: Optional[str] = None
    old_position: int
    new_position: int
    old_points: Decimal
    new_points: Decimal
    points_change: Decimal
    position_change: int
    reason_code: str
    tournament_id: Optional[int] = None
    change_date: datetime
    is_reconciled: bool = False

    class Config:
        from_attributes = True


class PointCalculationView(BaseModel):
    """포인트 계산 기록"""
    id: int
    tournament_id: int
    competitor_id: int
    placement: int
    field_size: int
    matches_won: int
    matches_lost: int
    avg_opponent_rating: float
    competitor_rating: float
    tournament_level: str
    skill_level: Optional[str] = None
    prior_tournament_count: int
    base_points: Decimal
    placement_multiplier: Decimal
    level_multiplier: Decimal
    opponent_bonus: Decimal
    activity_bonus: Decimal
    participation_bonus: Decimal
    total_points: Decimal
    calculated_at: datetime
    applied_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== 배치 결과 모델 ====================

class BatchFailure(BaseModel):
    """배치 처리 실패 항목"""
    item: str = Field(..., description="실패 항목 식별자")
    error: str = Field(..., description="오류 메시지")
    error_type: str = Field(default="", description="예외 타입")


class BatchResult(BaseModel):
    """배치 처리 결과 (부분 실패 허용)"""
    succeeded: int = Field(default=0)
    failed: List[BatchFailure] = Field(default_factory=list)
    skipped: int = Field(default=0)
    duration_seconds: float = Field(default=0.0)
    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def total(self) -> int:
        return self.succeeded + len(self.failed) + self.skipped

    def record_failure(self, item: str, error: Exception) -> None:
        self.failed.append(BatchFailure(
            item=item,
            error=str(error),
            error_type=type(error).__name__
        ))


class RecalculationResult(BaseModel):
    """파티션 순위 재계산 결과"""
    partition: str
    total: int = 0
    changed: int = 0
    reconciled: int = 0


class TournamentProcessingResult(BaseModel):
    """대회 완료 처리 결과"""
    tournament_id: int
    processed: int = Field(default=0, description="새로 반영된 선수 수")
    skipped: int = Field(default=0, description="이미 반영된 선수 수")
    partitions: int = Field(default=0, description="영향 받은 파티션 수")
    recalculations: List[RecalculationResult] = Field(default_factory=list)
    failed_partitions: List[BatchFailure] = Field(default_factory=list)

    @property
    def already_processed(self) -> bool:
        return self.processed == 0 and self.skipped > 0


class TournamentImpact(BaseModel):
    """대회 영향 분석"""
    tournament_id: int
    total_participants: int = 0
    average_points: float = 0.0
    max_points: float = 0.0
    min_points: float = 0.0
    positive_changes: int = 0
    negative_changes: int = 0
    top_performers: List[PointCalculationView] = Field(default_factory=list)
    biggest_changes: List[TransitionView] = Field(default_factory=list)
