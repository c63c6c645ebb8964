"""
대회 결과 → 카테고리 파티션 반영 (CategoryFanout)

대회 1개의 모든 선수 결과를 하나의 트랜잭션으로 처리한다.
1. 선수별 포인트 계산 기록 (대회 + 선수 키로 1회만)
2. 선수 프로필에서 파티션 도출 (전국 / 시도 / 연령대 / 성별 × 랭킹 종류)
3. 파티션마다 포인트 누적 + 이력 추가
어느 한 선수라도 실패하면 대회 전체가 롤백된다.
"""
from dataclasses import dataclass, field
from datetime import datetime, time
from decimal import Decimal
from typing import Callable, List, Optional, Set

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from database.models import PointCalculation
from .calculator import calculate_points
from .errors import ConcurrencyConflict, ValidationError
from .history import HistoryRecorder
from .models import (
    ChangeReason,
    CompetitorProfile,
    CompetitorResult,
    TournamentInfo,
)
from .partitions import PartitionKey, derive_partitions
from .store import StandingStore, to_factor, to_points


@dataclass
class FanoutOutcome:
    """대회 1개 반영 결과"""
    tournament_id: int
    processed: List[int] = field(default_factory=list)   # 새로 반영된 선수
    skipped: List[int] = field(default_factory=list)     # 이미 반영된 선수
    partitions: Set[PartitionKey] = field(default_factory=set)


# =====================================================
# 포인트 계산 기록
# =====================================================

def get_point_calculation(
    session: Session,
    tournament_id: int,
    competitor_id: int,
    lock: bool = False
) -> Optional[PointCalculation]:
    """대회 + 선수 포인트 계산 기록 조회"""
    stmt = select(PointCalculation).where(
        PointCalculation.tournament_id == tournament_id,
        PointCalculation.competitor_id == competitor_id,
    )
    if lock:
        stmt = stmt.with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def count_prior_tournaments(session: Session, competitor_id: int, tournament_id: int) -> int:
    """해당 대회를 제외한 선수의 기존 계산 기록 수"""
    stmt = select(func.count(PointCalculation.id)).where(
        PointCalculation.competitor_id == competitor_id,
        PointCalculation.tournament_id != tournament_id,
    )
    return session.execute(stmt).scalar_one()


def record_point_calculation(
    session: Session,
    tournament: TournamentInfo,
    profile: CompetitorProfile,
    result: CompetitorResult,
    now: datetime
) -> PointCalculation:
    """포인트 계산 후 불변 기록 생성"""
    prior_count = count_prior_tournaments(session, profile.id, tournament.id)
    breakdown = calculate_points(
        tournament_level=tournament.level,
        skill_level=profile.skill_level,
        placement=result.placement,
        field_size=result.field_size,
        matches_won=result.matches_won,
        matches_lost=result.matches_lost,
        avg_opponent_rating=result.avg_opponent_rating,
        competitor_rating=profile.current_rating,
        prior_tournament_count=prior_count,
    )

    calculation = PointCalculation(
        tournament_id=tournament.id,
        competitor_id=profile.id,
        placement=breakdown.placement,
        field_size=breakdown.field_size,
        matches_won=breakdown.matches_won,
        matches_lost=breakdown.matches_lost,
        avg_opponent_rating=breakdown.avg_opponent_rating,
        competitor_rating=breakdown.competitor_rating,
        tournament_level=breakdown.tournament_level,
        skill_level=breakdown.skill_level,
        prior_tournament_count=breakdown.prior_tournament_count,
        event_type=result.event_type,
        base_points=to_points(breakdown.base_points),
        placement_multiplier=to_factor(breakdown.placement_multiplier),
        level_multiplier=to_factor(breakdown.level_multiplier),
        opponent_bonus=to_points(breakdown.opponent_bonus),
        activity_bonus=to_points(breakdown.activity_bonus),
        participation_bonus=to_factor(breakdown.participation_bonus),
        total_points=to_points(breakdown.total_points),
        calculation_details=breakdown.to_dict(),
        calculated_at=now,
        applied_at=None,
    )
    session.add(calculation)
    try:
        session.flush()
    except IntegrityError as e:
        raise ConcurrencyConflict(
            f"포인트 계산 중복 기록: 대회 {tournament.id} / 선수 {profile.id}"
        ) from e

    logger.debug(f"포인트 계산: 대회 {tournament.id} / 선수 {profile.id} → {breakdown.total_points}")
    return calculation


# =====================================================
# 카테고리 반영
# =====================================================

class CategoryFanout:
    """대회 결과를 모든 관련 파티션에 반영"""

    def __init__(
        self,
        session_factory: sessionmaker,
        directory,
        store: Optional[StandingStore] = None,
        history: Optional[HistoryRecorder] = None,
        now_func: Optional[Callable[[], datetime]] = None
    ):
        self.session_factory = session_factory
        self.directory = directory
        self._now = now_func or datetime.now
        self.store = store or StandingStore(self._now)
        self.history = history or HistoryRecorder(self._now)

    def apply(
        self,
        tournament_id: int,
        competitor_results: Optional[List[CompetitorResult]] = None
    ) -> FanoutOutcome:
        """
        대회 결과 반영 (대회 단위 단일 트랜잭션)

        Args:
            tournament_id: 대회 ID
            competitor_results: 선수별 결과 (None이면 조회 어댑터에서 로드)

        Returns:
            FanoutOutcome (반영/스킵 선수, 영향 받은 파티션)
        """
        tournament = self.directory.get_tournament(tournament_id)
        results = competitor_results if competitor_results is not None else self.directory.get_results(tournament_id)
        self._check_duplicates(tournament_id, results)

        if tournament.state_id is not None:
            # 시도 조회 실패 시 NotFoundError
            self.directory.get_state_name(tournament.state_id)

        played_at = self._played_at(tournament)
        outcome = FanoutOutcome(tournament_id=tournament_id)

        with self.session_factory.begin() as session:
            for result in results:
                self._apply_result(session, tournament, result, played_at, outcome)

        logger.info(
            f"대회 {tournament_id} 반영 완료: 선수 {len(outcome.processed)}명, "
            f"스킵 {len(outcome.skipped)}명, 파티션 {len(outcome.partitions)}개"
        )
        return outcome

    def _apply_result(
        self,
        session: Session,
        tournament: TournamentInfo,
        result: CompetitorResult,
        played_at: datetime,
        outcome: FanoutOutcome
    ) -> None:
        calculation = get_point_calculation(session, tournament.id, result.competitor_id, lock=True)
        profile = self.directory.get_competitor(result.competitor_id)

        if calculation is not None and calculation.applied_at is not None:
            # 이미 반영된 선수도 재계산 대상 파티션은 알려준다
            result = self._with_recorded_event_type(result, calculation)
            outcome.partitions.update(derive_partitions(profile, tournament, result, today=played_at.date()))
            outcome.skipped.append(result.competitor_id)
            return

        if calculation is None:
            calculation = record_point_calculation(session, tournament, profile, result, self._now())

        result = self._with_recorded_event_type(result, calculation)
        partitions = derive_partitions(profile, tournament, result, today=played_at.date())
        total_points = Decimal(calculation.total_points)

        for partition in partitions:
            standing = self.store.accumulate(
                session,
                profile.id,
                partition,
                total_points,
                played_at=played_at,
                activity_bonus=calculation.activity_bonus,
            )
            self.history.append(
                session,
                standing,
                ChangeReason.TOURNAMENT_COMPLETION,
                tournament_id=tournament.id,
            )
            outcome.partitions.add(partition)

        calculation.applied_at = self._now()
        session.flush()
        outcome.processed.append(profile.id)

    @staticmethod
    def _with_recorded_event_type(result: CompetitorResult, calculation: PointCalculation) -> CompetitorResult:
        """기록된 계산의 종목이 있으면 그 종목 기준으로 파티션 도출"""
        if calculation.event_type and calculation.event_type != result.event_type:
            return result.model_copy(update={"event_type": calculation.event_type})
        return result

    def _played_at(self, tournament: TournamentInfo) -> datetime:
        """대회 종료일 기준 시각 (없으면 현재)"""
        played_on = tournament.end_date or tournament.start_date
        if played_on is None:
            return self._now()
        return datetime.combine(played_on, time.min)

    @staticmethod
    def _check_duplicates(tournament_id: int, results: List[CompetitorResult]) -> None:
        seen = set()
        for result in results:
            if result.competitor_id in seen:
                raise ValidationError(
                    f"대회 {tournament_id}에 선수 {result.competitor_id} 결과가 중복되었습니다",
                    field="competitor_id"
                )
            seen.add(result.competitor_id)
