"""
랭킹 서비스 (외부 진입점)

대회 완료 처리, 순위 재계산, 감쇠, 랭킹 조회를 한 곳에서 제공한다.
HTTP/인증은 범위 밖이며, 호출자는 이 클래스의 메서드만 사용한다.
"""
import time
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from database.models import PointCalculation
from .config import RankingConfig, ranking_config
from .decay import DecayProcessor
from .errors import ConcurrencyConflict, ValidationError
from .fanout import CategoryFanout, get_point_calculation, record_point_calculation
from .history import HistoryRecorder
from .maintenance import MaintenanceRunner
from .models import (
    BatchResult,
    CompetitorResult,
    NotificationKind,
    PointCalculationView,
    RecalculationResult,
    StandingPage,
    StandingView,
    TournamentImpact,
    TournamentProcessingResult,
    TournamentStatus,
    TransitionView,
)
from .notifications import NotificationSink
from .partitions import PartitionKey, parse_category, parse_ranking_type, normalize_gender
from .positions import PositionRecalculator
from .store import StandingStore


class RankingService:
    """랭킹 엔진 서비스"""

    def __init__(
        self,
        session_factory: sessionmaker,
        directory,
        notifier=None,
        config: Optional[RankingConfig] = None,
        now_func: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            session_factory: SQLAlchemy 세션 팩토리
            directory: 대회/선수/시도 조회 어댑터
            notifier: notify(competitor_id, message_kind, payload)를 가진 알림 객체
            config: 랭킹 설정 (기본: 전역 ranking_config)
            now_func: 현재 시각 함수 (테스트용)
        """
        self.session_factory = session_factory
        self.directory = directory
        self.notifier = notifier or NotificationSink()
        self.config = config or ranking_config
        self._now = now_func or datetime.now

        self.store = StandingStore(self._now)
        self.history = HistoryRecorder(self._now)
        self.fanout = CategoryFanout(session_factory, directory, self.store, self.history, self._now)
        self.recalculator = PositionRecalculator(session_factory, self.store, self.history)
        self.decay = DecayProcessor(
            session_factory, self.store, self.history, self.recalculator, self.config, self._now
        )
        self.maintenance = MaintenanceRunner(
            session_factory, self.notifier, self.store, self.recalculator, self.config, self._now
        )

    # =====================================================
    # 포인트 계산
    # =====================================================

    def calculate_and_record_tournament_points(
        self,
        tournament_id: int,
        competitor_id: int,
        placement: int,
        field_size: int,
        matches_won: int = 0,
        matches_lost: int = 0,
        avg_opponent_rating: float = 0.0,
        event_type: Optional[str] = None
    ) -> PointCalculationView:
        """
        선수 1명의 대회 포인트 계산 및 기록 (랭킹 반영 전)

        이미 기록된 계산이 있으면 그대로 반환한다. 반영은 process_tournament_completion에서.
        """
        tournament = self.directory.get_tournament(tournament_id)
        profile = self.directory.get_competitor(competitor_id)
        result = CompetitorResult(
            competitor_id=competitor_id,
            placement=placement,
            field_size=field_size,
            matches_won=matches_won,
            matches_lost=matches_lost,
            avg_opponent_rating=avg_opponent_rating,
            event_type=event_type,
        )

        with self.session_factory.begin() as session:
            calculation = get_point_calculation(session, tournament_id, competitor_id)
            if calculation is not None:
                logger.debug(f"기존 포인트 계산 반환: 대회 {tournament_id} / 선수 {competitor_id}")
            else:
                calculation = record_point_calculation(session, tournament, profile, result, self._now())
            view = PointCalculationView.model_validate(calculation)

        return view

    def is_tournament_applied(self, tournament_id: int) -> bool:
        """대회 결과가 모두 반영되었는지 (결과가 없으면 False)"""
        results = self.directory.get_results(tournament_id)
        if not results:
            return False

        with self.session_factory() as session:
            stmt = select(PointCalculation.competitor_id).where(
                PointCalculation.tournament_id == tournament_id,
                PointCalculation.applied_at.is_not(None),
            )
            applied = set(session.execute(stmt).scalars().all())

        return all(r.competitor_id in applied for r in results)

    # =====================================================
    # 대회 완료 처리
    # =====================================================

    def process_tournament_completion(self, tournament_id: int) -> TournamentProcessingResult:
        """
        대회 완료 처리

        1단계: 모든 선수 결과를 하나의 트랜잭션으로 반영 (충돌 시 재시도)
        2단계: 커밋 후 영향 받은 파티션별 순위 재계산
        3단계: 새로 반영된 선수에게 랭킹 갱신 알림
        """
        tournament = self.directory.get_tournament(tournament_id)
        if tournament.status == TournamentStatus.CANCELLED.value:
            raise ValidationError(f"취소된 대회는 처리할 수 없습니다: {tournament_id}", field="status")

        results = self.directory.get_results(tournament_id)
        if not results:
            raise ValidationError(f"대회 {tournament_id}에 결과가 없습니다", field="results")

        outcome = self._apply_with_retry(tournament_id, results)

        processing = TournamentProcessingResult(
            tournament_id=tournament_id,
            processed=len(outcome.processed),
            skipped=len(outcome.skipped),
            partitions=len(outcome.partitions),
        )
        if not outcome.processed:
            logger.info(f"대회 {tournament_id}는 이미 반영되었습니다 (순위 재계산만 수행)")

        recalculation = self.recalculator.recalculate_many(sorted(outcome.partitions, key=lambda p: p.slug))
        processing.recalculations = [
            RecalculationResult(**r) for r in recalculation.details.get("recalculations", [])
        ]
        processing.failed_partitions = list(recalculation.failed)

        if outcome.processed:
            self._notify_ranking_updated(tournament_id, outcome.processed)
        return processing

    def _apply_with_retry(self, tournament_id: int, results: List[CompetitorResult]):
        attempts = max(self.config.max_retries, 1)
        for attempt in range(1, attempts + 1):
            try:
                return self.fanout.apply(tournament_id, results)
            except ConcurrencyConflict as e:
                if attempt >= attempts:
                    logger.error(f"대회 {tournament_id} 반영 실패: 충돌 재시도 {attempts}회 초과")
                    raise
                logger.warning(f"대회 {tournament_id} 쓰기 충돌, 재시도 {attempt}/{attempts}: {e}")

    def _notify_ranking_updated(self, tournament_id: int, competitor_ids: List[int]) -> None:
        """랭킹 갱신 알림 (실패해도 반영은 유지)"""
        for competitor_id in competitor_ids:
            try:
                self.notifier.notify(
                    competitor_id,
                    NotificationKind.RANKING_UPDATED.value,
                    {"tournament_id": tournament_id},
                )
            except Exception as e:
                logger.error(f"랭킹 갱신 알림 실패 (선수 {competitor_id}): {e}")

    # =====================================================
    # 순위 재계산 / 감쇠 / 정비
    # =====================================================

    def recalculate_positions(
        self,
        ranking_type,
        category,
        state_id: Optional[int] = None,
        age_group: Optional[str] = None,
        gender: Optional[str] = None
    ) -> RecalculationResult:
        """파티션 1개 순위 재계산"""
        partition = PartitionKey.create(ranking_type, category, state_id, age_group, gender)
        return self.recalculator.recalculate(partition)

    def recalculate_all(self) -> BatchResult:
        """존재하는 모든 파티션 순위 재계산"""
        started = time.monotonic()
        with self.session_factory() as session:
            partitions = self.store.list_partitions(session)

        logger.info(f"전체 순위 재계산 시작: 파티션 {len(partitions)}개")
        result = self.recalculator.recalculate_many(partitions)
        result.duration_seconds = round(time.monotonic() - started, 3)
        logger.info(
            f"전체 순위 재계산 완료: 성공 {result.succeeded}개, 실패 {len(result.failed)}개, "
            f"변동 {result.details.get('changed', 0)}명"
        )
        return result

    def run_decay_sweep(self) -> BatchResult:
        """비활동 랭킹 감쇠"""
        return self.decay.run()

    def send_activity_reminders(self) -> BatchResult:
        """비활동 선수 활동 알림"""
        return self.maintenance.send_activity_reminders()

    def run_monthly_maintenance(self) -> BatchResult:
        """장기 비활동 랭킹 비활성화 + 순위 재계산"""
        return self.maintenance.deactivate_inactive()

    # =====================================================
    # 조회
    # =====================================================

    def get_standings_for_competitor(self, competitor_id: int, include_inactive: bool = False) -> List[StandingView]:
        """선수의 모든 랭킹"""
        with self.session_factory() as session:
            standings = self.store.get_for_competitor(session, competitor_id, include_inactive)
            return [StandingView.model_validate(s) for s in standings]

    def get_standings_by_category(
        self,
        ranking_type,
        category,
        state_id: Optional[int] = None,
        age_group: Optional[str] = None,
        gender: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> StandingPage:
        """카테고리별 랭킹 페이지"""
        ranking_type = parse_ranking_type(ranking_type)
        category = parse_category(category)
        limit = self.config.default_page_size if limit is None else limit
        if limit < 0 or offset < 0:
            raise ValidationError("limit/offset은 음수일 수 없습니다", field="limit")

        with self.session_factory() as session:
            standings, total = self.store.get_by_category(
                session,
                ranking_type,
                category,
                state_id=state_id,
                age_group=age_group,
                gender=normalize_gender(gender),
                limit=limit,
                offset=offset,
            )
            return StandingPage(
                standings=[StandingView.model_validate(s) for s in standings],
                total=total,
                limit=limit,
                offset=offset,
            )

    def get_standing_history(
        self,
        competitor_id: int,
        ranking_type=None,
        category=None,
        limit: Optional[int] = None
    ) -> List[TransitionView]:
        """선수 순위 변동 이력 (최신순)"""
        ranking_type = parse_ranking_type(ranking_type) if ranking_type else None
        category = parse_category(category) if category else None
        limit = self.config.default_history_limit if limit is None else limit

        with self.session_factory() as session:
            transitions = self.history.get_history(session, competitor_id, ranking_type, category, limit)
            return [TransitionView.model_validate(t) for t in transitions]

    # =====================================================
    # 분석
    # =====================================================

    def get_tournament_impact(self, tournament_id: int, top: int = 10) -> TournamentImpact:
        """대회가 랭킹에 준 영향 (참가자 포인트 통계, 상위 입상자, 큰 변동)"""
        self.directory.get_tournament(tournament_id)

        with self.session_factory() as session:
            stmt = (
                select(PointCalculation)
                .where(PointCalculation.tournament_id == tournament_id)
                .order_by(PointCalculation.total_points.desc(), PointCalculation.competitor_id.asc())
            )
            calculations = list(session.execute(stmt).scalars().all())
            transitions = self.history.for_tournament(session, tournament_id)

            impact = TournamentImpact(tournament_id=tournament_id)
            if not calculations:
                return impact

            points = [Decimal(c.total_points) for c in calculations]
            impact.total_participants = len(calculations)
            impact.average_points = round(float(sum(points) / len(points)), 2)
            impact.max_points = float(max(points))
            impact.min_points = float(min(points))
            impact.positive_changes = sum(1 for t in transitions if t.position_change > 0)
            impact.negative_changes = sum(1 for t in transitions if t.position_change < 0)
            impact.top_performers = [PointCalculationView.model_validate(c) for c in calculations[:top]]

            biggest = sorted(transitions, key=lambda t: (-abs(t.position_change), t.id))[:top]
            impact.biggest_changes = [TransitionView.model_validate(t) for t in biggest]

        return impact
