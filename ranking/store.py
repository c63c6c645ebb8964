"""
랭킹 저장소 (StandingStore)

파티션별 랭킹 행의 누적/할인과 카테고리 조회.
포인트를 변경하는 곳은 accumulate / discount 두 곳뿐이며,
둘 다 호출자의 트랜잭션 안에서 행 잠금(SELECT ... FOR UPDATE) 후 수정한다.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, List, Optional, Tuple

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import Standing
from .errors import ValidationError, NotFoundError, ComputationError, ConcurrencyConflict
from .partitions import PartitionKey

POINTS_QUANT = Decimal("0.01")
FACTOR_QUANT = Decimal("0.0001")


def to_points(value) -> Decimal:
    """포인트를 소수점 둘째 자리 Decimal로 변환"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(POINTS_QUANT, rounding=ROUND_HALF_UP)


def to_factor(value) -> Decimal:
    """배수/계수를 소수점 넷째 자리 Decimal로 변환"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(FACTOR_QUANT, rounding=ROUND_HALF_UP)


class StandingStore:
    """파티션별 랭킹 행 저장소"""

    def __init__(self, now_func: Optional[Callable[[], datetime]] = None):
        self._now = now_func or datetime.now

    # ==================== 쓰기 ====================

    def get_for_update(self, session: Session, competitor_id: int, partition: PartitionKey) -> Optional[Standing]:
        """파티션 행 잠금 조회"""
        stmt = (
            select(Standing)
            .where(Standing.competitor_id == competitor_id, Standing.partition == partition.slug)
            .with_for_update()
        )
        return session.execute(stmt).scalar_one_or_none()

    def get_by_id(self, session: Session, standing_id: int) -> Standing:
        """ID로 행 잠금 조회 (없으면 NotFoundError)"""
        stmt = select(Standing).where(Standing.id == standing_id).with_for_update()
        standing = session.execute(stmt).scalar_one_or_none()
        if standing is None:
            raise NotFoundError("Standing", standing_id)
        return standing

    def accumulate(
        self,
        session: Session,
        competitor_id: int,
        partition: PartitionKey,
        delta_points,
        played_at: Optional[datetime] = None,
        activity_bonus=None
    ) -> Standing:
        """
        포인트 누적 (없으면 생성)

        기존 행: 이전 포인트/순위 스냅샷 → 포인트 가산 → 대회 수 +1 → 날짜 갱신
        신규 행: 임시 순위 1, 대회 수 1, 감쇠 계수 1.0, 활성
        """
        delta = to_points(delta_points)
        if delta < 0:
            raise ValidationError(f"누적 포인트는 음수일 수 없습니다: {delta}", field="delta_points")

        now = self._now()
        played_at = played_at or now
        standing = self.get_for_update(session, competitor_id, partition)

        if standing is not None:
            standing.previous_points = standing.points
            standing.previous_position = standing.position
            standing.points = to_points(Decimal(standing.points) + delta)
            standing.tournaments_played = (standing.tournaments_played or 0) + 1
            if standing.last_tournament_date is None or played_at > standing.last_tournament_date:
                standing.last_tournament_date = played_at
            standing.last_calculated = now
            if activity_bonus is not None:
                standing.activity_bonus = to_points(activity_bonus)
            if not standing.is_active:
                standing.is_active = True
                logger.info(f"랭킹 재활성화: 선수 {competitor_id} / {partition}")
            session.flush()
            return standing

        standing = Standing(
            competitor_id=competitor_id,
            ranking_type=partition.ranking_type,
            category=partition.category,
            state_id=partition.state_id,
            age_group=partition.age_group,
            gender=partition.gender,
            partition=partition.slug,
            position=1,
            points=delta,
            previous_position=0,
            previous_points=Decimal("0.00"),
            tournaments_played=1,
            last_tournament_date=played_at,
            activity_bonus=to_points(activity_bonus or 0),
            decay_factor=Decimal("1.0000"),
            last_calculated=now,
            is_active=True,
        )
        session.add(standing)
        try:
            session.flush()
        except IntegrityError as e:
            raise ConcurrencyConflict(
                f"랭킹 행 동시 생성 충돌: 선수 {competitor_id} / {partition}",
                partition=partition.slug
            ) from e
        return standing

    def discount(self, session: Session, standing_id: int, factor) -> Standing:
        """포인트 할인 (감쇠). factor는 (0, 1] 범위"""
        factor = to_factor(factor)
        if factor <= 0 or factor > 1:
            raise ValidationError(f"감쇠 계수는 (0, 1] 범위여야 합니다: {factor}", field="factor")

        standing = self.get_by_id(session, standing_id)

        old_points = Decimal(standing.points)
        new_points = to_points(old_points * factor)
        if new_points > old_points:
            raise ComputationError(f"감쇠 후 포인트 증가: {old_points} → {new_points}")

        standing.previous_points = old_points
        standing.previous_position = standing.position
        standing.points = new_points
        standing.decay_factor = factor
        standing.last_calculated = self._now()
        session.flush()
        return standing

    def deactivate(self, session: Session, standing: Standing) -> Standing:
        """소프트 비활성화 (삭제하지 않음)"""
        standing.is_active = False
        standing.last_calculated = self._now()
        session.flush()
        return standing

    # ==================== 조회 ====================

    def load_partition(self, session: Session, partition: PartitionKey, lock: bool = True) -> List[Standing]:
        """파티션의 활성 행 (포인트 내림차순, 동점은 선수 ID 오름차순)"""
        stmt = (
            select(Standing)
            .where(Standing.partition == partition.slug, Standing.is_active.is_(True))
            .order_by(Standing.points.desc(), Standing.competitor_id.asc())
        )
        if lock:
            stmt = stmt.with_for_update()
        return list(session.execute(stmt).scalars().all())

    def get_for_competitor(self, session: Session, competitor_id: int, include_inactive: bool = False) -> List[Standing]:
        """선수의 모든 랭킹"""
        stmt = select(Standing).where(Standing.competitor_id == competitor_id)
        if not include_inactive:
            stmt = stmt.where(Standing.is_active.is_(True))
        stmt = stmt.order_by(Standing.category.asc(), Standing.ranking_type.asc(), Standing.partition.asc())
        return list(session.execute(stmt).scalars().all())

    def get_by_category(
        self,
        session: Session,
        ranking_type: str,
        category: str,
        state_id: Optional[int] = None,
        age_group: Optional[str] = None,
        gender: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Standing], int]:
        """카테고리별 랭킹 (순위 오름차순) + 전체 건수"""
        conditions = [
            Standing.ranking_type == ranking_type,
            Standing.category == category,
            Standing.is_active.is_(True),
        ]
        if state_id is not None:
            conditions.append(Standing.state_id == state_id)
        if age_group:
            conditions.append(Standing.age_group == age_group)
        if gender:
            conditions.append(Standing.gender == gender)

        total = session.execute(select(func.count(Standing.id)).where(*conditions)).scalar_one()
        stmt = (
            select(Standing)
            .where(*conditions)
            .order_by(Standing.position.asc(), Standing.competitor_id.asc())
            .limit(limit)
            .offset(offset)
        )
        return list(session.execute(stmt).scalars().all()), total

    def list_partitions(self, session: Session, active_only: bool = True) -> List[PartitionKey]:
        """현재 존재하는 모든 파티션 키"""
        stmt = select(
            Standing.ranking_type,
            Standing.category,
            Standing.state_id,
            Standing.age_group,
            Standing.gender,
        ).distinct()
        if active_only:
            stmt = stmt.where(Standing.is_active.is_(True))

        partitions = {PartitionKey.from_row(row) for row in session.execute(stmt).all()}
        return sorted(partitions, key=lambda p: p.slug)

    def find_inactive(
        self,
        session: Session,
        cutoff: datetime,
        min_points=None,
        limit: Optional[int] = None
    ) -> List[Standing]:
        """마지막 대회일이 cutoff 이전인 활성 랭킹"""
        stmt = select(Standing).where(
            Standing.is_active.is_(True),
            Standing.last_tournament_date < cutoff,
        )
        if min_points is not None:
            stmt = stmt.where(Standing.points > min_points)
        stmt = stmt.order_by(Standing.id.asc())
        if limit:
            stmt = stmt.limit(limit)
        return list(session.execute(stmt).scalars().all())
