"""
순위 변동 이력 기록 (HistoryRecorder)

이력은 추가 전용이다. 단, 랭킹 행의 마지막 이력이 아직 보정되지 않았다면
순위 재계산 후 실제 새 순위/순위 변동으로 한 번만 보정한다.
보정 대상은 랭킹 행에 저장된 last_transition_id로 직접 찾는다.
"""
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from database.models import Standing, StandingTransition
from .models import ChangeReason


class HistoryRecorder:
    """랭킹 변동 이력 기록기"""

    def __init__(self, now_func: Optional[Callable[[], datetime]] = None):
        self._now = now_func or datetime.now

    def append(
        self,
        session: Session,
        standing: Standing,
        reason: ChangeReason,
        tournament_id: Optional[int] = None,
        change_date: Optional[datetime] = None
    ) -> StandingTransition:
        """
        포인트 변경 직후의 랭킹 행으로 이력 추가

        old 값은 accumulate/discount가 남긴 previous_* 스냅샷을 사용한다.
        new_position은 재계산 전까지 임시값(현재 순위)이다.
        """
        old_points = Decimal(standing.previous_points or 0)
        new_points = Decimal(standing.points)

        transition = StandingTransition(
            standing_id=standing.id,
            competitor_id=standing.competitor_id,
            ranking_type=standing.ranking_type,
            category=standing.category,
            state_id=standing.state_id,
            age_group=standing.age_group,
            gender=standing.gender,
            old_position=standing.previous_position or 0,
            new_position=standing.position,
            old_points=old_points,
            new_points=new_points,
            points_change=new_points - old_points,
            position_change=0,
            reason_code=ChangeReason(reason).value,
            tournament_id=tournament_id,
            change_date=change_date or self._now(),
            is_reconciled=False,
        )
        session.add(transition)
        session.flush()

        standing.last_transition_id = transition.id
        return transition

    def reconcile(self, session: Session, standing: Standing, new_position: int) -> Optional[StandingTransition]:
        """
        미보정 마지막 이력에 실제 순위 반영

        position_change = 이전 순위 - 새 순위 (양수 = 상승), 첫 진입은 0
        """
        if not standing.last_transition_id:
            return None

        transition = session.get(StandingTransition, standing.last_transition_id)
        if transition is None or transition.is_reconciled:
            return None

        transition.new_position = new_position
        if transition.old_position > 0:
            transition.position_change = transition.old_position - new_position
        else:
            transition.position_change = 0
        transition.is_reconciled = True
        return transition

    # ==================== 조회 ====================

    def get_history(
        self,
        session: Session,
        competitor_id: int,
        ranking_type: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 20
    ) -> List[StandingTransition]:
        """선수 변동 이력 (최신순)"""
        stmt = select(StandingTransition).where(StandingTransition.competitor_id == competitor_id)
        if ranking_type:
            stmt = stmt.where(StandingTransition.ranking_type == ranking_type)
        if category:
            stmt = stmt.where(StandingTransition.category == category)
        stmt = stmt.order_by(StandingTransition.change_date.desc(), StandingTransition.id.desc()).limit(limit)
        return list(session.execute(stmt).scalars().all())

    def for_tournament(self, session: Session, tournament_id: int) -> List[StandingTransition]:
        """대회로 인한 변동 (포인트 변동 큰 순)"""
        stmt = (
            select(StandingTransition)
            .where(StandingTransition.tournament_id == tournament_id)
            .order_by(StandingTransition.points_change.desc(), StandingTransition.id.asc())
        )
        return list(session.execute(stmt).scalars().all())
