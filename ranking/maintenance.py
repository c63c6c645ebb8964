"""
랭킹 정비 작업

- 활동 알림: 최근 대회 참가가 없는 선수에게 참가 독려 알림
- 비활성화: 장기간 대회가 없는 랭킹을 비활성화하고 순위 재계산
"""
import time
from datetime import datetime, timedelta
from typing import Callable, Optional, Set

from loguru import logger
from sqlalchemy.orm import sessionmaker

from .config import RankingConfig, ranking_config
from .models import BatchResult, NotificationKind
from .partitions import PartitionKey
from .positions import PositionRecalculator
from .store import StandingStore


class MaintenanceRunner:
    """활동 알림 / 비활성화 처리기"""

    def __init__(
        self,
        session_factory: sessionmaker,
        notifier,
        store: Optional[StandingStore] = None,
        recalculator: Optional[PositionRecalculator] = None,
        config: Optional[RankingConfig] = None,
        now_func: Optional[Callable[[], datetime]] = None
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self._now = now_func or datetime.now
        self.store = store or StandingStore(self._now)
        self.recalculator = recalculator or PositionRecalculator(session_factory, self.store)
        self.config = config or ranking_config

    # ==================== 활동 알림 ====================

    def send_activity_reminders(self, inactive_months: Optional[int] = None, limit: Optional[int] = None) -> BatchResult:
        """
        비활동 선수 알림

        마지막 대회가 기준 기간 이전이고 포인트가 남아 있는 선수에게 1회씩 알림.
        알림 실패는 기록만 하고 다음 선수로 진행한다.
        """
        started = time.monotonic()
        months = inactive_months or self.config.reminder_inactive_months
        limit = limit or self.config.reminder_limit
        cutoff = self._now() - timedelta(days=months * 30)
        result = BatchResult()

        with self.session_factory() as session:
            standings = self.store.find_inactive(session, cutoff, min_points=0)
            # 선수별 가장 최근 대회일 / 최대 포인트
            targets = {}
            for standing in standings:
                target = targets.setdefault(standing.competitor_id, {
                    "last_tournament_date": standing.last_tournament_date,
                    "points": standing.points,
                })
                if standing.last_tournament_date and standing.last_tournament_date > target["last_tournament_date"]:
                    target["last_tournament_date"] = standing.last_tournament_date
                if standing.points > target["points"]:
                    target["points"] = standing.points

        for competitor_id in sorted(targets)[:limit]:
            target = targets[competitor_id]
            payload = {
                "last_tournament_date": target["last_tournament_date"].isoformat(),
                "points": str(target["points"]),
                "inactive_months": months,
            }
            try:
                self.notifier.notify(competitor_id, NotificationKind.ACTIVITY_REMINDER.value, payload)
                result.succeeded += 1
            except Exception as e:
                logger.error(f"활동 알림 실패 (선수 {competitor_id}): {e}")
                result.record_failure(f"competitor:{competitor_id}", e)

        result.skipped = max(len(targets) - limit, 0)
        result.duration_seconds = round(time.monotonic() - started, 3)
        result.details["candidates"] = len(targets)
        logger.info(f"🔔 활동 알림: {result.succeeded}명 발송, 실패 {len(result.failed)}명")
        return result

    # ==================== 비활성화 ====================

    def deactivate_inactive(self, months: Optional[int] = None) -> BatchResult:
        """
        장기 비활동 랭킹 비활성화 후 영향 파티션 재계산

        비활성화된 행은 순위 계산에서 빠지며, 다음 대회 반영 시 재활성화된다.
        """
        started = time.monotonic()
        months = months or self.config.deactivation_months
        cutoff = self._now() - timedelta(days=months * 30)
        result = BatchResult()

        with self.session_factory() as session:
            candidates = [
                (standing.id, PartitionKey.from_row(standing))
                for standing in self.store.find_inactive(session, cutoff)
            ]

        touched: Set[PartitionKey] = set()
        for standing_id, partition in candidates:
            try:
                with self.session_factory.begin() as session:
                    standing = self.store.get_by_id(session, standing_id)
                    self.store.deactivate(session, standing)
                touched.add(partition)
                result.succeeded += 1
            except Exception as e:
                logger.error(f"비활성화 오류 (랭킹 {standing_id}): {e}")
                result.record_failure(f"standing:{standing_id}", e)

        recalculation = self.recalculator.recalculate_many(sorted(touched, key=lambda p: p.slug))
        result.failed.extend(recalculation.failed)

        result.duration_seconds = round(time.monotonic() - started, 3)
        result.details.update({
            "deactivated": result.succeeded,
            "partitions": len(touched),
            "recalculation": recalculation.details,
        })
        logger.info(f"💤 비활성화: {result.succeeded}건, 파티션 {len(touched)}개 재계산")
        return result
