"""
비활동 선수 포인트 감쇠 (DecayProcessor)

마지막 대회일이 기준일 이전인 활성 랭킹에 감쇠 계수를 곱한다.
- 랭킹 행마다 독립 트랜잭션 (실패는 기록 후 계속 진행)
- 모든 할인이 커밋된 뒤, 영향 받은 파티션마다 순위 재계산 1회
"""
import time
from datetime import datetime, timedelta
from typing import Callable, Optional, Set

from loguru import logger
from sqlalchemy.orm import sessionmaker

from .config import RankingConfig, ranking_config
from .history import HistoryRecorder
from .models import BatchResult, ChangeReason
from .partitions import PartitionKey
from .positions import PositionRecalculator
from .store import StandingStore


class DecayProcessor:
    """감쇠 배치 처리기"""

    def __init__(
        self,
        session_factory: sessionmaker,
        store: Optional[StandingStore] = None,
        history: Optional[HistoryRecorder] = None,
        recalculator: Optional[PositionRecalculator] = None,
        config: Optional[RankingConfig] = None,
        now_func: Optional[Callable[[], datetime]] = None
    ):
        self.session_factory = session_factory
        self._now = now_func or datetime.now
        self.store = store or StandingStore(self._now)
        self.history = history or HistoryRecorder(self._now)
        self.recalculator = recalculator or PositionRecalculator(session_factory, self.store, self.history)
        self.config = config or ranking_config

    def default_cutoff(self) -> datetime:
        return self._now() - timedelta(days=self.config.decay_inactive_months * 30)

    def run(self, cutoff: Optional[datetime] = None, factor: Optional[float] = None) -> BatchResult:
        """
        감쇠 실행

        Args:
            cutoff: 이 시각 이전에 마지막 대회를 치른 랭킹이 대상 (기본: 현재 - 6개월)
            factor: 감쇠 계수 (기본: 설정값 0.95)

        Returns:
            BatchResult (details: decayed / partitions / recalculation)
        """
        started = time.monotonic()
        cutoff = cutoff or self.default_cutoff()
        factor = self.config.decay_factor if factor is None else factor
        result = BatchResult()

        with self.session_factory() as session:
            candidates = [
                (standing.id, PartitionKey.from_row(standing))
                for standing in self.store.find_inactive(session, cutoff)
            ]

        logger.info(f"🍂 감쇠 시작: 대상 {len(candidates)}건 (기준일 {cutoff:%Y-%m-%d}, 계수 {factor})")

        touched: Set[PartitionKey] = set()
        for standing_id, partition in candidates:
            try:
                with self.session_factory.begin() as session:
                    standing = self.store.discount(session, standing_id, factor)
                    self.history.append(session, standing, ChangeReason.DECAY)
                touched.add(partition)
                result.succeeded += 1
            except Exception as e:
                logger.error(f"감쇠 오류 (랭킹 {standing_id}): {e}")
                result.record_failure(f"standing:{standing_id}", e)

        recalculation = self.recalculator.recalculate_many(sorted(touched, key=lambda p: p.slug))
        result.failed.extend(recalculation.failed)

        result.duration_seconds = round(time.monotonic() - started, 3)
        result.details.update({
            "decayed": result.succeeded,
            "partitions": len(touched),
            "recalculation": recalculation.details,
        })

        logger.info(
            f"🍂 감쇠 완료: 성공 {result.succeeded}건, 실패 {len(result.failed)}건, "
            f"파티션 {len(touched)}개 재계산 ({result.duration_seconds}초)"
        )
        return result
