"""
파티션 순위 재계산 (PositionRecalculator)

활성 랭킹을 포인트 내림차순으로 정렬해 1..N 순위를 다시 매긴다.
동점은 선수 ID 오름차순으로 결정한다.
순위가 바뀐 행만 쓰고, 미보정 마지막 이력에 실제 순위를 반영한다.
"""
from typing import Iterable, Optional

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from .history import HistoryRecorder
from .models import BatchResult, RecalculationResult
from .partitions import PartitionKey
from .store import StandingStore


class PositionRecalculator:
    """파티션 순위 재계산기"""

    def __init__(
        self,
        session_factory: sessionmaker,
        store: Optional[StandingStore] = None,
        history: Optional[HistoryRecorder] = None
    ):
        self.session_factory = session_factory
        self.store = store or StandingStore()
        self.history = history or HistoryRecorder()

    def recalculate(self, partition: PartitionKey) -> RecalculationResult:
        """파티션 1개 재계산 (자체 트랜잭션)"""
        with self.session_factory.begin() as session:
            result = self.recalculate_in_session(session, partition)

        if result.changed:
            logger.info(f"순위 재계산: {partition} - {result.total}명 중 {result.changed}명 변동")
        else:
            logger.debug(f"순위 재계산: {partition} - 변동 없음 ({result.total}명)")
        return result

    def recalculate_in_session(self, session: Session, partition: PartitionKey) -> RecalculationResult:
        """호출자 트랜잭션 안에서 재계산"""
        standings = self.store.load_partition(session, partition, lock=True)
        changed = 0
        reconciled = 0

        for index, standing in enumerate(standings, 1):
            if standing.position != index:
                standing.previous_position = standing.position
                standing.position = index
                changed += 1

            if self.history.reconcile(session, standing, index) is not None:
                reconciled += 1

        session.flush()
        return RecalculationResult(
            partition=partition.slug,
            total=len(standings),
            changed=changed,
            reconciled=reconciled,
        )

    def recalculate_many(self, partitions: Iterable[PartitionKey]) -> BatchResult:
        """
        여러 파티션 재계산

        파티션별로 독립 실행: 한 파티션 실패는 기록 후 다음 파티션 진행
        """
        result = BatchResult()
        recalculations = []

        for partition in partitions:
            try:
                recalculations.append(self.recalculate(partition))
                result.succeeded += 1
            except Exception as e:
                logger.error(f"순위 재계산 오류 ({partition}): {e}")
                result.record_failure(partition.slug, e)

        result.details["recalculations"] = [r.model_dump() for r in recalculations]
        result.details["changed"] = sum(r.changed for r in recalculations)
        return result
