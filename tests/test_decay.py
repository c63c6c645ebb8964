"""
감쇠 배치 테스트
"""
import sys
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from ranking.decay import DecayProcessor
from ranking.models import ChangeReason
from ranking.partitions import PartitionKey

NATIONAL = PartitionKey.create("overall", "national")
SEOUL = PartitionKey.create("overall", "state", state_id=1)


@pytest.fixture
def decay(session_factory, store, history, recalculator, ranking_cfg, now):
    return DecayProcessor(session_factory, store, history, recalculator, ranking_cfg, lambda: now)


@pytest.fixture
def seeded(session_factory, store, history, recalculator, now):
    """
    10: 1000점, 7개월 전 마지막 대회 (감쇠 대상)
    11: 980점, 1개월 전 마지막 대회
    """
    with session_factory.begin() as session:
        for competitor_id, points, days_ago in [(10, 1000, 210), (11, 980, 30)]:
            for partition in (NATIONAL, SEOUL):
                standing = store.accumulate(
                    session, competitor_id, partition, points, played_at=now - timedelta(days=days_ago)
                )
                history.append(session, standing, ChangeReason.TOURNAMENT_COMPLETION, tournament_id=1)
    recalculator.recalculate_many([NATIONAL, SEOUL])


class TestDecayProcessor:
    """비활동 선수 감쇠"""

    def test_inactive_competitor_decayed(self, decay, seeded, session_factory, store):
        """1000.00 → 950.00, 순위 재계산 반영"""
        result = decay.run()

        assert result.succeeded == 2
        assert result.success
        assert result.details["partitions"] == 2

        with session_factory() as session:
            rows = store.load_partition(session, NATIONAL, lock=False)
            assert [(r.competitor_id, r.position, r.points) for r in rows] == [
                (11, 1, Decimal("980.00")),
                (10, 2, Decimal("950.00")),
            ]
            assert rows[1].decay_factor == Decimal("0.9500")

    def test_decay_transition_recorded(self, decay, seeded, session_factory, history):
        decay.run()

        with session_factory() as session:
            latest = history.get_history(session, 10, "overall", "national")[0]
            assert latest.reason_code == "decay"
            assert latest.tournament_id is None
            assert latest.old_points == Decimal("1000.00")
            assert latest.new_points == Decimal("950.00")
            assert latest.points_change == Decimal("-50.00")
            assert latest.old_position == 1
            assert latest.new_position == 2
            assert latest.position_change == -1
            assert latest.is_reconciled is True

    def test_active_competitor_untouched(self, decay, seeded, session_factory, store):
        decay.run()

        with session_factory() as session:
            standing = store.get_for_competitor(session, 11)[0]
            assert standing.points == Decimal("980.00")
            assert standing.decay_factor == Decimal("1.0000")

    def test_custom_cutoff(self, decay, seeded, now):
        """기준일을 앞당기면 대상 없음"""
        result = decay.run(cutoff=now - timedelta(days=365))
        assert result.succeeded == 0
        assert result.total == 0

    def test_failures_recorded_and_sweep_continues(self, decay, seeded, session_factory, store):
        """잘못된 계수 → 모든 항목 실패로 기록, 포인트 변경 없음"""
        result = decay.run(factor=1.5)

        assert result.succeeded == 0
        assert len(result.failed) == 2
        assert not result.success
        assert all(f.error_type == "ValidationError" for f in result.failed)

        with session_factory() as session:
            assert store.get_for_competitor(session, 10)[0].points == Decimal("1000.00")

    def test_one_failure_does_not_stop_neighbours(self, decay, seeded, session_factory, store):
        """랭킹 1건 실패 → 나머지 랭킹은 감쇠 + 순위 재계산"""
        with session_factory() as session:
            seoul_id = next(
                s.id for s in store.load_partition(session, SEOUL, lock=False) if s.competitor_id == 10
            )

        real_discount = store.discount

        def flaky(session, standing_id, factor):
            if standing_id == seoul_id:
                raise RuntimeError("row locked")
            return real_discount(session, standing_id, factor)

        store.discount = flaky
        result = decay.run()

        assert result.succeeded == 1
        assert [(f.item, f.error_type) for f in result.failed] == [(f"standing:{seoul_id}", "RuntimeError")]
        assert result.details["partitions"] == 1

        with session_factory() as session:
            national = store.load_partition(session, NATIONAL, lock=False)
            assert [(r.competitor_id, r.position, r.points) for r in national] == [
                (11, 1, Decimal("980.00")),
                (10, 2, Decimal("950.00")),
            ]
            seoul = store.load_partition(session, SEOUL, lock=False)
            assert [(r.competitor_id, r.position, r.points) for r in seoul] == [
                (10, 1, Decimal("1000.00")),
                (11, 2, Decimal("980.00")),
            ]
