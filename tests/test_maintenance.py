"""
활동 알림 / 장기 비활동 비활성화 테스트
"""
import sys
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from ranking.maintenance import MaintenanceRunner
from ranking.notifications import NotificationSink
from ranking.partitions import PartitionKey

NATIONAL = PartitionKey.create("overall", "national")
MALE = PartitionKey.create("overall", "gender", gender="male")


class FailingSink(NotificationSink):
    """특정 선수 알림만 실패"""

    def __init__(self, failing_id):
        super().__init__()
        self.failing_id = failing_id

    def notify(self, competitor_id, message_kind, payload=None):
        if competitor_id == self.failing_id:
            raise RuntimeError("delivery failed")
        super().notify(competitor_id, message_kind, payload)


@pytest.fixture
def seeded(session_factory, store, recalculator, now):
    """
    10: 최근 대회 (10일 전)
    11: 4개월 전 (알림 대상)
    12: 13개월 전 (알림 + 비활성화 대상, 파티션 2개)
    """
    with session_factory.begin() as session:
        store.accumulate(session, 10, NATIONAL, 300, played_at=now - timedelta(days=10))
        store.accumulate(session, 11, NATIONAL, 200, played_at=now - timedelta(days=120))
        store.accumulate(session, 12, NATIONAL, 500, played_at=now - timedelta(days=400))
        store.accumulate(session, 12, MALE, 500, played_at=now - timedelta(days=400))
    recalculator.recalculate_many([NATIONAL, MALE])


def make_runner(session_factory, notifier, store, recalculator, ranking_cfg, now):
    return MaintenanceRunner(session_factory, notifier, store, recalculator, ranking_cfg, lambda: now)


class TestActivityReminders:
    """비활동 선수 알림"""

    def test_inactive_competitors_notified_once(
        self, session_factory, store, recalculator, ranking_cfg, now, seeded
    ):
        notifier = NotificationSink()
        runner = make_runner(session_factory, notifier, store, recalculator, ranking_cfg, now)

        result = runner.send_activity_reminders()

        assert result.succeeded == 2
        assert {n.competitor_id for n in notifier.sent} == {11, 12}
        # 파티션이 2개여도 선수당 1회
        assert len(notifier.sent_to(12, "activity_reminder")) == 1
        assert notifier.sent_to(10) == []

    def test_payload(self, session_factory, store, recalculator, ranking_cfg, now, seeded):
        notifier = NotificationSink()
        runner = make_runner(session_factory, notifier, store, recalculator, ranking_cfg, now)
        runner.send_activity_reminders()

        payload = notifier.sent_to(11)[0].payload
        assert payload["points"] == "200.00"
        assert payload["inactive_months"] == 3

    def test_limit(self, session_factory, store, recalculator, ranking_cfg, now, seeded):
        notifier = NotificationSink()
        runner = make_runner(session_factory, notifier, store, recalculator, ranking_cfg, now)

        result = runner.send_activity_reminders(limit=1)

        assert result.succeeded == 1
        assert result.skipped == 1
        assert result.details["candidates"] == 2

    def test_notification_failure_recorded(self, session_factory, store, recalculator, ranking_cfg, now, seeded):
        notifier = FailingSink(failing_id=11)
        runner = make_runner(session_factory, notifier, store, recalculator, ranking_cfg, now)

        result = runner.send_activity_reminders()

        assert result.succeeded == 1
        assert len(result.failed) == 1
        assert result.failed[0].item == "competitor:11"
        assert result.failed[0].error_type == "RuntimeError"


class TestDeactivation:
    """장기 비활동 비활성화"""

    def test_deactivates_and_recalculates(self, session_factory, store, recalculator, ranking_cfg, now, seeded):
        runner = make_runner(session_factory, NotificationSink(), store, recalculator, ranking_cfg, now)

        result = runner.deactivate_inactive()

        assert result.succeeded == 2
        assert result.details["partitions"] == 2

        with session_factory() as session:
            rows = store.load_partition(session, NATIONAL, lock=False)
            assert [(r.competitor_id, r.position) for r in rows] == [(10, 1), (11, 2)]
            assert store.get_for_competitor(session, 12) == []
            # 삭제되지 않음
            assert len(store.get_for_competitor(session, 12, include_inactive=True)) == 2

    def test_custom_window(self, session_factory, store, recalculator, ranking_cfg, now, seeded):
        runner = make_runner(session_factory, NotificationSink(), store, recalculator, ranking_cfg, now)

        result = runner.deactivate_inactive(months=3)

        assert result.succeeded == 3
