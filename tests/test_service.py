"""
랭킹 서비스 통합 테스트
- 대회 완료 처리 (카테고리 반영 + 순위 재계산 + 알림)
- 멱등성 / 롤백 / 충돌 재시도
- 조회 / 대회 영향 분석
"""
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from database.models import PointCalculation, Standing
from ranking.errors import ConcurrencyConflict, NotFoundError, ValidationError
from ranking.models import CompetitorResult, TournamentInfo, TournamentStatus


def national_points(service, competitor_id):
    for s in service.get_standings_for_competitor(competitor_id):
        if s.category == "national" and s.ranking_type == "overall":
            return s.points
    return None


# =============================================================================
# 대회 완료 처리
# =============================================================================

class TestProcessTournamentCompletion:
    """대회 완료 처리"""

    def test_processes_all_competitors(self, service):
        result = service.process_tournament_completion(100)

        assert result.processed == 4
        assert result.skipped == 0
        assert not result.already_processed
        assert result.failed_partitions == []

    def test_points_per_competitor(self, service):
        service.process_tournament_completion(100)

        assert national_points(service, 10) == Decimal("1200.00")
        assert national_points(service, 11) == Decimal("793.33")
        assert national_points(service, 12) == Decimal("660.00")
        assert national_points(service, 13) == Decimal("500.00")

    def test_partition_fanout(self, service):
        """프로필 완비 선수 16개, 프로필 없는 선수 8개 파티션"""
        service.process_tournament_completion(100)

        assert len(service.get_standings_for_competitor(10)) == 16
        assert len(service.get_standings_for_competitor(13)) == 8

        categories = {s.category for s in service.get_standings_for_competitor(11)}
        assert categories == {"national", "state", "age_group", "gender"}
        age_groups = {s.age_group for s in service.get_standings_for_competitor(11) if s.age_group}
        assert age_groups == {"Under 19"}

    def test_positions_after_processing(self, service):
        service.process_tournament_completion(100)

        page = service.get_standings_by_category("overall", "national")
        assert [(s.competitor_id, s.position) for s in page.standings] == [(10, 1), (11, 2), (12, 3), (13, 4)]

        male = service.get_standings_by_category("overall", "gender", gender="MALE")
        assert [(s.competitor_id, s.position) for s in male.standings] == [(10, 1), (12, 2)]

    def test_second_call_is_noop(self, service, notifier):
        """재호출 → 포인트 변화 없음"""
        service.process_tournament_completion(100)
        sent = len(notifier.sent)

        again = service.process_tournament_completion(100)

        assert again.processed == 0
        assert again.skipped == 4
        assert again.already_processed
        assert national_points(service, 10) == Decimal("1200.00")
        assert service.get_standings_for_competitor(10)[0].tournaments_played == 1
        assert len(notifier.sent) == sent

    def test_rerun_repairs_positions_after_failed_recalculation(self, service, notifier):
        """반영 후 재계산이 실패해도 재호출 시 순위가 복구됨"""
        real_recalculate = service.recalculator.recalculate

        def broken(partition):
            raise RuntimeError("lock timeout")

        service.recalculator.recalculate = broken
        first = service.process_tournament_completion(100)
        assert first.processed == 4
        assert len(first.failed_partitions) == first.partitions

        provisional = service.get_standings_by_category("overall", "national")
        assert [s.position for s in provisional.standings] == [1, 1, 1, 1]

        service.recalculator.recalculate = real_recalculate
        sent = len(notifier.sent)
        again = service.process_tournament_completion(100)

        assert again.already_processed
        assert again.failed_partitions == []
        assert len(again.recalculations) == first.partitions
        page = service.get_standings_by_category("overall", "national")
        assert [(s.competitor_id, s.position) for s in page.standings] == [(10, 1), (11, 2), (12, 3), (13, 4)]
        assert len(notifier.sent) == sent

    def test_recorded_event_type_drives_partitions(self, service):
        """기록된 계산의 종목 → overall + 해당 종목만"""
        service.calculate_and_record_tournament_points(100, 10, 1, 4, 3, 0, 0.0, event_type="singles")
        service.process_tournament_completion(100)

        standings = service.get_standings_for_competitor(10)
        assert {s.ranking_type for s in standings} == {"overall", "singles"}
        assert len(standings) == 8
        assert len(service.get_standings_for_competitor(12)) == 16

    def test_notifications_after_commit(self, service, notifier):
        service.process_tournament_completion(100)

        for competitor_id in (10, 11, 12, 13):
            notes = notifier.sent_to(competitor_id, "ranking_updated")
            assert len(notes) == 1
            assert notes[0].payload == {"tournament_id": 100}

    def test_notification_failure_does_not_roll_back(self, service):
        class BrokenSink:
            def notify(self, competitor_id, message_kind, payload=None):
                raise RuntimeError("sink down")

        service.notifier = BrokenSink()
        result = service.process_tournament_completion(100)

        assert result.processed == 4
        assert national_points(service, 10) == Decimal("1200.00")

    def test_second_tournament_moves_positions(self, service):
        service.process_tournament_completion(100)
        service.process_tournament_completion(101)

        assert national_points(service, 13) == Decimal("1100.00")
        assert national_points(service, 10) == Decimal("1550.00")

        history = service.get_standing_history(13, "overall", "national")
        assert history[0].tournament_id == 101
        assert history[0].old_position == 4
        assert history[0].new_position == 2
        assert history[0].position_change == 2

        # 단식 종목 결과는 overall + singles만
        types = {s.ranking_type for s in service.get_standings_for_competitor(13) if s.state_id == 2}
        assert types == {"overall", "singles"}

    def test_missing_competitor_rolls_back_tournament(self, service, directory, session_factory):
        """한 선수라도 실패하면 대회 전체 롤백"""
        directory.add_tournament(
            TournamentInfo(id=300, level="local", status=TournamentStatus.COMPLETED, end_date=date(2024, 5, 1)),
            [
                CompetitorResult(competitor_id=10, placement=1, field_size=2),
                CompetitorResult(competitor_id=999, placement=2, field_size=2),
            ]
        )

        with pytest.raises(NotFoundError):
            service.process_tournament_completion(300)

        assert service.get_standings_for_competitor(10) == []
        with session_factory() as session:
            assert session.query(PointCalculation).count() == 0
            assert session.query(Standing).count() == 0

    def test_invalid_result_rolls_back(self, service, directory):
        directory.set_results(100, [
            CompetitorResult(competitor_id=10, placement=1, field_size=4),
            CompetitorResult(competitor_id=11, placement=5, field_size=4),
        ])

        with pytest.raises(ValidationError):
            service.process_tournament_completion(100)
        assert service.get_standings_for_competitor(10) == []

    def test_duplicate_competitor_rejected(self, service, directory):
        directory.set_results(100, [
            CompetitorResult(competitor_id=10, placement=1, field_size=4),
            CompetitorResult(competitor_id=10, placement=2, field_size=4),
        ])
        with pytest.raises(ValidationError):
            service.process_tournament_completion(100)

    def test_unknown_state_rejected(self, service, directory):
        directory.add_tournament(
            TournamentInfo(id=301, level="state", state_id=42, status=TournamentStatus.COMPLETED),
            [CompetitorResult(competitor_id=10, placement=1, field_size=2)]
        )
        with pytest.raises(NotFoundError):
            service.process_tournament_completion(301)

    def test_unknown_tournament(self, service):
        with pytest.raises(NotFoundError):
            service.process_tournament_completion(12345)

    def test_tournament_without_results(self, service, directory):
        directory.add_tournament(TournamentInfo(id=302, status=TournamentStatus.COMPLETED))
        with pytest.raises(ValidationError):
            service.process_tournament_completion(302)

    def test_cancelled_tournament(self, service, directory):
        directory.add_tournament(
            TournamentInfo(id=303, status=TournamentStatus.CANCELLED),
            [CompetitorResult(competitor_id=10, placement=1, field_size=2)]
        )
        with pytest.raises(ValidationError):
            service.process_tournament_completion(303)


class TestRetry:
    """쓰기 충돌 재시도"""

    def test_conflict_retried(self, service):
        real_apply = service.fanout.apply
        calls = []

        def flaky(tournament_id, results=None):
            calls.append(tournament_id)
            if len(calls) == 1:
                raise ConcurrencyConflict("collision")
            return real_apply(tournament_id, results)

        service.fanout.apply = flaky
        result = service.process_tournament_completion(100)

        assert len(calls) == 2
        assert result.processed == 4

    def test_conflict_gives_up_after_max_retries(self, service):
        calls = []

        def always_conflict(tournament_id, results=None):
            calls.append(tournament_id)
            raise ConcurrencyConflict("collision")

        service.fanout.apply = always_conflict
        with pytest.raises(ConcurrencyConflict):
            service.process_tournament_completion(100)
        assert len(calls) == 3


# =============================================================================
# 포인트 계산 기록
# =============================================================================

class TestCalculateAndRecord:
    """포인트 계산 기록 (반영 전)"""

    def test_records_without_applying(self, service):
        view = service.calculate_and_record_tournament_points(100, 10, 1, 4, 3, 0, 0.0)

        assert view.total_points == Decimal("1200.00")
        assert view.applied_at is None
        assert service.get_standings_for_competitor(10) == []
        assert not service.is_tournament_applied(100)

    def test_recorded_calculation_used_by_completion(self, service):
        service.calculate_and_record_tournament_points(100, 10, 1, 4, 3, 0, 0.0)
        service.process_tournament_completion(100)

        view = service.calculate_and_record_tournament_points(100, 10, 1, 4, 3, 0, 0.0)
        assert view.applied_at is not None
        assert service.is_tournament_applied(100)
        assert national_points(service, 10) == Decimal("1200.00")

    def test_existing_calculation_returned(self, service):
        first = service.calculate_and_record_tournament_points(100, 10, 1, 4, 3, 0, 0.0)
        second = service.calculate_and_record_tournament_points(100, 10, 2, 4, 0, 3, 0.0)
        assert second.id == first.id
        assert second.total_points == first.total_points

    def test_activity_bonus_counts_prior_tournaments(self, service, directory):
        for tournament_id in range(500, 505):
            directory.add_tournament(
                TournamentInfo(id=tournament_id, level="local", status=TournamentStatus.COMPLETED)
            )
            service.calculate_and_record_tournament_points(tournament_id, 10, 1, 2)

        view = service.calculate_and_record_tournament_points(100, 10, 1, 4)
        assert view.prior_tournament_count == 5
        assert view.activity_bonus == Decimal("5.00")

    def test_invalid_placement(self, service, session_factory):
        with pytest.raises(ValidationError):
            service.calculate_and_record_tournament_points(100, 10, 0, 4)
        with session_factory() as session:
            assert session.query(PointCalculation).count() == 0


# =============================================================================
# 조회
# =============================================================================

class TestQueries:
    """랭킹 조회"""

    def test_category_paging(self, service):
        service.process_tournament_completion(100)

        page = service.get_standings_by_category("overall", "national", limit=1, offset=1)
        assert page.total == 4
        assert page.total_pages == 4
        assert [s.competitor_id for s in page.standings] == [11]

    def test_state_and_age_group_filters(self, service):
        service.process_tournament_completion(100)

        seoul = service.get_standings_by_category("singles", "state", state_id=1)
        assert seoul.total == 4

        seniors = service.get_standings_by_category("overall", "age_group", age_group="50-64")
        assert [s.competitor_id for s in seniors.standings] == [12]
        assert seniors.standings[0].position == 1

    def test_unknown_category(self, service):
        with pytest.raises(ValidationError):
            service.get_standings_by_category("overall", "planet")

    def test_history_default_limit_and_filters(self, service):
        service.process_tournament_completion(100)

        assert len(service.get_standing_history(10)) == 16
        assert len(service.get_standing_history(10, limit=3)) == 3
        national = service.get_standing_history(10, "overall", "national")
        assert len(national) == 1
        assert national[0].reason_code == "tournament_completion"
        assert national[0].is_reconciled is True

    def test_recalculate_positions_single_partition(self, service):
        service.process_tournament_completion(100)
        result = service.recalculate_positions("overall", "gender", gender="male")
        assert result.total == 2
        assert result.changed == 0

    def test_recalculate_all(self, service):
        service.process_tournament_completion(100)
        result = service.recalculate_all()
        assert result.success
        assert result.succeeded == len(result.details["recalculations"])
        assert result.details["changed"] == 0


class TestTournamentImpact:
    """대회 영향 분석"""

    def test_impact_statistics(self, service):
        service.process_tournament_completion(100)

        impact = service.get_tournament_impact(100)
        assert impact.total_participants == 4
        assert impact.max_points == 1200.0
        assert impact.min_points == 500.0
        assert impact.average_points == 788.33
        assert impact.top_performers[0].competitor_id == 10

    def test_biggest_change(self, service):
        service.process_tournament_completion(100)
        service.process_tournament_completion(101)

        impact = service.get_tournament_impact(101)
        assert impact.positive_changes >= 1
        assert impact.biggest_changes[0].competitor_id == 13
        assert impact.biggest_changes[0].position_change == 2

    def test_impact_without_calculations(self, service):
        impact = service.get_tournament_impact(101)
        assert impact.total_participants == 0
        assert impact.top_performers == []
