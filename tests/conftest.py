"""
Pytest configuration and fixtures for the ranking engine tests
"""

import pytest
import sys
from datetime import date, datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import create_all, create_engine, create_session_factory
from ranking.config import RankingConfig
from ranking.directory import InMemoryDirectory
from ranking.history import HistoryRecorder
from ranking.models import (
    CompetitorProfile,
    CompetitorResult,
    StateInfo,
    TournamentInfo,
    TournamentStatus,
)
from ranking.notifications import NotificationSink
from ranking.positions import PositionRecalculator
from ranking.service import RankingService
from ranking.store import StandingStore


NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine():
    """In-memory SQLite engine with the ranking tables"""
    engine = create_engine("sqlite://", echo=False)
    create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def ranking_cfg():
    return RankingConfig(
        decay_factor=0.95,
        decay_inactive_months=6,
        reminder_inactive_months=3,
        reminder_limit=50,
        deactivation_months=12,
        max_retries=3,
    )


@pytest.fixture
def store():
    return StandingStore(lambda: NOW)


@pytest.fixture
def history():
    return HistoryRecorder(lambda: NOW)


@pytest.fixture
def recalculator(session_factory, store, history):
    return PositionRecalculator(session_factory, store, history)


@pytest.fixture
def directory():
    """
    시도 2개, 선수 4명, 완료 대회 1개 (전국 대회, 4명 참가)

    선수 13은 생년월일/성별이 없어 전국/시도 파티션에만 들어간다.
    """
    d = InMemoryDirectory()
    d.add_state(StateInfo(id=1, name="서울특별시"))
    d.add_state(StateInfo(id=2, name="부산광역시"))

    d.add_competitor(CompetitorProfile(
        id=10, name="김철수", birth_date=date(1990, 5, 1), gender="male", current_rating=1500
    ))
    d.add_competitor(CompetitorProfile(
        id=11, name="이영희", birth_date=date(2008, 3, 15), gender="Female",
        skill_level="intermediate", current_rating=1400
    ))
    d.add_competitor(CompetitorProfile(
        id=12, name="박민수", birth_date=date(1970, 1, 20), gender="male",
        skill_level="advanced", current_rating=1600
    ))
    d.add_competitor(CompetitorProfile(id=13, name="최지영"))

    d.add_tournament(
        TournamentInfo(
            id=100,
            name="전국 오픈",
            level="national",
            state_id=1,
            status=TournamentStatus.COMPLETED,
            start_date=date(2024, 5, 18),
            end_date=date(2024, 5, 20),
        ),
        [
            CompetitorResult(competitor_id=10, placement=1, field_size=4, matches_won=3, matches_lost=0),
            CompetitorResult(competitor_id=11, placement=2, field_size=4, matches_won=2, matches_lost=1),
            CompetitorResult(competitor_id=12, placement=3, field_size=4, matches_won=1, matches_lost=1),
            CompetitorResult(competitor_id=13, placement=4, field_size=4, matches_won=0, matches_lost=1),
        ]
    )
    d.add_tournament(
        TournamentInfo(
            id=101,
            name="부산 단식 선수권",
            level="state",
            state_id=2,
            status=TournamentStatus.COMPLETED,
            start_date=date(2024, 5, 27),
            end_date=date(2024, 5, 27),
        ),
        [
            CompetitorResult(competitor_id=13, placement=1, field_size=2, matches_won=1, matches_lost=0,
                             event_type="singles"),
            CompetitorResult(competitor_id=10, placement=2, field_size=2, matches_won=0, matches_lost=1,
                             event_type="singles"),
        ]
    )
    return d


@pytest.fixture
def notifier():
    return NotificationSink()


@pytest.fixture
def service(session_factory, directory, notifier, ranking_cfg):
    return RankingService(session_factory, directory, notifier, config=ranking_cfg, now_func=lambda: NOW)
