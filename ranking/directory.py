"""
외부 조회 어댑터 (대회 / 선수 / 시도)

랭킹 엔진은 아래 메서드만 사용한다.
- get_tournament(tournament_id) -> TournamentInfo
- list_completed_tournaments(since) -> List[TournamentInfo]
- get_results(tournament_id) -> List[CompetitorResult]
- get_competitor(competitor_id) -> CompetitorProfile
- get_state_name(state_id) -> str

같은 메서드를 가진 객체라면 무엇이든 주입할 수 있다.
"""
import json
from datetime import date
from typing import Dict, List, Optional

from loguru import logger

from .errors import NotFoundError
from .models import (
    CompetitorProfile,
    CompetitorResult,
    StateInfo,
    TournamentInfo,
    TournamentStatus,
)


class InMemoryDirectory:
    """메모리 기반 조회 어댑터"""

    def __init__(self):
        self.states: Dict[int, StateInfo] = {}
        self.competitors: Dict[int, CompetitorProfile] = {}
        self.tournaments: Dict[int, TournamentInfo] = {}
        self.results: Dict[int, List[CompetitorResult]] = {}

    # ==================== 등록 ====================

    def add_state(self, state: StateInfo) -> StateInfo:
        self.states[state.id] = state
        return state

    def add_competitor(self, profile: CompetitorProfile) -> CompetitorProfile:
        self.competitors[profile.id] = profile
        return profile

    def add_tournament(
        self,
        tournament: TournamentInfo,
        results: Optional[List[CompetitorResult]] = None
    ) -> TournamentInfo:
        self.tournaments[tournament.id] = tournament
        if results is not None:
            self.results[tournament.id] = list(results)
        return tournament

    def set_results(self, tournament_id: int, results: List[CompetitorResult]) -> None:
        self.results[tournament_id] = list(results)

    # ==================== 조회 ====================

    def get_tournament(self, tournament_id: int) -> TournamentInfo:
        tournament = self.tournaments.get(tournament_id)
        if tournament is None:
            raise NotFoundError("Tournament", tournament_id)
        return tournament

    def list_completed_tournaments(self, since: Optional[date] = None) -> List[TournamentInfo]:
        """완료된 대회 (종료일 since 이후, 종료일 순)"""
        completed = []
        for tournament in self.tournaments.values():
            if tournament.status != TournamentStatus.COMPLETED.value:
                continue
            if since and tournament.end_date and tournament.end_date < since:
                continue
            completed.append(tournament)
        return sorted(completed, key=lambda t: (t.end_date or date.min, t.id))

    def get_results(self, tournament_id: int) -> List[CompetitorResult]:
        self.get_tournament(tournament_id)
        return list(self.results.get(tournament_id, []))

    def get_competitor(self, competitor_id: int) -> CompetitorProfile:
        profile = self.competitors.get(competitor_id)
        if profile is None:
            raise NotFoundError("Competitor", competitor_id)
        return profile

    def get_state_name(self, state_id: int) -> str:
        state = self.states.get(state_id)
        if state is None:
            raise NotFoundError("State", state_id)
        return state.name


class JsonDirectory(InMemoryDirectory):
    """
    JSON 파일 기반 조회 어댑터

    형식:
        {
            "states": [{"id": 1, "name": "..."}],
            "competitors": [{"id": 10, "birth_date": "1990-05-01", "gender": "male", ...}],
            "tournaments": [{"id": 100, "level": "national", "status": "completed",
                             "results": [{"competitor_id": 10, "placement": 1, "field_size": 32}]}]
        }
    """

    def __init__(self, data_file: str = None):
        super().__init__()
        if data_file:
            self.load_data(data_file)

    def load_data(self, data_file: str):
        """JSON 데이터 로드"""
        with open(data_file, "r", encoding="utf-8") as f:
            data = json.load(f)
        self.load_from_data(data)
        logger.info(
            f"데이터 로드 완료: 대회 {len(self.tournaments)}개, "
            f"선수 {len(self.competitors)}명, 시도 {len(self.states)}개"
        )

    def load_from_data(self, data: dict):
        """메모리 데이터에서 로드"""
        for state in data.get("states", []):
            self.add_state(StateInfo(**state))

        for competitor in data.get("competitors", []):
            self.add_competitor(CompetitorProfile(**competitor))

        for raw in data.get("tournaments", []):
            raw = dict(raw)
            results = [CompetitorResult(**r) for r in raw.pop("results", [])]
            self.add_tournament(TournamentInfo(**raw), results)
