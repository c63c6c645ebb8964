"""
대회 포인트 계산 모듈

공식: 기본 포인트 × 순위 배수 × 실력 배수 × 참가 보너스 + 상대 보너스 + 활동 보너스
- 대회 등급별 기본 포인트
- 상위 4위 고정 배수, 그 이하는 백분위 구간 배수
- 선수 실력 등급 배수
- 강한 상대를 만난 경우 보너스 (상한 100)
- 5번째 대회부터 활동 보너스 (상한 50)
"""
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional

from .errors import ValidationError, ComputationError
from .models import TournamentLevel, SkillLevel


# =====================================================
# 상수 정의
# =====================================================

# 대회 등급별 기본 포인트
TOURNAMENT_BASE_POINTS = {
    TournamentLevel.NATIONAL.value: 1000,
    TournamentLevel.STATE.value: 500,
    TournamentLevel.MUNICIPAL.value: 250,
    TournamentLevel.LOCAL.value: 100,
}

# 상위 4위 고정 배수
PLACEMENT_MULTIPLIERS = {
    1: 1.00,  # 우승
    2: 0.70,  # 준우승
    3: 0.50,  # 4강
    4: 0.50,  # 4강
}

# 5위 이하 백분위 구간 배수 (하한, 배수)
PERCENTILE_MULTIPLIERS = [
    (0.8, 0.4),  # 상위 20%
    (0.6, 0.3),  # 상위 40%
    (0.4, 0.2),  # 상위 60%
]
BOTTOM_PERCENTILE_MULTIPLIER = 0.1

# 실력 등급별 배수
LEVEL_MULTIPLIERS = {
    SkillLevel.BEGINNER.value: 0.8,
    SkillLevel.INTERMEDIATE.value: 1.0,
    SkillLevel.ADVANCED.value: 1.2,
    SkillLevel.PROFESSIONAL.value: 1.5,
}

OPPONENT_BONUS_RATE = 0.1
MAX_OPPONENT_BONUS = 100.0

ACTIVITY_BONUS_THRESHOLD = 5   # 보너스 시작 대회 수
ACTIVITY_BONUS_PER_TOURNAMENT = 5
MAX_ACTIVITY_BONUS = 50.0

PARTICIPATION_BONUS_RATE = 0.2  # 전승 시 최대 20%


# =====================================================
# 데이터 클래스
# =====================================================

@dataclass(frozen=True)
class PointBreakdown:
    """선수 1명의 대회 포인트 계산 내역"""
    tournament_level: str
    skill_level: Optional[str]
    placement: int
    field_size: int
    matches_won: int
    matches_lost: int
    avg_opponent_rating: float
    competitor_rating: float
    prior_tournament_count: int
    base_points: float
    placement_multiplier: float
    level_multiplier: float
    opponent_bonus: float
    activity_bonus: float
    participation_bonus: float
    total_points: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =====================================================
# 구성 요소 계산
# =====================================================

def normalize_level(tournament_level: Optional[str]) -> str:
    """대회 등급 정규화 (알 수 없는 등급은 local)"""
    if not tournament_level:
        return TournamentLevel.LOCAL.value
    level = str(tournament_level).strip().lower()
    if level not in TOURNAMENT_BASE_POINTS:
        return TournamentLevel.LOCAL.value
    return level


def get_base_points(tournament_level: Optional[str]) -> int:
    """대회 등급별 기본 포인트"""
    return TOURNAMENT_BASE_POINTS[normalize_level(tournament_level)]


def get_placement_multiplier(placement: int, field_size: int) -> float:
    """최종 순위 배수

    4위까지는 고정값, 그 이하는 (참가자 수 - 순위 + 1) / 참가자 수 백분위로 구간 배수
    """
    if placement in PLACEMENT_MULTIPLIERS:
        return PLACEMENT_MULTIPLIERS[placement]

    percentile = (field_size - placement + 1) / field_size
    for threshold, multiplier in PERCENTILE_MULTIPLIERS:
        if percentile >= threshold:
            return multiplier
    return BOTTOM_PERCENTILE_MULTIPLIER


def get_level_multiplier(skill_level: Optional[str]) -> float:
    """선수 실력 등급 배수 (미설정 시 1.0)"""
    if not skill_level:
        return 1.0
    return LEVEL_MULTIPLIERS.get(str(skill_level).strip().lower(), 1.0)


def calculate_opponent_bonus(avg_opponent_rating: float, competitor_rating: float) -> float:
    """상대 평균 레이팅이 더 높을 때만 보너스"""
    if avg_opponent_rating <= competitor_rating:
        return 0.0
    difference = avg_opponent_rating - competitor_rating
    return min(difference * OPPONENT_BONUS_RATE, MAX_OPPONENT_BONUS)


def calculate_activity_bonus(prior_tournament_count: int) -> float:
    """활동 보너스: 이번 대회 포함 5번째 대회부터 대회당 5점"""
    tournaments_played = prior_tournament_count + 1
    bonus = max(tournaments_played - ACTIVITY_BONUS_THRESHOLD, 0) * ACTIVITY_BONUS_PER_TOURNAMENT
    return float(min(bonus, MAX_ACTIVITY_BONUS))


def calculate_participation_bonus(matches_won: int, matches_lost: int) -> float:
    """승률 기반 참가 보너스 배수"""
    total_matches = matches_won + matches_lost
    if total_matches == 0:
        return 1.0
    win_rate = matches_won / total_matches
    return 1.0 + win_rate * PARTICIPATION_BONUS_RATE


def validate_result(placement: int, field_size: int, matches_won: int = 0, matches_lost: int = 0):
    """순위/참가자 수/경기 수 검증"""
    if placement is None or placement <= 0:
        raise ValidationError(f"순위는 1 이상이어야 합니다: {placement}", field="placement")
    if field_size is None or field_size < placement:
        raise ValidationError(
            f"참가자 수({field_size})가 순위({placement})보다 작습니다",
            field="field_size"
        )
    if matches_won < 0 or matches_lost < 0:
        raise ValidationError(
            f"경기 수는 음수일 수 없습니다: {matches_won}/{matches_lost}",
            field="matches"
        )


# =====================================================
# 포인트 계산
# =====================================================

def calculate_points(
    tournament_level: Optional[str],
    skill_level: Optional[str],
    placement: int,
    field_size: int,
    matches_won: int = 0,
    matches_lost: int = 0,
    avg_opponent_rating: float = 0.0,
    competitor_rating: float = 0.0,
    prior_tournament_count: int = 0
) -> PointBreakdown:
    """
    최종 포인트 계산

    공식: 기본 × 순위 배수 × 실력 배수 × 참가 보너스 + 상대 보너스 + 활동 보너스
    결과는 소수점 둘째 자리 반올림
    """
    validate_result(placement, field_size, matches_won, matches_lost)

    level = normalize_level(tournament_level)
    base_points = get_base_points(level)
    placement_multiplier = get_placement_multiplier(placement, field_size)
    level_multiplier = get_level_multiplier(skill_level)
    opponent_bonus = calculate_opponent_bonus(avg_opponent_rating or 0.0, competitor_rating or 0.0)
    activity_bonus = calculate_activity_bonus(prior_tournament_count)
    participation_bonus = calculate_participation_bonus(matches_won, matches_lost)

    points = (
        base_points * placement_multiplier * level_multiplier * participation_bonus
        + opponent_bonus
        + activity_bonus
    )
    total_points = round(points, 2)

    if total_points < 0:
        raise ComputationError(f"음수 포인트 계산됨: {total_points}")

    return PointBreakdown(
        tournament_level=level,
        skill_level=skill_level,
        placement=placement,
        field_size=field_size,
        matches_won=matches_won,
        matches_lost=matches_lost,
        avg_opponent_rating=avg_opponent_rating or 0.0,
        competitor_rating=competitor_rating or 0.0,
        prior_tournament_count=prior_tournament_count,
        base_points=float(base_points),
        placement_multiplier=placement_multiplier,
        level_multiplier=level_multiplier,
        opponent_bonus=round(opponent_bonus, 2),
        activity_bonus=activity_bonus,
        participation_bonus=round(participation_bonus, 4),
        total_points=total_points
    )
