"""
대회 랭킹 / 포인트 엔진

대회 결과 → 포인트 계산 → 카테고리 파티션 누적 → 순위 재계산
"""
from .calculator import (
    PointBreakdown,
    calculate_points,
    TOURNAMENT_BASE_POINTS,
    LEVEL_MULTIPLIERS,
)
from .errors import (
    RankingError,
    ValidationError,
    NotFoundError,
    ComputationError,
    ConcurrencyConflict,
)
from .partitions import PartitionKey, derive_partitions, calculate_age_group
from .directory import InMemoryDirectory, JsonDirectory
from .notifications import NotificationSink

__all__ = [
    "PointBreakdown",
    "calculate_points",
    "TOURNAMENT_BASE_POINTS",
    "LEVEL_MULTIPLIERS",
    "RankingError",
    "ValidationError",
    "NotFoundError",
    "ComputationError",
    "ConcurrencyConflict",
    "PartitionKey",
    "derive_partitions",
    "calculate_age_group",
    "InMemoryDirectory",
    "JsonDirectory",
    "NotificationSink",
]
