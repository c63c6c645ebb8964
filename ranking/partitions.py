"""
랭킹 파티션 정의 및 도출

파티션 = 랭킹 종류 × 카테고리 × (시도 / 연령대 / 성별)
카테고리별로 필요한 키만 존재한다.
- national: 추가 키 없음
- state: state_id
- age_group: age_group
- gender: gender
- tournament_level: 추가 키 없음
"""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from .errors import ValidationError
from .models import (
    RankingType,
    RankingCategory,
    CompetitorProfile,
    TournamentInfo,
    CompetitorResult,
)


# 카테고리별 필수 파티션 키
CATEGORY_REQUIRED_KEYS = {
    RankingCategory.NATIONAL.value: (),
    RankingCategory.STATE.value: ("state_id",),
    RankingCategory.AGE_GROUP.value: ("age_group",),
    RankingCategory.GENDER.value: ("gender",),
    RankingCategory.TOURNAMENT_LEVEL.value: (),
}

PARTITION_KEY_FIELDS = ("state_id", "age_group", "gender")

# 연령대 구간 (상한 미만, 라벨)
AGE_GROUP_BRACKETS = [
    (19, "Under 19"),
    (35, "19-34"),
    (50, "35-49"),
    (65, "50-64"),
]
OLDEST_AGE_GROUP = "65+"
AGE_GROUPS = [label for _, label in AGE_GROUP_BRACKETS] + [OLDEST_AGE_GROUP]


def parse_ranking_type(value) -> str:
    """랭킹 종류 검증"""
    try:
        return RankingType(value).value
    except ValueError:
        raise ValidationError(f"알 수 없는 랭킹 종류: {value}", field="ranking_type")


def parse_category(value) -> str:
    """카테고리 검증"""
    try:
        return RankingCategory(value).value
    except ValueError:
        raise ValidationError(f"알 수 없는 카테고리: {value}", field="category")


def normalize_gender(gender: Optional[str]) -> Optional[str]:
    if gender is None:
        return None
    value = str(gender).strip().lower()
    return value or None


@dataclass(frozen=True)
class PartitionKey:
    """랭킹 파티션 키 (선수 ID 제외)"""
    ranking_type: str
    category: str
    state_id: Optional[int] = None
    age_group: Optional[str] = None
    gender: Optional[str] = None

    @classmethod
    def create(
        cls,
        ranking_type,
        category,
        state_id: Optional[int] = None,
        age_group: Optional[str] = None,
        gender: Optional[str] = None
    ) -> "PartitionKey":
        """검증된 파티션 키 생성"""
        ranking_type = parse_ranking_type(ranking_type)
        category = parse_category(category)
        values = {
            "state_id": state_id,
            "age_group": age_group or None,
            "gender": normalize_gender(gender),
        }

        required = CATEGORY_REQUIRED_KEYS[category]
        for key in PARTITION_KEY_FIELDS:
            if key in required and values[key] is None:
                raise ValidationError(f"{category} 카테고리는 {key}가 필요합니다", field=key)
            if key not in required and values[key] is not None:
                raise ValidationError(f"{category} 카테고리는 {key}를 사용하지 않습니다", field=key)

        if values["age_group"] is not None and values["age_group"] not in AGE_GROUPS:
            raise ValidationError(f"알 수 없는 연령대: {values['age_group']}", field="age_group")

        return cls(ranking_type=ranking_type, category=category, **values)

    @classmethod
    def from_row(cls, row) -> "PartitionKey":
        """Standing 행(또는 동일 속성 객체)에서 파티션 키 추출"""
        return cls(
            ranking_type=row.ranking_type,
            category=row.category,
            state_id=row.state_id,
            age_group=row.age_group,
            gender=row.gender,
        )

    @property
    def slug(self) -> str:
        """고유 문자열 표현 (유니크 제약용)"""
        parts = [
            self.ranking_type,
            self.category,
            str(self.state_id) if self.state_id is not None else "-",
            self.age_group or "-",
            self.gender or "-",
        ]
        return "|".join(parts)

    def __str__(self) -> str:
        return self.slug


# =====================================================
# 연령대 계산
# =====================================================

def calculate_age(birth_date: date, today: Optional[date] = None) -> int:
    """만 나이 (생일 전이면 1살 차감)"""
    today = today or date.today()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def calculate_age_group(birth_date: date, today: Optional[date] = None) -> str:
    """생년월일로 연령대 라벨 계산"""
    age = calculate_age(birth_date, today)
    for upper, label in AGE_GROUP_BRACKETS:
        if age < upper:
            return label
    return OLDEST_AGE_GROUP


# =====================================================
# 파티션 도출
# =====================================================

def ranking_types_for(result: Optional[CompetitorResult] = None) -> List[str]:
    """결과에 반영할 랭킹 종류

    종목 정보가 없으면 모든 종류, 있으면 overall + 해당 종목
    """
    if result is None or not result.event_type:
        return [t.value for t in RankingType]

    event_type = parse_ranking_type(result.event_type)
    if event_type == RankingType.OVERALL.value:
        return [RankingType.OVERALL.value]
    return [RankingType.OVERALL.value, event_type]


def derive_partitions(
    profile: CompetitorProfile,
    tournament: TournamentInfo,
    result: Optional[CompetitorResult] = None,
    today: Optional[date] = None
) -> List[PartitionKey]:
    """
    대회 결과 1건이 영향을 주는 모든 파티션 도출 (저장소 무관 순수 함수)

    Args:
        profile: 선수 프로필 (생년월일, 성별)
        tournament: 대회 정보 (개최 시도)
        result: 선수 결과 (종목)
        today: 연령 계산 기준일

    Returns:
        파티션 키 목록 (카테고리 → 랭킹 종류 순)
    """
    ranking_types = ranking_types_for(result)
    gender = normalize_gender(profile.gender)
    age_group = calculate_age_group(profile.birth_date, today) if profile.birth_date else None

    category_keys = [(RankingCategory.NATIONAL.value, {})]
    if tournament.state_id is not None:
        category_keys.append((RankingCategory.STATE.value, {"state_id": tournament.state_id}))
    if age_group:
        category_keys.append((RankingCategory.AGE_GROUP.value, {"age_group": age_group}))
    if gender:
        category_keys.append((RankingCategory.GENDER.value, {"gender": gender}))

    partitions = []
    for category, keys in category_keys:
        for ranking_type in ranking_types:
            partitions.append(PartitionKey(ranking_type=ranking_type, category=category, **keys))
    return partitions
