"""
랭킹 엔진 예외 정의

- ValidationError: 잘못된 입력 (순위, 참가자 수, 알 수 없는 enum 값)
- NotFoundError: 대회/선수/시도 조회 실패
- ComputationError: 계산 불변식 위반 (예: 음수 포인트)
- ConcurrencyConflict: 파티션 쓰기 충돌, 트랜잭션 재시도 필요
"""


class RankingError(Exception):
    """랭킹 엔진 기본 예외"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(RankingError):
    """입력값 검증 실패"""

    def __init__(self, message: str = "Invalid ranking input", field: str = None):
        self.field = field
        super().__init__(message)


class NotFoundError(RankingError):
    """조회 대상 없음 (대회, 선수, 시도)"""

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ComputationError(RankingError):
    """내부 계산 불변식 위반"""


class ConcurrencyConflict(RankingError):
    """
    동일 파티션에 대한 동시 쓰기 충돌

    호출자는 트랜잭션 전체를 다시 시도해야 한다.
    """

    def __init__(self, message: str = "Concurrent write conflict", partition: str = None):
        self.partition = partition
        super().__init__(message)
