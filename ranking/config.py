"""
랭킹 엔진 설정
"""
from pydantic_settings import BaseSettings
from pydantic import Field
from dotenv import load_dotenv

load_dotenv()


class DatabaseConfig(BaseSettings):
    """데이터베이스 설정"""

    database_url: str = Field(default="sqlite:///data/rankings.db", description="SQLAlchemy DB URL")
    database_echo: bool = Field(default=False, description="SQL 로그 출력")

    class Config:
        env_prefix = ""
        case_sensitive = False


class RankingConfig(BaseSettings):
    """포인트/감쇠/배치 설정"""

    # 감쇠 (비활동 선수 포인트 할인)
    decay_factor: float = Field(default=0.95, gt=0, le=1, description="감쇠 계수")
    decay_inactive_months: int = Field(default=6, description="감쇠 적용 비활동 기간 (개월)")

    # 활동 알림
    reminder_inactive_months: int = Field(default=3, description="알림 대상 비활동 기간 (개월)")
    reminder_limit: int = Field(default=50, description="1회 최대 알림 수")

    # 비활성화 (월간 정비)
    deactivation_months: int = Field(default=12, description="비활성화 기준 기간 (개월)")

    # 대회 완료 처리
    completion_lookback_days: int = Field(default=7, description="완료 대회 조회 기간 (일)")
    max_retries: int = Field(default=3, description="충돌 시 최대 재시도 횟수")

    # 조회
    default_page_size: int = Field(default=50, description="카테고리 랭킹 기본 페이지 크기")
    default_history_limit: int = Field(default=20, description="히스토리 기본 조회 수")

    class Config:
        env_prefix = "RANKING_"
        case_sensitive = False


class SchedulerConfig(BaseSettings):
    """스케줄러 설정"""

    completion_interval_minutes: int = Field(default=60, description="완료 대회 처리 간격 (분)")
    decay_hour: int = Field(default=2, description="매일 감쇠 실행 시간")
    weekly_recalc_day: str = Field(default="sun", description="주간 재계산 요일")
    weekly_recalc_hour: int = Field(default=3, description="주간 재계산 시간")
    maintenance_day: int = Field(default=1, description="월간 정비 일자")
    maintenance_hour: int = Field(default=4, description="월간 정비 시간")
    reminder_hour: int = Field(default=9, description="활동 알림 시간")
    reminders_enabled: bool = Field(default=True, description="활동 알림 활성화")

    class Config:
        env_prefix = "SCHEDULER_"
        case_sensitive = False


# 전역 설정 인스턴스
database_config = DatabaseConfig()
ranking_config = RankingConfig()
scheduler_config = SchedulerConfig()
