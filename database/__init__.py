"""
랭킹 엔진 데이터베이스 패키지
"""
from .engine import Base, create_engine, create_session_factory, create_all
from .models import Standing, PointCalculation, StandingTransition

__all__ = [
    "Base",
    "create_engine",
    "create_session_factory",
    "create_all",
    "Standing",
    "PointCalculation",
    "StandingTransition",
]
