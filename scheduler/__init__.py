"""
랭킹 배치 스케줄러
"""
from .scheduler import RankingOrchestrator

__all__ = ["RankingOrchestrator"]
