"""
SQLAlchemy 엔진 / 세션 팩토리
"""
import os
from typing import Optional

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from loguru import logger

from ranking.config import database_config

Base = declarative_base()


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def create_engine(url: Optional[str] = None, *, echo: Optional[bool] = None) -> Engine:
    """
    SQLAlchemy 엔진 생성

    URL 우선순위: 인자 → DATABASE_URL 환경변수 → 기본값 (sqlite:///data/rankings.db)
    """
    database_url = url or database_config.database_url
    if not database_url:
        raise RuntimeError("DATABASE_URL 환경변수를 설정해주세요")

    echo = database_config.database_echo if echo is None else echo

    if database_url.startswith("sqlite"):
        if _is_memory_sqlite(database_url):
            # 메모리 DB는 단일 커넥션 공유 (테스트용)
            return _sa_create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )

        db_path = database_url.split("///", 1)[-1]
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        return _sa_create_engine(database_url, echo=echo, connect_args={"check_same_thread": False})

    return _sa_create_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    """엔진에 바인딩된 세션 팩토리"""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_all(engine: Engine) -> None:
    """랭킹 테이블 생성 (이미 있으면 무시)"""
    from . import models  # noqa: F401 - 모델 등록

    Base.metadata.create_all(engine)
    logger.info("랭킹 테이블 준비 완료")
