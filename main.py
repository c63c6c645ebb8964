"""
대회 랭킹 엔진 메인
"""
import asyncio
import json
import sys
from typing import Optional

from loguru import logger

from database import create_all, create_engine, create_session_factory
from ranking.directory import JsonDirectory
from ranking.notifications import NotificationSink
from ranking.service import RankingService
from scheduler.scheduler import RankingOrchestrator


# 로깅 설정
logger.remove()
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level="INFO"
)
logger.add(
    "logs/ranking_{time:YYYY-MM-DD}.log",
    rotation="1 day",
    retention="30 days",
    level="DEBUG"
)


def build_service(data_file: Optional[str] = None, database_url: Optional[str] = None) -> RankingService:
    """DB 엔진 + 조회 어댑터 + 서비스 구성"""
    engine = create_engine(database_url)
    create_all(engine)
    session_factory = create_session_factory(engine)
    directory = JsonDirectory(data_file)
    return RankingService(session_factory, directory, NotificationSink())


def print_batch(title: str, result) -> None:
    print(f"\n=== {title} ===")
    print(f"  성공: {result.succeeded}")
    print(f"  스킵: {result.skipped}")
    print(f"  실패: {len(result.failed)}")
    for failure in result.failed:
        print(f"    - {failure.item}: [{failure.error_type}] {failure.error}")
    print(f"  소요: {result.duration_seconds:.1f}초")


async def main():
    """메인 함수"""
    import argparse

    parser = argparse.ArgumentParser(description="대회 랭킹 / 포인트 엔진")
    parser.add_argument(
        "--mode",
        choices=["sweep", "process", "recalc", "decay", "reminders", "maintenance", "standings", "scheduler"],
        default="sweep",
        help="실행 모드"
    )
    parser.add_argument("--data", help="대회/선수/시도 JSON 파일")
    parser.add_argument("--database-url", help="DB URL (기본: DATABASE_URL 환경변수)")
    parser.add_argument("--tournament-id", type=int, help="process 모드 대회 ID")
    parser.add_argument("--competitor-id", type=int, help="standings 모드 선수 ID")
    parser.add_argument("--ranking-type", default="overall", help="랭킹 종류")
    parser.add_argument("--category", help="카테고리 (national/state/age_group/gender)")
    parser.add_argument("--state-id", type=int, help="시도 ID")
    parser.add_argument("--age-group", help="연령대")
    parser.add_argument("--gender", help="성별")
    parser.add_argument("--limit", type=int, default=50, help="조회 개수")

    args = parser.parse_args()

    service = build_service(args.data, args.database_url)
    orchestrator = RankingOrchestrator(service)

    if args.mode == "sweep":
        # 최근 완료 대회 처리
        result = orchestrator.sweep_completed_tournaments()
        print_batch("완료 대회 처리", result)
        if not result.success:
            sys.exit(1)

    elif args.mode == "process":
        if args.tournament_id is None:
            parser.error("process 모드는 --tournament-id가 필요합니다")
        processing = orchestrator.process_tournament_manually(args.tournament_id)
        print(json.dumps(processing.model_dump(), ensure_ascii=False, indent=2, default=str))
        if processing.failed_partitions:
            sys.exit(1)

    elif args.mode == "recalc":
        if args.category:
            recalculation = service.recalculate_positions(
                args.ranking_type, args.category, args.state_id, args.age_group, args.gender
            )
            print(json.dumps(recalculation.model_dump(), ensure_ascii=False, indent=2))
        else:
            result = orchestrator.recalculate_all_positions()
            print_batch("전체 순위 재계산", result)
            if not result.success:
                sys.exit(1)

    elif args.mode == "decay":
        result = orchestrator.run_decay_sweep()
        print_batch("감쇠", result)
        if not result.success:
            sys.exit(1)

    elif args.mode == "reminders":
        result = orchestrator.run_activity_reminders()
        print_batch("활동 알림", result)

    elif args.mode == "maintenance":
        result = orchestrator.run_monthly_maintenance()
        print_batch("월간 정비", result)
        if not result.success:
            sys.exit(1)

    elif args.mode == "standings":
        if args.competitor_id is not None:
            standings = service.get_standings_for_competitor(args.competitor_id)
            print(f"\n=== 선수 {args.competitor_id} 랭킹 ===")
        else:
            page = service.get_standings_by_category(
                args.ranking_type,
                args.category or "national",
                state_id=args.state_id,
                age_group=args.age_group,
                gender=args.gender,
                limit=args.limit,
            )
            standings = page.standings
            print(f"\n=== {args.ranking_type} / {args.category or 'national'} 랭킹 ({page.total}명) ===")
        for s in standings:
            print(f"  {s.position:>4}위  선수 {s.competitor_id:<8} {s.points:>10} pts  [{s.category}/{s.ranking_type}]")

    elif args.mode == "scheduler":
        # 스케줄러 모드
        orchestrator.start()

        logger.info("스케줄러 모드로 실행 중... (Ctrl+C로 종료)")

        try:
            # 무한 대기
            while True:
                await asyncio.sleep(60)
                status = orchestrator.get_status()
                logger.debug(f"스케줄러 상태: {status}")
        except (KeyboardInterrupt, asyncio.CancelledError):
            orchestrator.stop()
            logger.info("스케줄러 종료됨")


if __name__ == "__main__":
    asyncio.run(main())
