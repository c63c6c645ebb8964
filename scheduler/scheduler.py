"""
랭킹 자동 처리 스케줄러
"""
import asyncio
import time
from datetime import date, datetime, timedelta
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from ranking.config import RankingConfig, SchedulerConfig, ranking_config, scheduler_config
from ranking.models import BatchResult, TournamentProcessingResult


JOB_KINDS = ("sweep", "recalc", "decay", "reminders", "maintenance")


class RankingOrchestrator:
    """랭킹 배치 작업 스케줄러"""

    def __init__(
        self,
        service,
        config: Optional[SchedulerConfig] = None,
        ranking_cfg: Optional[RankingConfig] = None
    ):
        """
        Args:
            service: RankingService
            config: 스케줄 설정 (기본: 전역 scheduler_config)
            ranking_cfg: 랭킹 설정 (기본: 전역 ranking_config)
        """
        self.scheduler = AsyncIOScheduler()
        self.service = service
        self.config = config or scheduler_config
        self.ranking_config = ranking_cfg or ranking_config
        self._running: Dict[str, bool] = {kind: False for kind in JOB_KINDS}
        self._last_runs: Dict[str, Optional[datetime]] = {kind: None for kind in JOB_KINDS}
        self._last_results: Dict[str, Optional[dict]] = {kind: None for kind in JOB_KINDS}
        self._started = False

    def setup(self):
        """스케줄 등록"""
        jobs = [
            (
                self._run_completion_sweep,
                IntervalTrigger(minutes=self.config.completion_interval_minutes),
                "tournament_completion_sweep",
                "Tournament Completion Sweep",
            ),
            (
                self._run_decay,
                CronTrigger(hour=self.config.decay_hour, minute=0),
                "daily_decay",
                "Daily Decay",
            ),
            (
                self._run_weekly_recalc,
                CronTrigger(day_of_week=self.config.weekly_recalc_day, hour=self.config.weekly_recalc_hour, minute=0),
                "weekly_recalculation",
                "Weekly Recalculation",
            ),
            (
                self._run_maintenance,
                CronTrigger(day=self.config.maintenance_day, hour=self.config.maintenance_hour, minute=0),
                "monthly_maintenance",
                "Monthly Maintenance",
            ),
        ]
        if self.config.reminders_enabled:
            jobs.append((
                self._run_reminders,
                CronTrigger(hour=self.config.reminder_hour, minute=0),
                "daily_activity_reminders",
                "Daily Activity Reminders",
            ))

        for func, trigger, job_id, name in jobs:
            self.scheduler.add_job(
                func,
                trigger,
                id=job_id,
                name=name,
                replace_existing=True,
                max_instances=1
            )
            logger.info(f"스케줄 등록: {name} ({trigger})")

    # ==================== 동기 작업 ====================

    def sweep_completed_tournaments(self) -> BatchResult:
        """
        최근 완료 대회 중 미반영 대회 처리

        대회마다 독립 처리: 한 대회 실패는 기록 후 다음 대회 진행
        """
        started = time.monotonic()
        since = date.today() - timedelta(days=self.ranking_config.completion_lookback_days)
        tournaments = self.service.directory.list_completed_tournaments(since)
        result = BatchResult()
        processed = []

        logger.info(f"완료 대회 {len(tournaments)}개 확인 (기준일 {since})")

        for tournament in tournaments:
            try:
                if not self.service.directory.get_results(tournament.id):
                    logger.warning(f"대회 {tournament.id} 결과 없음, 스킵")
                    result.skipped += 1
                    continue
                if self.service.is_tournament_applied(tournament.id):
                    logger.debug(f"대회 {tournament.id} 이미 반영됨, 스킵")
                    result.skipped += 1
                    continue

                processing = self.service.process_tournament_completion(tournament.id)
                processed.append(processing.model_dump())
                result.succeeded += 1
            except Exception as e:
                logger.error(f"대회 {tournament.id} 처리 오류: {e}")
                result.record_failure(f"tournament:{tournament.id}", e)

        result.details["tournaments"] = processed
        result.duration_seconds = round(time.monotonic() - started, 3)
        logger.info(
            f"완료 대회 처리: 성공 {result.succeeded}개, 스킵 {result.skipped}개, 실패 {len(result.failed)}개"
        )
        return result

    def recalculate_all_positions(self) -> BatchResult:
        return self.service.recalculate_all()

    def run_decay_sweep(self) -> BatchResult:
        return self.service.run_decay_sweep()

    def run_activity_reminders(self) -> BatchResult:
        return self.service.send_activity_reminders()

    def run_monthly_maintenance(self) -> BatchResult:
        return self.service.run_monthly_maintenance()

    def process_tournament_manually(self, tournament_id: int) -> TournamentProcessingResult:
        """대회 1개 수동 재처리 (이미 반영된 선수는 스킵)"""
        logger.info(f"대회 {tournament_id} 수동 처리")
        return self.service.process_tournament_completion(tournament_id)

    # ==================== 스케줄 작업 ====================

    async def _run_job(self, kind: str, func) -> Optional[BatchResult]:
        """실행 중 플래그로 중복 실행 방지 후 작업 실행"""
        if self._running[kind]:
            logger.warning(f"{kind} 작업이 이미 진행 중입니다, 스킵")
            return None

        self._running[kind] = True
        logger.info(f"=== {kind} 작업 시작 ===")

        try:
            result = await asyncio.to_thread(func)
            self._last_runs[kind] = datetime.now()
            self._last_results[kind] = {
                "succeeded": result.succeeded,
                "failed": len(result.failed),
                "skipped": result.skipped,
                "duration_seconds": result.duration_seconds,
            }
            logger.info(f"{kind} 작업 완료: {self._last_results[kind]}")
            return result
        except Exception as e:
            logger.error(f"{kind} 작업 오류: {e}")
            return None
        finally:
            self._running[kind] = False

    async def _run_completion_sweep(self):
        return await self._run_job("sweep", self.sweep_completed_tournaments)

    async def _run_weekly_recalc(self):
        return await self._run_job("recalc", self.recalculate_all_positions)

    async def _run_decay(self):
        return await self._run_job("decay", self.run_decay_sweep)

    async def _run_reminders(self):
        return await self._run_job("reminders", self.run_activity_reminders)

    async def _run_maintenance(self):
        return await self._run_job("maintenance", self.run_monthly_maintenance)

    # ==================== 수명 주기 ====================

    def start(self):
        """스케줄러 시작"""
        if self._started:
            logger.warning("스케줄러가 이미 실행 중입니다")
            return
        self.setup()
        self.scheduler.start()
        self._started = True
        logger.info("스케줄러 시작됨")

    def stop(self):
        """스케줄러 중지"""
        if not self._started:
            return
        self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("스케줄러 중지됨")

    def get_status(self) -> dict:
        """스케줄러 상태 조회"""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None
            })

        return {
            "started": self._started,
            "running": dict(self._running),
            "last_runs": {
                kind: last.isoformat() if last else None
                for kind, last in self._last_runs.items()
            },
            "last_results": dict(self._last_results),
            "jobs": jobs
        }

    async def run_now(self, kind: str = "sweep") -> Optional[BatchResult]:
        """즉시 실행"""
        runners = {
            "sweep": self._run_completion_sweep,
            "recalc": self._run_weekly_recalc,
            "decay": self._run_decay,
            "reminders": self._run_reminders,
            "maintenance": self._run_maintenance,
        }
        runner = runners.get(kind)
        if runner is None:
            logger.warning(f"알 수 없는 작업 종류: {kind}")
            return None
        return await runner()
