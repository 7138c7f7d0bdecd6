"""SweepScheduler -- 周期回收扫描

进程内显式 asyncio 循环，每 sweep_interval_s 秒触发一次扫描：
- 同一时刻至多一个扫描在执行；触发时发现上一次尚未结束则跳过，不排队
- 每次扫描受 sweep_max_duration_s（条目之间检查）和 sweep_batch_limit 约束
- 扫描后顺带停用已过期的员工限制（仅清理优化）
- 单次扫描的异常记录日志，不会终止循环
- stop() 先停止触发，再最多等待 drain_timeout_s 让进行中的扫描结束，
  超时则取消；未处理的条目由重启后的下一次扫描接手
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

import structlog

from .config import AssignmentConfig
from .exceptions import VeoflowError
from .limits import StaffLimitRegistry
from .models.results import SweepReport
from .reclaim import ReclaimService

log = structlog.get_logger()


class SweepScheduler:
    """回收扫描调度器"""

    def __init__(
        self,
        reclaim: ReclaimService,
        registry: StaffLimitRegistry,
        config: AssignmentConfig,
    ) -> None:
        self._reclaim = reclaim
        self._registry = registry
        self._config = config
        self._loop_task: asyncio.Task | None = None
        self._current_pass: asyncio.Task | None = None
        self._stopping = asyncio.Event()

        self.passes_run = 0
        self.passes_skipped = 0
        self.passes_failed = 0
        self.last_report: SweepReport | None = None
        self.last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def pass_in_flight(self) -> bool:
        return self._current_pass is not None and not self._current_pass.done()

    def start(self) -> None:
        """启动后台循环（重复调用无副作用）"""
        if self.running:
            return
        self._stopping.clear()
        self._loop_task = asyncio.create_task(self._run_loop(), name="veoflow-sweep-loop")
        log.info(
            "sweep_scheduler_started",
            interval_s=self._config.sweep_interval_s,
            timeout_min=self._config.assignment_timeout_min,
        )

    async def stop(self) -> None:
        """停止触发并排空进行中的扫描"""
        self._stopping.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None

        current = self._current_pass
        if current is not None and not current.done():
            drain_timeout = self._config.drain_timeout_s
            log.info("sweep_drain_started", drain_timeout_s=drain_timeout)
            done, _ = await asyncio.wait({current}, timeout=drain_timeout)
            if not done:
                current.cancel()
                await asyncio.wait({current})
                log.warning("sweep_drain_timeout", drain_timeout_s=drain_timeout)
        log.info("sweep_scheduler_stopped", passes_run=self.passes_run)

    async def run_once(self, now: datetime | None = None) -> SweepReport | None:
        """立即执行一次扫描

        Returns:
            SweepReport；已有扫描在执行时返回 None（本次跳过）
        """
        task = self._launch(now)
        if task is None:
            return None
        return await task

    async def _run_loop(self) -> None:
        interval = self._config.sweep_interval_s
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except TimeoutError:
                self._launch(None)

    def _launch(self, now: datetime | None) -> asyncio.Task | None:
        if self.pass_in_flight:
            self.passes_skipped += 1
            log.info("sweep_pass_skipped", reason="previous pass still running")
            return None
        task = asyncio.create_task(self._run_pass(now), name="veoflow-sweep-pass")
        task.add_done_callback(self._on_pass_done)
        self._current_pass = task
        return task

    async def _run_pass(self, now: datetime | None) -> SweepReport:
        now = now or datetime.now(UTC)
        report = await self._reclaim.sweep(
            self._config.assignment_timeout,
            now,
            max_items=self._config.sweep_batch_limit,
            max_duration=self._config.sweep_max_duration_s,
        )
        try:
            await self._registry.deactivate_expired(now)
        except VeoflowError as e:
            log.warning("limit_cleanup_failed", error_type=type(e).__name__, error=str(e))

        self.passes_run += 1
        self.last_report = report
        self.last_error = None
        return report

    def _on_pass_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            log.warning("sweep_pass_cancelled")
            return
        exc = task.exception()
        if exc is not None:
            self.passes_failed += 1
            self.last_error = f"{type(exc).__name__}: {exc}"
            log.error(
                "sweep_pass_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )

    def status(self) -> dict[str, Any]:
        """调度器状态（用于 /ready 和运维查询）"""
        return {
            "enabled": self._config.scheduler_enabled,
            "running": self.running,
            "pass_in_flight": self.pass_in_flight,
            "passes_run": self.passes_run,
            "passes_skipped": self.passes_skipped,
            "passes_failed": self.passes_failed,
            "last_error": self.last_error,
            "last_reclaimed_count": (
                self.last_report.reclaimed_count if self.last_report else None
            ),
            "last_finished_at": (
                self.last_report.finished_at.isoformat()
                if self.last_report and self.last_report.finished_at
                else None
            ),
        }
