"""
Scheduler entry point: route a tick to the forward or backfill controller.

Manifesto:
    The scheduler says *which* cadence fired; dispatch does nothing else.
    A cycle failure is logged once, with the error's category and context,
    and re-raised so the invocation is reported as failed. Retrying is the
    scheduler's business.

    At most one run per cadence at a time is a contract the scheduler must
    keep. ``serve()`` keeps it with APScheduler's ``max_instances=1``;
    ``LEASE_ENABLED`` adds a state-store lease for external schedulers that
    cannot.

Architecture:
    ::

        trigger ("0 * * * *" | "*/1 * * * *" | "forward" | "backfill")
              │ Cadence.from_trigger(trigger, backfill_cron)
              ▼
        dispatch(trigger, container)
              │ LogContext(cadence, run_id)
              │ [CycleLease(state_kv, cadence)]   if lease_enabled
              ▼
        ForwardController.run() | BackfillController.run()
              ▼
        CycleReport

        serve(container): BlockingScheduler
            ├── CronTrigger(forward_cron)  → dispatch("forward")
            └── CronTrigger(backfill_cron) → dispatch("backfill")

Tags:
    scheduling, cron, dispatch, apscheduler, lease
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from logsync.core.errors import SyncError, categorize_error, is_retryable
from logsync.core.lease import CycleLease
from logsync.core.logging import LogContext, get_logger
from logsync.core.timestamps import generate_run_id
from logsync.sync.report import CycleReport, CycleStatus

if TYPE_CHECKING:
    from logsync.container import SyncContainer

logger = get_logger(__name__)


class Cadence(str, Enum):
    FORWARD = "forward"
    BACKFILL = "backfill"

    @classmethod
    def from_trigger(cls, trigger: str, *, backfill_cron: str = "0 * * * *") -> Cadence:
        """Map a scheduler trigger to a cadence.

        The backfill cron expression (or the literal ``backfill``) selects
        backfill; every other trigger selects forward.
        """
        value = trigger.strip()
        if value == backfill_cron.strip() or value.lower() == cls.BACKFILL.value:
            return cls.BACKFILL
        return cls.FORWARD


def run_cadence(cadence: Cadence, container: SyncContainer) -> CycleReport:
    """Run one cycle of *cadence*, under a lease when enabled."""
    controller = (
        container.forward_controller() if cadence is Cadence.FORWARD else container.backfill_controller()
    )
    if not container.settings.lease_enabled:
        return controller.run()

    lease = CycleLease(container.state_kv, cadence.value, ttl_seconds=container.settings.lease_ttl_seconds)
    if not lease.acquire():
        logger.warning("cycle_skipped_lease_held")
        return CycleReport(cadence=cadence.value, status=CycleStatus.SKIPPED)
    try:
        return controller.run()
    finally:
        lease.release()


def dispatch(trigger: str, container: SyncContainer) -> CycleReport:
    """Handle one scheduler tick.

    Raises:
        SyncError: The cycle failed; state was not advanced.
    """
    cadence = Cadence.from_trigger(trigger, backfill_cron=container.settings.backfill_cron)
    with LogContext(cadence=cadence.value, run_id=generate_run_id()):
        logger.info("cycle_started", trigger=trigger)
        try:
            report = run_cadence(cadence, container)
        except SyncError as e:
            e.context.cadence = cadence.value
            logger.error("cycle_failed", **e.to_dict())
            raise
        except Exception as e:
            logger.exception(
                "cycle_failed_unexpectedly",
                category=categorize_error(e).value,
                retryable=is_retryable(e),
            )
            raise
        logger.info("cycle_finished", status=report.status.value, elapsed_ms=report.elapsed_ms)
        return report


def build_scheduler(container: SyncContainer, *, scheduler: Any | None = None) -> Any:
    """Register both cadences on an APScheduler 3.x scheduler (not started)."""
    from apscheduler.schedulers.blocking import BlockingScheduler
    from apscheduler.triggers.cron import CronTrigger

    settings = container.settings
    sched = scheduler or BlockingScheduler(timezone="UTC")

    def _tick(cadence: Cadence) -> None:
        try:
            dispatch(cadence.value, container)
        except Exception:
            # Already logged by dispatch; the next tick retries.
            pass

    for cadence, expr in ((Cadence.FORWARD, settings.forward_cron), (Cadence.BACKFILL, settings.backfill_cron)):
        sched.add_job(
            _tick,
            CronTrigger.from_crontab(expr, timezone="UTC"),
            args=[cadence],
            id=f"logsync_{cadence.value}",
            name=f"logsync {cadence.value}",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
    return sched


def serve(container: SyncContainer) -> None:
    """Run both cadences in-process until interrupted."""
    sched = build_scheduler(container)
    logger.info(
        "scheduler_starting",
        forward_cron=container.settings.forward_cron,
        backfill_cron=container.settings.backfill_cron,
    )
    try:
        sched.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("scheduler_stopping")
    finally:
        if sched.running:
            sched.shutdown(wait=True)


__all__ = ["Cadence", "dispatch", "run_cadence", "build_scheduler", "serve"]
