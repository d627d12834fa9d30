"""Sync controllers and the scheduler entry point."""

from logsync.sync.backfill import BackfillController, run_backfill_cycle
from logsync.sync.dispatch import Cadence, dispatch, run_cadence
from logsync.sync.forward import ForwardController, run_forward_cycle
from logsync.sync.report import CycleReport, CycleStatus

__all__ = [
    "BackfillController",
    "Cadence",
    "CycleReport",
    "CycleStatus",
    "ForwardController",
    "dispatch",
    "run_backfill_cycle",
    "run_cadence",
    "run_forward_cycle",
]
