"""BillVault Process — background auto-save."""

from billvault.process.scheduler import (  # noqa: F401
    AutoSaveScheduler,
    LoopTimer,
    SchedulerState,
    Timer,
)

__all__ = ["AutoSaveScheduler", "SchedulerState", "Timer", "LoopTimer"]
