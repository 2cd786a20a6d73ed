"""Session lifecycle: scheduler, orchestrator and registry."""

from shieldgrid.session.scheduler import ScheduledTask, Scheduler, TaskGroup
from shieldgrid.session.orchestrator import GridSession
from shieldgrid.session.registry import SessionRegistry

__all__ = ['Scheduler', 'ScheduledTask', 'TaskGroup', 'GridSession', 'SessionRegistry']
