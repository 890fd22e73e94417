"""
Scheduler Package.

Cancellable, single-flight periodic sweepers for the ban and
proposal expiration jobs.
"""

from scheduler.sweeper import PeriodicSweeper, SweepReport, SweepJob
from scheduler.jobs import build_sweepers, BAN_SWEEPER, PROPOSAL_SWEEPER


__all__ = [
    "PeriodicSweeper",
    "SweepReport",
    "SweepJob",
    "build_sweepers",
    "BAN_SWEEPER",
    "PROPOSAL_SWEEPER",
]
