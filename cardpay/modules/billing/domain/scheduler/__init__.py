"""
Scheduler - Package Entry Point

Exports the renewal scheduler that drives periodic billing sweeps.
"""

from .orchestrator import RenewalScheduler

__all__ = ["RenewalScheduler"]
