"""
Chat Runner Module

Orchestrates streaming exchanges between the session store and a provider.
"""

from .runner import ChatRunner, RunAccumulator, RunOutcome, RunState

__all__ = ["ChatRunner", "RunAccumulator", "RunOutcome", "RunState"]
