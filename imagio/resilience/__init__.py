"""Resilience utilities for long-running provider jobs.

- Cancellation: cooperative, checked at every suspension point
- Polling: fixed-cadence status checks bounded by an attempt budget
"""

from imagio.resilience.cancellation import CancellationToken
from imagio.resilience.polling import PollBudget, long_budget, poll, short_budget

__all__ = [
    "CancellationToken",
    "PollBudget",
    "long_budget",
    "poll",
    "short_budget",
]
