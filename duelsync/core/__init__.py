"""Session core.

This package implements a single-session protocol core with:
- full-replace snapshot reconciliation
- one tracked action request at a time (newest wins)
- a countdown that answers expired requests exactly once

Transport is injected via ports.
"""

from duelsync.core.api import Phase, Session, SessionEvent, SubmitResult
from duelsync.core.driver import GameSubscription, SessionDriver

__all__ = [
    "GameSubscription",
    "Phase",
    "Session",
    "SessionDriver",
    "SessionEvent",
    "SubmitResult",
]
