"""
reconnect.py: Exponential backoff policy for re-dialing a lost session.
"""

from dataclasses import dataclass, field
from typing import Optional

from .constants import RECONNECT_INITIAL_DELAY, RECONNECT_MAX_DELAY, RECONNECT_MULTIPLIER


@dataclass
class ReconnectPolicy:
    """
    Delays grow ``initial_delay, initial_delay * multiplier, ...`` up to
    ``max_delay``. With ``max_attempts`` set, the policy gives up after that
    many consecutive failed attempts.
    """
    initial_delay: float = RECONNECT_INITIAL_DELAY
    max_delay: float = RECONNECT_MAX_DELAY
    multiplier: float = RECONNECT_MULTIPLIER
    max_attempts: Optional[int] = None

    attempts: int = field(default=0, init=False)

    def __post_init__(self):
        if self.initial_delay < 0 or self.max_delay < self.initial_delay:
            raise ValueError("Need 0 <= initial_delay <= max_delay")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")

    @property
    def exhausted(self) -> bool:
        return self.max_attempts is not None and self.attempts >= self.max_attempts

    def next_delay(self) -> float:
        """Registers an attempt and returns how long to wait before making it."""
        delay = min(self.initial_delay * (self.multiplier ** self.attempts), self.max_delay)
        self.attempts += 1
        return delay

    def reset(self):
        """Called once a session is healthy again."""
        self.attempts = 0
