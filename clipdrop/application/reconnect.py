from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class ReconnectPolicy:
    """
    Exponential delay with a hard attempt ceiling.

    Delays run base, base*m, base*m^2, ... capped at `max_delay`;
    `next_delay()` returns None once `max_attempts` have been handed out.
    """

    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    max_attempts: int = 5
    _attempts: int = field(default=0, init=False)

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def exhausted(self) -> bool:
        return self._attempts >= self.max_attempts

    def next_delay(self) -> float | None:
        if self.exhausted:
            return None
        delay = min(self.base_delay * (self.multiplier ** self._attempts), self.max_delay)
        self._attempts += 1
        return delay

    def reset(self) -> None:
        self._attempts = 0
