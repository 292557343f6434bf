"""
Momentum value objects.

Calculator outcomes carry the explicit miss counter alongside the momentum
value so the next period can be scored without reading momentum history.
"""

from dataclasses import dataclass, asdict
from typing import Optional


@dataclass(frozen=True)
class DailyOutcome:
    momentum: int
    miss_streak: int


@dataclass(frozen=True)
class WeeklyOutcome:
    momentum: int
    completions: int
    target_reached: bool
    miss_streak: int


@dataclass(frozen=True)
class MomentumPoint:
    date: str  # YYYY-MM-DD
    momentum: Optional[int]  # None before a habit's first record

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SweepResult:
    processed: int = 0
    errors: int = 0
    skipped: int = 0
    period: Optional[str] = None  # YYYY-MM-DD or "start..end"

    def to_dict(self) -> dict:
        return {"processed": self.processed, "errors": self.errors}
