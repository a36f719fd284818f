"""
Habit Progress Service - completion rates and per-habit statistics
"""

from datetime import date
from enum import Enum
from typing import Iterable
import logging

from habitcontrol.schemas.habit import Habit, HabitCompletion, HabitStats
from habitcontrol.services.habit_streaks import HabitStreakCalculator

logger = logging.getLogger(__name__)


class RateBand(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


HIGH_RATE_THRESHOLD = 70.0
MEDIUM_RATE_THRESHOLD = 40.0


class HabitProgressCalculator:
    """Calculates completion statistics from the completion log"""

    @staticmethod
    def completion_rate(habit_id: str, completions: Iterable[HabitCompletion]) -> float:
        """
        Percentage (0..100) of logged records for ``habit_id`` marked completed.

        A habit with no records has a rate of 0, not "no data". The value is
        not rounded; presentation layers round for display.
        """
        habit_completions = [c for c in completions if c.habit_id == habit_id]

        if not habit_completions:
            return 0.0

        completed_count = len([c for c in habit_completions if c.completed])
        return completed_count / len(habit_completions) * 100

    @staticmethod
    def rate_band(rate: float) -> str:
        if rate >= HIGH_RATE_THRESHOLD:
            return RateBand.HIGH.value
        if rate >= MEDIUM_RATE_THRESHOLD:
            return RateBand.MEDIUM.value
        return RateBand.LOW.value

    @staticmethod
    def get_progress_summary(rate: float) -> str:
        """Generate a human-readable progress summary"""
        return f"{rate:.0f}% complete"

    @staticmethod
    def habit_stats(habit: Habit, completions: Iterable[HabitCompletion], as_of: date) -> HabitStats:
        habit_completions = [c for c in completions if c.habit_id == habit.id]
        rate = HabitProgressCalculator.completion_rate(habit.id, habit_completions)
        current, best, last_completed = HabitStreakCalculator.calculate_streak(
            habit, habit_completions, as_of_date=as_of
        )

        logger.debug(f"Stats for habit {habit.id}: rate={rate:.1f}, streak={current}/{best}")

        return HabitStats(
            habit_id=habit.id,
            total=len(habit_completions),
            completed=len([c for c in habit_completions if c.completed]),
            completion_rate=rate,
            band=HabitProgressCalculator.rate_band(rate),
            current_streak=current,
            best_streak=best,
            last_completed=last_completed
        )
