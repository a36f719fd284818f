"""
Habit Streak Service - streaks counted over the dates a habit is actually due
"""

from datetime import date
from typing import Iterable, List, Optional, Tuple
import logging

from habitcontrol.schemas.habit import Habit, HabitCompletion
from habitcontrol.services.habit_scheduler import HabitScheduler

logger = logging.getLogger(__name__)


class HabitStreakCalculator:
    """Calculates current and best streaks for a habit.

    Days on which the habit is not due neither extend nor break a streak, so a
    Mon/Wed/Fri habit completed on all three days has a streak of 3.
    """

    @staticmethod
    def calculate_streak(
        habit: Habit,
        completions: Iterable[HabitCompletion],
        as_of_date: Optional[date] = None
    ) -> Tuple[int, int, Optional[date]]:
        """
        Calculate current and best streaks for a habit

        Args:
            habit: The habit whose schedule defines which days count
            completions: Completion records (records of other habits are ignored)
            as_of_date: Calculate streak as of this date (defaults to today)

        Returns:
            (current_streak, best_streak, last_completed_date)
        """
        if as_of_date is None:
            as_of_date = date.today()

        records = [c for c in completions if c.habit_id == habit.id and c.date <= as_of_date]
        completed_dates = {c.date for c in records if c.completed}

        if not completed_dates:
            return 0, 0, None

        start_date = min(HabitStreakCalculator._created_on(habit), min(c.date for c in records))
        due_dates = HabitScheduler.due_dates(habit, start_date, as_of_date)

        current_streak = HabitStreakCalculator._calculate_current_streak(
            due_dates, completed_dates, as_of_date
        )
        best_streak = HabitStreakCalculator._calculate_best_streak(due_dates, completed_dates)

        return current_streak, max(best_streak, current_streak), max(completed_dates)

    @staticmethod
    def _created_on(habit: Habit) -> date:
        return date.fromisoformat(habit.created_at[:10])

    @staticmethod
    def _calculate_current_streak(
        due_dates: List[date],
        completed_dates: set,
        as_of_date: date
    ) -> int:
        """Count completed due dates walking backwards from as_of_date"""
        pending = list(reversed(due_dates))

        # Today is still open: not having done it yet does not break the streak
        if pending and pending[0] == as_of_date and as_of_date not in completed_dates:
            pending = pending[1:]

        streak = 0
        for due_date in pending:
            if due_date not in completed_dates:
                break
            streak += 1
        return streak

    @staticmethod
    def _calculate_best_streak(due_dates: List[date], completed_dates: set) -> int:
        """Calculate the best (longest) streak ever achieved"""
        best_streak = 0
        current_streak = 0

        for due_date in due_dates:
            if due_date in completed_dates:
                current_streak += 1
                best_streak = max(best_streak, current_streak)
            else:
                current_streak = 0

        return best_streak
