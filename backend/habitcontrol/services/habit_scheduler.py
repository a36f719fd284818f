"""
Habit Scheduling Service - recurrence evaluation and due-date expansion
"""

from datetime import datetime, date
from typing import List, Optional
from dateutil.rrule import rrule, DAILY, WEEKLY, MONTHLY
import logging

from habitcontrol.schemas.habit import (
    Habit,
    DailyRecurrence,
    WeeklyRecurrence,
    MonthlyRecurrence,
    Recurrence,
    WEEKDAY_NAMES,
)

logger = logging.getLogger(__name__)


class HabitScheduler:
    """Decides which calendar dates a habit applies to"""

    @staticmethod
    def weekday_index(day: date) -> int:
        """Weekday with Sunday = 0 ... Saturday = 6"""
        # date.weekday() is Monday = 0
        return (day.weekday() + 1) % 7

    @staticmethod
    def is_due(habit: Habit, day: date) -> bool:
        """Check if a habit is scheduled on a specific date.

        Unknown repeat types and empty day selections are never due.
        """
        recurrence = habit.recurrence

        if isinstance(recurrence, DailyRecurrence):
            return True
        if isinstance(recurrence, WeeklyRecurrence):
            return HabitScheduler.weekday_index(day) in recurrence.days
        if isinstance(recurrence, MonthlyRecurrence):
            return day.day in recurrence.dates
        return False

    @staticmethod
    def to_rrule(recurrence: Recurrence, start_date: date) -> Optional[rrule]:
        """Build a dateutil rrule for the recurrence starting at ``start_date``"""
        dtstart = datetime.combine(start_date, datetime.min.time())

        if isinstance(recurrence, DailyRecurrence):
            return rrule(DAILY, dtstart=dtstart)
        if isinstance(recurrence, WeeklyRecurrence):
            if not recurrence.days:
                return None
            # dateutil weekdays are Monday = 0
            byweekday = sorted((d - 1) % 7 for d in recurrence.days)
            return rrule(WEEKLY, byweekday=byweekday, dtstart=dtstart)
        if isinstance(recurrence, MonthlyRecurrence):
            if not recurrence.dates:
                return None
            return rrule(MONTHLY, bymonthday=sorted(recurrence.dates), dtstart=dtstart)

        logger.warning(f"No schedule for repeat type '{recurrence.repeat_type}'")
        return None

    @staticmethod
    def due_dates(habit: Habit, start_date: date, end_date: date) -> List[date]:
        """Generate list of dates in [start_date, end_date] on which the habit is due"""
        if start_date > end_date:
            return []

        rule = HabitScheduler.to_rrule(habit.recurrence, start_date)
        if not rule:
            return []

        occurrences = rule.between(
            datetime.combine(start_date, datetime.min.time()),
            datetime.combine(end_date, datetime.max.time()),
            inc=True
        )
        return [occurrence.date() for occurrence in occurrences]

    @staticmethod
    def describe(recurrence: Recurrence) -> str:
        """Human readable summary of a recurrence"""
        if isinstance(recurrence, DailyRecurrence):
            return "Daily"
        if isinstance(recurrence, WeeklyRecurrence):
            if not recurrence.days:
                return "Weekly (no days selected)"
            names = ", ".join(WEEKDAY_NAMES[d] for d in sorted(recurrence.days))
            return f"Weekly on {names}"
        if isinstance(recurrence, MonthlyRecurrence):
            if not recurrence.dates:
                return "Monthly (no dates selected)"
            return "Monthly on " + ", ".join(str(d) for d in sorted(recurrence.dates))
        return f"Unsupported schedule ({recurrence.repeat_type})"
