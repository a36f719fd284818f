"""
Habit Projection Service - builds the per-date view of habits with completion status
"""

from datetime import date, timedelta
from typing import Dict, Iterable, List

from habitcontrol.schemas.habit import Habit, HabitWithStatus, DaySummary
from habitcontrol.services.habit_completions import CompletionLog
from habitcontrol.services.habit_scheduler import HabitScheduler


class HabitProjector:
    """Joins habits, their schedules and the completion log for a given date"""

    @staticmethod
    def project(habits: Iterable[Habit], log: CompletionLog, target_date: date) -> List[HabitWithStatus]:
        """Habits due on ``target_date`` with their status, ordered by time of day.

        ``time`` is zero-padded HH:MM so string order is clock order; the sort
        is stable so equal times keep collection order.
        """
        statuses = []
        for habit in habits:
            if not HabitScheduler.is_due(habit, target_date):
                continue

            completion = log.find(habit.id, target_date)
            statuses.append(HabitWithStatus(
                habit=habit,
                is_completed=completion.completed if completion else False,
                completion_id=completion.id if completion else None,
                is_scheduled_for_today=True
            ))

        statuses.sort(key=lambda status: status.time)
        return statuses

    @staticmethod
    def project_range(
        habits: Iterable[Habit],
        log: CompletionLog,
        start_date: date,
        end_date: date
    ) -> Dict[date, List[HabitWithStatus]]:
        """Project every date in [start_date, end_date], e.g. for a history strip"""
        habits = list(habits)
        days = {}
        current = start_date
        while current <= end_date:
            days[current] = HabitProjector.project(habits, log, current)
            current += timedelta(days=1)
        return days

    @staticmethod
    def summarize(statuses: List[HabitWithStatus]) -> DaySummary:
        total = len(statuses)
        completed = len([s for s in statuses if s.is_completed])
        completion_rate = (completed / total * 100) if total > 0 else 0.0

        return DaySummary(
            total=total,
            completed=completed,
            pending=total - completed,
            completion_rate=completion_rate
        )
