from .habit import (
    RepeatType,
    DailyRecurrence,
    WeeklyRecurrence,
    MonthlyRecurrence,
    UnknownRecurrence,
    HabitDraft,
    Habit,
    HabitCompletion,
    HabitWithStatus,
    DaySummary,
    HabitStats,
)
from .profile import UserProfile, Session
