from .habit import HabitRow, HabitCompletionRow
