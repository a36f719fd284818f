"""
Habit Completion Log - sparse (habit, date) -> completion record mapping
"""

from datetime import date
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple
import logging

from habitcontrol.schemas.habit import HabitCompletion, new_id, now_iso

logger = logging.getLogger(__name__)

CompletionKey = Tuple[str, date]


class CompletionLog:
    """In-memory completion records indexed by (habit_id, date).

    At most one record exists per key. Iteration follows insertion order so
    derived views stay deterministic. Nothing here persists.
    """

    def __init__(
        self,
        completions: Iterable[HabitCompletion] = (),
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], str] = now_iso
    ):
        self._records: Dict[CompletionKey, HabitCompletion] = {}
        self._new_id = id_factory
        self._clock = clock
        for completion in completions:
            if completion.key in self._records:
                logger.warning(
                    f"Duplicate completion for habit {completion.habit_id} on {completion.date}, keeping latest"
                )
            self._records[completion.key] = completion

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[HabitCompletion]:
        return iter(list(self._records.values()))

    def all(self) -> List[HabitCompletion]:
        return list(self._records.values())

    def copy(self) -> "CompletionLog":
        return CompletionLog(self._records.values(), id_factory=self._new_id, clock=self._clock)

    def find(self, habit_id: str, day: date) -> Optional[HabitCompletion]:
        return self._records.get((habit_id, day))

    def for_habit(self, habit_id: str) -> List[HabitCompletion]:
        return [c for c in self._records.values() if c.habit_id == habit_id]

    def build_upsert(self, habit_id: str, day: date, completed: bool) -> HabitCompletion:
        """Return the record an upsert would store, without storing it"""
        existing = self.find(habit_id, day)
        if existing:
            return existing.model_copy(update={"completed": completed, "completed_at": self._clock()})
        return HabitCompletion(
            id=self._new_id(),
            habit_id=habit_id,
            date=day,
            completed=completed,
            completed_at=self._clock()
        )

    def put(self, completion: HabitCompletion) -> HabitCompletion:
        self._records[completion.key] = completion
        return completion

    def upsert(self, habit_id: str, day: date, completed: bool) -> HabitCompletion:
        """Update the record for (habit_id, day) keeping its id, or create a new one"""
        return self.put(self.build_upsert(habit_id, day, completed))

    def remove_by_habit(self, habit_id: str) -> List[HabitCompletion]:
        """Cascade removal for a deleted habit; returns the removed records"""
        removed = [c for c in self._records.values() if c.habit_id == habit_id]
        for completion in removed:
            del self._records[completion.key]
        return removed
