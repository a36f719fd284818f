"""
Habit Store - owns the habits and completions of the signed-in user.

Every mutation is persisted before it is applied in memory, so a failed
write leaves the in-memory collections matching what is stored.
"""

import asyncio
import re
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Union
import logging

from habitcontrol.core.errors import AuthenticationRequired, NotFoundError, ValidationError
from habitcontrol.schemas.habit import (
    DaySummary,
    Habit,
    HabitCompletion,
    HabitDraft,
    HabitStats,
    HabitWithStatus,
    MonthlyRecurrence,
    UnknownRecurrence,
    WeeklyRecurrence,
    new_id,
    now_iso,
)
from habitcontrol.schemas.profile import Session
from habitcontrol.services.habit_completions import CompletionLog
from habitcontrol.services.habit_progress import HabitProgressCalculator
from habitcontrol.services.habit_projection import HabitProjector
from habitcontrol.services.habit_repository import CompletionRepository, HabitRepository
from habitcontrol.services.persistence import call_with_retries

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

DateLike = Union[date, datetime, str]


class StoreState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    LOADING = "loading"
    READY = "ready"


def validate_draft(draft: HabitDraft) -> HabitDraft:
    """Check user input before it reaches the store; returns the draft with a trimmed name"""
    name = draft.name.strip()
    if not name:
        raise ValidationError("Please enter a name for the habit", field="name")

    if not TIME_PATTERN.match(draft.time):
        raise ValidationError("Time must be HH:MM in 24-hour format", field="time")

    recurrence = draft.recurrence
    if isinstance(recurrence, WeeklyRecurrence) and not recurrence.days:
        raise ValidationError("Please select at least one day of the week", field="repeatDays")
    if isinstance(recurrence, MonthlyRecurrence) and not recurrence.dates:
        raise ValidationError("Please select at least one day of the month", field="repeatDates")
    if isinstance(recurrence, UnknownRecurrence):
        raise ValidationError(f"Unsupported repeat type '{recurrence.repeat_type}'", field="repeatType")

    if draft.repeat_value < 1:
        raise ValidationError("Repeat value must be at least 1", field="repeatValue")

    return draft.model_copy(update={"name": name})


def as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD", field="date") from e


class HabitStore:
    """Session-scoped owner of the Habits and Completions collections"""

    def __init__(
        self,
        habit_repository: HabitRepository,
        completion_repository: CompletionRepository,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], str] = now_iso,
        today: Callable[[], date] = date.today,
        retries: Optional[int] = None,
        timeout_s: Optional[float] = None,
        retry_delay_s: Optional[float] = None
    ):
        self.habit_repository = habit_repository
        self.completion_repository = completion_repository
        self._new_id = id_factory
        self._clock = clock
        self._today = today
        self._retry_options = {"retries": retries, "timeout_s": timeout_s, "delay_s": retry_delay_s}

        self._habits: List[Habit] = []
        self._log = CompletionLog(id_factory=id_factory, clock=clock)
        self._session: Optional[Session] = None
        self._state = StoreState.UNAUTHENTICATED
        self._selected_date: Optional[date] = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def habits(self) -> List[Habit]:
        return list(self._habits)

    @property
    def completions(self) -> List[HabitCompletion]:
        return self._log.all()

    @property
    def selected_date(self) -> date:
        return self._selected_date or self._today()

    @selected_date.setter
    def selected_date(self, value: DateLike) -> None:
        self._selected_date = as_date(value)

    def _owner_id(self) -> str:
        if self._session is None or self._state is not StoreState.READY:
            raise AuthenticationRequired()
        return self._session.owner_id

    def _index_of(self, habit_id: str) -> int:
        for index, habit in enumerate(self._habits):
            if habit.id == habit_id:
                return index
        raise NotFoundError("Habit", habit_id)

    async def _persist(self, operation, description: str):
        return await call_with_retries(operation, description, **self._retry_options)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def sign_in(self, session: Session) -> None:
        """Load the session owner's habits and completions; UNAUTHENTICATED -> LOADING -> READY"""
        async with self._lock:
            owner_id = session.owner_id
            self._clear()
            self._session = session
            self._state = StoreState.LOADING
            logger.info(f"Loading habits for {owner_id}")

            try:
                habits = await self._persist(
                    lambda: self.habit_repository.load_habits(owner_id), "Loading habits"
                )
                completions = await self._persist(
                    lambda: self.completion_repository.load_completions(owner_id), "Loading completions"
                )
            except Exception:
                self._clear()
                raise

            habit_ids = {habit.id for habit in habits}
            orphans = [c for c in completions if c.habit_id not in habit_ids]
            if orphans:
                logger.warning(f"Ignoring {len(orphans)} completion(s) of deleted habits")

            self._habits = list(habits)
            self._log = CompletionLog(
                (c for c in completions if c.habit_id in habit_ids),
                id_factory=self._new_id,
                clock=self._clock
            )
            self._state = StoreState.READY
            logger.info(f"Loaded {len(self._habits)} habits and {len(self._log)} completions")

    async def sign_out(self) -> None:
        async with self._lock:
            self._clear()
            logger.info("Habit store cleared")

    def _clear(self) -> None:
        self._habits = []
        self._log = CompletionLog(id_factory=self._new_id, clock=self._clock)
        self._session = None
        self._state = StoreState.UNAUTHENTICATED
        self._selected_date = None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_habit(self, draft: HabitDraft) -> Habit:
        self._owner_id()
        draft = validate_draft(draft)

        async with self._lock:
            owner_id = self._owner_id()
            now = self._clock()
            habit = Habit(
                id=self._new_id(),
                name=draft.name,
                time=draft.time,
                recurrence=draft.recurrence,
                repeat_value=draft.repeat_value,
                created_at=now,
                updated_at=now
            )

            await self._persist(
                lambda: self.habit_repository.save_habit(owner_id, habit), f"Saving habit {habit.id}"
            )
            self._habits.append(habit)

        logger.info(f"Created habit '{habit.name}' ({habit.id})")
        return habit

    async def update_habit(self, habit: Habit) -> Habit:
        """Replace the stored habit with the same id; created_at is kept and updated_at refreshed"""
        self._owner_id()
        draft = validate_draft(HabitDraft(
            name=habit.name,
            time=habit.time,
            recurrence=habit.recurrence,
            repeat_value=habit.repeat_value
        ))

        async with self._lock:
            owner_id = self._owner_id()
            index = self._index_of(habit.id)
            existing = self._habits[index]
            updated = existing.model_copy(update={
                "name": draft.name,
                "time": draft.time,
                "recurrence": draft.recurrence,
                "repeat_value": draft.repeat_value,
                "updated_at": self._clock()
            })

            await self._persist(
                lambda: self.habit_repository.update_habit(owner_id, updated), f"Updating habit {habit.id}"
            )
            self._habits[index] = updated

        logger.info(f"Updated habit '{updated.name}' ({updated.id})")
        return updated

    async def delete_habit(self, habit_id: str) -> None:
        """Delete a habit and every completion recorded for it"""
        self._owner_id()

        async with self._lock:
            owner_id = self._owner_id()
            self._index_of(habit_id)

            # Completions go first so a failure in between never leaves orphans in storage
            await self._persist(
                lambda: self.completion_repository.delete_completions(owner_id, habit_id),
                f"Deleting completions of habit {habit_id}"
            )
            removed = self._log.remove_by_habit(habit_id)

            await self._persist(
                lambda: self.habit_repository.delete_habit(owner_id, habit_id), f"Deleting habit {habit_id}"
            )
            del self._habits[self._index_of(habit_id)]

        logger.info(f"Deleted habit {habit_id} and {len(removed)} completion(s)")

    async def toggle_completion(self, habit_id: str, day: DateLike, completed: bool) -> HabitCompletion:
        """Mark a habit done / not done on a date; repeated calls update the same record"""
        self._owner_id()
        target_date = as_date(day)

        async with self._lock:
            owner_id = self._owner_id()
            self._index_of(habit_id)

            completion = self._log.build_upsert(habit_id, target_date, completed)
            await self._persist(
                lambda: self.completion_repository.save_completion(owner_id, completion),
                f"Saving completion of habit {habit_id} on {target_date}"
            )
            self._log.put(completion)

        logger.info(f"Habit {habit_id} on {target_date} marked {'done' if completed else 'not done'}")
        return completion

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def today(self) -> date:
        return self._today()

    def get_habit(self, habit_id: str) -> Habit:
        return self._habits[self._index_of(habit_id)]

    def get_habits_for_date(self, day: DateLike) -> List[HabitWithStatus]:
        return HabitProjector.project(self._habits, self._log, as_date(day))

    def get_today_habits(self) -> List[HabitWithStatus]:
        return self.get_habits_for_date(self._today())

    def get_history(self, start: DateLike, end: DateLike) -> Dict[date, List[HabitWithStatus]]:
        return HabitProjector.project_range(self._habits, self._log, as_date(start), as_date(end))

    def get_day_summary(self, day: DateLike) -> DaySummary:
        return HabitProjector.summarize(self.get_habits_for_date(day))

    def get_completion_rate(self, habit_id: str) -> float:
        return HabitProgressCalculator.completion_rate(habit_id, self._log.all())

    def get_habit_stats(self, habit_id: str, as_of: Optional[DateLike] = None) -> HabitStats:
        habit = self.get_habit(habit_id)
        as_of_date = as_date(as_of) if as_of is not None else self._today()
        return HabitProgressCalculator.habit_stats(habit, self._log.for_habit(habit_id), as_of_date)
