from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as SchemaValidationError
from pydantic.alias_generators import to_camel

from habitcontrol.core.deps import get_current_session, get_store
from habitcontrol.core.errors import ValidationError
from habitcontrol.schemas.habit import (
    Habit,
    HabitDraft,
    HabitWithStatus,
    recurrence_fields,
    recurrence_from_fields,
)
from habitcontrol.schemas.profile import Session
from habitcontrol.services.habit_progress import HabitProgressCalculator
from habitcontrol.services.habit_projection import HabitProjector
from habitcontrol.services.habit_scheduler import HabitScheduler
from habitcontrol.services.habit_store import HabitStore, as_date

router = APIRouter()


def _schedule_error(e: SchemaValidationError) -> ValidationError:
    return ValidationError(f"Invalid schedule: {e.errors()[0]['msg']}", field="recurrence")


class HabitCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    time: str
    repeat_type: str = "daily"
    repeat_value: int = 1
    repeat_days: Optional[List[int]] = None
    repeat_dates: Optional[List[int]] = None

    def to_draft(self) -> HabitDraft:
        try:
            recurrence = recurrence_from_fields(self.repeat_type, self.repeat_days, self.repeat_dates)
        except SchemaValidationError as e:
            raise _schedule_error(e) from e
        return HabitDraft(
            name=self.name,
            time=self.time,
            recurrence=recurrence,
            repeat_value=self.repeat_value
        )


class HabitUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: Optional[str] = None
    time: Optional[str] = None
    repeat_type: Optional[str] = None
    repeat_value: Optional[int] = None
    repeat_days: Optional[List[int]] = None
    repeat_dates: Optional[List[int]] = None

    def apply_to(self, habit: Habit) -> Habit:
        """Merge the supplied fields into ``habit``; omitted schedule fields keep their current value"""
        current = recurrence_fields(habit.recurrence)
        try:
            recurrence = recurrence_from_fields(
                self.repeat_type or current["repeatType"],
                self.repeat_days if self.repeat_days is not None else current.get("repeatDays"),
                self.repeat_dates if self.repeat_dates is not None else current.get("repeatDates")
            )
        except SchemaValidationError as e:
            raise _schedule_error(e) from e

        return habit.model_copy(update={
            "name": self.name if self.name is not None else habit.name,
            "time": self.time if self.time is not None else habit.time,
            "recurrence": recurrence,
            "repeat_value": self.repeat_value if self.repeat_value is not None else habit.repeat_value
        })


class CompletionToggle(BaseModel):
    date: date
    completed: bool = True


def _habit_view(habit: Habit) -> Dict[str, Any]:
    record = habit.to_record()
    record["schedule"] = HabitScheduler.describe(habit.recurrence)
    return record


def _day_view(day: date, statuses: List[HabitWithStatus]) -> Dict[str, Any]:
    return {
        "date": day.isoformat(),
        "habits": [s.to_record() for s in statuses],
        "summary": HabitProjector.summarize(statuses).to_record(),
    }


@router.get("")
async def list_habits(
    store: HabitStore = Depends(get_store),
    session: Session = Depends(get_current_session)
):
    """List all habits of the signed-in user"""
    return [_habit_view(habit) for habit in store.habits]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_habit(
    habit_data: HabitCreate,
    store: HabitStore = Depends(get_store),
    session: Session = Depends(get_current_session)
):
    """Create a new habit"""
    habit = await store.create_habit(habit_data.to_draft())
    return _habit_view(habit)


@router.get("/today")
async def get_today_habits(
    store: HabitStore = Depends(get_store),
    session: Session = Depends(get_current_session)
):
    """Get today's habits with their completion status"""
    return _day_view(store.today(), store.get_today_habits())


@router.get("/date/{day}")
async def get_habits_for_date(
    day: str,
    store: HabitStore = Depends(get_store),
    session: Session = Depends(get_current_session)
):
    """Get the habits due on a date (YYYY-MM-DD) with their completion status"""
    target_date = as_date(day)
    return _day_view(target_date, store.get_habits_for_date(target_date))


@router.get("/history")
async def get_history(
    start: str,
    end: str,
    store: HabitStore = Depends(get_store),
    session: Session = Depends(get_current_session)
):
    """Per-date projection for every date in [start, end]"""
    start_date, end_date = as_date(start), as_date(end)
    if end_date < start_date:
        raise ValidationError("end must not be before start", field="end")
    if (end_date - start_date).days > 366:
        raise ValidationError("History is limited to one year per request", field="end")

    history = store.get_history(start_date, end_date)
    return [_day_view(day, statuses) for day, statuses in history.items()]


@router.get("/{habit_id}")
async def get_habit(
    habit_id: str,
    store: HabitStore = Depends(get_store),
    session: Session = Depends(get_current_session)
):
    return _habit_view(store.get_habit(habit_id))


@router.patch("/{habit_id}")
async def update_habit(
    habit_id: str,
    habit_data: HabitUpdate,
    store: HabitStore = Depends(get_store),
    session: Session = Depends(get_current_session)
):
    """Update a habit"""
    existing = store.get_habit(habit_id)
    habit = await store.update_habit(habit_data.apply_to(existing))
    return _habit_view(habit)


@router.delete("/{habit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_habit(
    habit_id: str,
    store: HabitStore = Depends(get_store),
    session: Session = Depends(get_current_session)
):
    """Delete a habit and its completion history"""
    await store.delete_habit(habit_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{habit_id}/completions")
async def toggle_completion(
    habit_id: str,
    toggle: CompletionToggle,
    store: HabitStore = Depends(get_store),
    session: Session = Depends(get_current_session)
):
    """Mark a habit done or not done on a date"""
    completion = await store.toggle_completion(habit_id, toggle.date, toggle.completed)
    return completion.to_record()


@router.get("/{habit_id}/stats")
async def get_habit_stats(
    habit_id: str,
    as_of: Optional[str] = None,
    store: HabitStore = Depends(get_store),
    session: Session = Depends(get_current_session)
):
    """Completion rate and streaks for a habit"""
    stats = store.get_habit_stats(habit_id, as_of)
    record = stats.to_record()
    record["summary"] = HabitProgressCalculator.get_progress_summary(stats.completion_rate)
    return record
