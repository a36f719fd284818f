"""
Habit records - recurrence variants, habits, completions and derived views
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, Iterable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator


class RepeatType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


WEEKDAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    """UTC timestamp in the same shape a JS client produces (``...T12:00:00.000Z``)"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class DailyRecurrence(BaseModel):
    model_config = ConfigDict(frozen=True)

    repeat_type: Literal["daily"] = "daily"


class WeeklyRecurrence(BaseModel):
    """Due on the listed weekdays, 0 = Sunday ... 6 = Saturday"""

    model_config = ConfigDict(frozen=True)

    repeat_type: Literal["weekly"] = "weekly"
    days: FrozenSet[int] = frozenset()

    @field_validator("days")
    @classmethod
    def _check_days(cls, v: FrozenSet[int]) -> FrozenSet[int]:
        bad = sorted(d for d in v if not 0 <= d <= 6)
        if bad:
            raise ValueError(f"weekday indices must be within 0..6, got {bad}")
        return v


class MonthlyRecurrence(BaseModel):
    """Due on the listed days of the month (1..31)"""

    model_config = ConfigDict(frozen=True)

    repeat_type: Literal["monthly"] = "monthly"
    dates: FrozenSet[int] = frozenset()

    @field_validator("dates")
    @classmethod
    def _check_dates(cls, v: FrozenSet[int]) -> FrozenSet[int]:
        bad = sorted(d for d in v if not 1 <= d <= 31)
        if bad:
            raise ValueError(f"days of month must be within 1..31, got {bad}")
        return v


class UnknownRecurrence(BaseModel):
    """A repeat type this version does not understand; kept so it round-trips, never due"""

    model_config = ConfigDict(frozen=True)

    repeat_type: str


def _recurrence_tag(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("repeat_type")
    else:
        kind = getattr(value, "repeat_type", None)
    if kind in (RepeatType.DAILY.value, RepeatType.WEEKLY.value, RepeatType.MONTHLY.value):
        return kind
    return "unknown"


Recurrence = Annotated[
    Union[
        Annotated[DailyRecurrence, Tag("daily")],
        Annotated[WeeklyRecurrence, Tag("weekly")],
        Annotated[MonthlyRecurrence, Tag("monthly")],
        Annotated[UnknownRecurrence, Tag("unknown")],
    ],
    Discriminator(_recurrence_tag),
]


def recurrence_from_fields(
    repeat_type: str,
    repeat_days: Optional[Iterable[int]] = None,
    repeat_dates: Optional[Iterable[int]] = None,
) -> Union[DailyRecurrence, WeeklyRecurrence, MonthlyRecurrence, UnknownRecurrence]:
    """Build the recurrence variant from the flat ``repeatType``/``repeatDays``/``repeatDates`` fields.

    Only the set matching ``repeat_type`` is read; the other one is ignored.
    """
    kind = repeat_type.value if isinstance(repeat_type, RepeatType) else repeat_type
    if kind == RepeatType.DAILY.value:
        return DailyRecurrence()
    if kind == RepeatType.WEEKLY.value:
        return WeeklyRecurrence(days=frozenset(repeat_days or ()))
    if kind == RepeatType.MONTHLY.value:
        return MonthlyRecurrence(dates=frozenset(repeat_dates or ()))
    return UnknownRecurrence(repeat_type=str(kind))


def recurrence_fields(recurrence: Recurrence) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"repeatType": recurrence.repeat_type}
    if isinstance(recurrence, WeeklyRecurrence):
        fields["repeatDays"] = sorted(recurrence.days)
    elif isinstance(recurrence, MonthlyRecurrence):
        fields["repeatDates"] = sorted(recurrence.dates)
    return fields


class HabitDraft(BaseModel):
    """Everything the user supplies for a habit; identity and timestamps are assigned by the store"""

    model_config = ConfigDict(frozen=True)

    name: str
    time: str
    recurrence: Recurrence = Field(default_factory=DailyRecurrence)
    repeat_value: int = 1


class Habit(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    time: str  # HH:MM, zero padded
    recurrence: Recurrence = Field(default_factory=DailyRecurrence)
    repeat_value: int = 1
    created_at: str
    updated_at: str

    @property
    def repeat_type(self) -> str:
        return self.recurrence.repeat_type

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "time": self.time,
            "repeatValue": self.repeat_value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        record.update(recurrence_fields(self.recurrence))
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Habit":
        return cls(
            id=record["id"],
            name=record["name"],
            time=record["time"],
            recurrence=recurrence_from_fields(
                record.get("repeatType", RepeatType.DAILY.value),
                record.get("repeatDays"),
                record.get("repeatDates"),
            ),
            repeat_value=record.get("repeatValue", 1),
            created_at=record["createdAt"],
            updated_at=record["updatedAt"],
        )


class HabitCompletion(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    habit_id: str
    date: date
    completed: bool
    completed_at: Optional[str] = None

    @property
    def key(self) -> tuple:
        return (self.habit_id, self.date)

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "habitId": self.habit_id,
            "date": self.date.isoformat(),
            "completed": self.completed,
            "completedAt": self.completed_at,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "HabitCompletion":
        return cls(
            id=record["id"],
            habit_id=record["habitId"],
            date=record["date"],
            completed=bool(record["completed"]),
            completed_at=record.get("completedAt"),
        )


class HabitWithStatus(BaseModel):
    """A habit merged with its status on one date; rebuilt on every query, never stored"""

    habit: Habit
    is_completed: bool = False
    completion_id: Optional[str] = None
    is_scheduled_for_today: bool = False

    @property
    def id(self) -> str:
        return self.habit.id

    @property
    def name(self) -> str:
        return self.habit.name

    @property
    def time(self) -> str:
        return self.habit.time

    def to_record(self) -> Dict[str, Any]:
        record = self.habit.to_record()
        record.update({
            "isCompleted": self.is_completed,
            "completionId": self.completion_id,
            "isScheduledForToday": self.is_scheduled_for_today,
        })
        return record


class DaySummary(BaseModel):
    total: int
    completed: int
    pending: int
    completion_rate: float

    def to_record(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "pending": self.pending,
            "completionRate": self.completion_rate,
        }


class HabitStats(BaseModel):
    habit_id: str
    total: int
    completed: int
    completion_rate: float
    band: str
    current_streak: int
    best_streak: int
    last_completed: Optional[date] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "habitId": self.habit_id,
            "total": self.total,
            "completed": self.completed,
            "completionRate": self.completion_rate,
            "band": self.band,
            "currentStreak": self.current_streak,
            "bestStreak": self.best_streak,
            "lastCompleted": self.last_completed.isoformat() if self.last_completed else None,
        }
