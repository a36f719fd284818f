import asyncio
import itertools
from datetime import date

import pytest

from habitcontrol.schemas.habit import DailyRecurrence, Habit
from habitcontrol.schemas.profile import Session
from habitcontrol.services.habit_repository import LocalCompletionRepository, LocalHabitRepository
from habitcontrol.services.habit_store import HabitStore
from habitcontrol.services.persistence import MemoryKeyValueStore

# 2024-01-01 is a Monday
MONDAY = date(2024, 1, 1)

SESSION = Session(owner_id="owner-1", email="reader@example.com")


@pytest.fixture
def make_habit():
    counter = itertools.count(1)

    def factory(name="Read", time="07:30", recurrence=None, habit_id=None, created_at="2024-01-01T00:00:00.000Z"):
        return Habit(
            id=habit_id or f"habit-{next(counter)}",
            name=name,
            time=time,
            recurrence=recurrence or DailyRecurrence(),
            created_at=created_at,
            updated_at=created_at
        )

    return factory


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def clock():
    """Strictly increasing ISO timestamps"""
    ticks = itertools.count(0)
    return lambda: f"2024-01-01T08:{next(ticks) % 60:02d}:00.000Z"


@pytest.fixture
def make_store(kv, clock):
    def factory(habit_repository=None, completion_repository=None, **options):
        ids = itertools.count(1)
        options.setdefault("retries", 0)
        options.setdefault("retry_delay_s", 0)
        return HabitStore(
            habit_repository or LocalHabitRepository(kv),
            completion_repository or LocalCompletionRepository(kv),
            id_factory=lambda: f"id-{next(ids)}",
            clock=clock,
            today=lambda: MONDAY,
            **options
        )

    return factory


@pytest.fixture
def store(make_store):
    """A store signed in as SESSION on an empty device"""
    habit_store = make_store()
    asyncio.run(habit_store.sign_in(SESSION))
    return habit_store
