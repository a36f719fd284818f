"""
Tests for the session-scoped habit store
"""

import asyncio
from datetime import date

import pytest

from conftest import MONDAY, SESSION
from habitcontrol.core.errors import AuthenticationRequired, NotFoundError, PersistenceError, ValidationError
from habitcontrol.schemas.habit import (
    DailyRecurrence,
    HabitDraft,
    MonthlyRecurrence,
    UnknownRecurrence,
    WeeklyRecurrence,
)
from habitcontrol.schemas.profile import Session
from habitcontrol.services.habit_repository import LocalCompletionRepository, LocalHabitRepository
from habitcontrol.services.habit_store import HabitStore, StoreState
from habitcontrol.services.persistence import MemoryKeyValueStore

TUESDAY = date(2024, 1, 2)


def run(coro):
    return asyncio.run(coro)


class FailingHabitRepository(LocalHabitRepository):
    """Every write fails; reads go through"""

    def __init__(self, kv, failures=None):
        super().__init__(kv)
        self.failures = failures
        self.calls = 0

    async def _fail(self):
        self.calls += 1
        if self.failures is None or self.calls <= self.failures:
            raise PersistenceError("disk full")

    async def save_habit(self, owner_id, habit):
        await self._fail()
        await super().save_habit(owner_id, habit)

    async def update_habit(self, owner_id, habit):
        await self._fail()
        await super().update_habit(owner_id, habit)

    async def delete_habit(self, owner_id, habit_id):
        await self._fail()
        await super().delete_habit(owner_id, habit_id)


class FailingCompletionRepository(LocalCompletionRepository):
    async def save_completion(self, owner_id, completion):
        raise PersistenceError("disk full")

    async def delete_completions(self, owner_id, habit_id):
        raise PersistenceError("disk full")


class SlowHabitRepository(LocalHabitRepository):
    async def save_habit(self, owner_id, habit):
        await asyncio.sleep(1)


class LateAcknowledgingStore(MemoryKeyValueStore):
    """The first habits write lands at once but is acknowledged too late"""

    def __init__(self):
        super().__init__()
        self.late_writes = 1

    async def save(self, key, data):
        await super().save(key, data)
        if key.startswith("@habits") and self.late_writes:
            self.late_writes -= 1
            await asyncio.sleep(1)
        return True


class BrokenLoadRepository(LocalHabitRepository):
    async def load_habits(self, owner_id):
        raise PersistenceError("unreadable")


def read_draft(**overrides):
    fields = {"name": "Read", "time": "07:30", "recurrence": WeeklyRecurrence(days={1, 3, 5})}
    fields.update(overrides)
    return HabitDraft(**fields)


class TestReadScenario:
    def test_monday_wednesday_friday_habit(self, store):
        habit = run(store.create_habit(read_draft()))

        [status] = store.get_today_habits()
        assert status.id == habit.id
        assert status.is_completed is False

        completion = run(store.toggle_completion(habit.id, MONDAY, True))

        [status] = store.get_today_habits()
        assert status.is_completed is True
        assert status.completion_id == completion.id
        assert store.get_habits_for_date(TUESDAY) == []
        assert store.get_completion_rate(habit.id) == 100.0

        summary = store.get_day_summary(MONDAY)
        assert (summary.total, summary.completed, summary.pending) == (1, 1, 0)

    def test_selected_date_defaults_to_today(self, store):
        assert store.selected_date == MONDAY
        store.selected_date = "2024-01-03"
        assert store.selected_date == date(2024, 1, 3)


class TestCreateHabit:
    def test_assigns_identity_and_timestamps(self, store):
        habit = run(store.create_habit(read_draft(name="  Read  ")))

        assert habit.id == "id-1"
        assert habit.name == "Read"
        assert habit.created_at == habit.updated_at
        assert store.habits == [habit]

    @pytest.mark.parametrize("draft,field", [
        (read_draft(name="   "), "name"),
        (read_draft(time="7:30"), "time"),
        (read_draft(time="24:00"), "time"),
        (read_draft(recurrence=WeeklyRecurrence()), "repeatDays"),
        (read_draft(recurrence=MonthlyRecurrence()), "repeatDates"),
        (read_draft(recurrence=UnknownRecurrence(repeat_type="yearly")), "repeatType"),
        (read_draft(repeat_value=0), "repeatValue"),
    ])
    def test_rejects_invalid_drafts(self, store, draft, field):
        with pytest.raises(ValidationError) as exc_info:
            run(store.create_habit(draft))

        assert exc_info.value.field == field
        assert store.habits == []

    def test_empty_weekly_selection_message(self, store):
        with pytest.raises(ValidationError, match="Please select at least one day of the week"):
            run(store.create_habit(read_draft(recurrence=WeeklyRecurrence())))

    def test_requires_session(self, make_store):
        habit_store = make_store()

        with pytest.raises(AuthenticationRequired):
            run(habit_store.create_habit(read_draft()))

        assert habit_store.habits == []
        assert habit_store.state is StoreState.UNAUTHENTICATED


class TestUpdateHabit:
    def test_keeps_created_at_and_refreshes_updated_at(self, store):
        habit = run(store.create_habit(read_draft()))

        updated = run(store.update_habit(habit.model_copy(update={
            "name": "Read fiction",
            "recurrence": DailyRecurrence(),
            "created_at": "1999-01-01T00:00:00.000Z"
        })))

        assert updated.id == habit.id
        assert updated.name == "Read fiction"
        assert updated.created_at == habit.created_at
        assert updated.updated_at > habit.updated_at
        assert store.get_habit(habit.id) == updated
        assert len(store.get_habits_for_date(TUESDAY)) == 1

    def test_unknown_id(self, store, make_habit):
        with pytest.raises(NotFoundError):
            run(store.update_habit(make_habit(habit_id="missing")))

    def test_invalid_update_changes_nothing(self, store):
        habit = run(store.create_habit(read_draft()))

        with pytest.raises(ValidationError):
            run(store.update_habit(habit.model_copy(update={"name": ""})))

        assert store.get_habit(habit.id) == habit


class TestToggleCompletion:
    def test_repeated_toggles_share_one_record(self, store):
        habit = run(store.create_habit(read_draft()))

        first = run(store.toggle_completion(habit.id, MONDAY, True))
        second = run(store.toggle_completion(habit.id, "2024-01-01", True))
        third = run(store.toggle_completion(habit.id, MONDAY, False))

        assert first.id == second.id == third.id
        assert len(store.completions) == 1
        assert store.get_today_habits()[0].is_completed is False

    def test_unknown_habit(self, store):
        with pytest.raises(NotFoundError):
            run(store.toggle_completion("missing", MONDAY, True))
        assert store.completions == []

    def test_invalid_date(self, store):
        habit = run(store.create_habit(read_draft()))
        with pytest.raises(ValidationError):
            run(store.toggle_completion(habit.id, "01/01/2024", True))

    def test_completion_on_a_day_the_habit_is_not_due(self, store):
        habit = run(store.create_habit(read_draft()))

        run(store.toggle_completion(habit.id, TUESDAY, True))

        assert store.get_habits_for_date(TUESDAY) == []
        assert store.get_completion_rate(habit.id) == 100.0


class TestDeleteHabit:
    def test_cascades_to_completions(self, store):
        habit = run(store.create_habit(read_draft()))
        other = run(store.create_habit(read_draft(name="Run")))
        run(store.toggle_completion(habit.id, MONDAY, True))
        run(store.toggle_completion(habit.id, date(2024, 1, 3), True))
        run(store.toggle_completion(other.id, MONDAY, True))

        run(store.delete_habit(habit.id))

        assert [h.id for h in store.habits] == [other.id]
        assert [c.habit_id for c in store.completions] == [other.id]

    def test_cascade_is_persisted(self, store, make_store):
        habit = run(store.create_habit(read_draft()))
        run(store.toggle_completion(habit.id, MONDAY, True))
        run(store.delete_habit(habit.id))

        reloaded = make_store()
        run(reloaded.sign_in(SESSION))

        assert reloaded.habits == []
        assert reloaded.completions == []

    def test_unknown_id(self, store):
        with pytest.raises(NotFoundError):
            run(store.delete_habit("missing"))


class TestPersistenceFailures:
    def test_failed_create_leaves_memory_unchanged(self, make_store, kv):
        habit_store = make_store(habit_repository=FailingHabitRepository(kv))
        run(habit_store.sign_in(SESSION))

        with pytest.raises(PersistenceError):
            run(habit_store.create_habit(read_draft()))

        assert habit_store.habits == []

    def test_failed_toggle_leaves_memory_unchanged(self, make_store, kv):
        habit_store = make_store(completion_repository=FailingCompletionRepository(kv))
        run(habit_store.sign_in(SESSION))
        habit = run(habit_store.create_habit(read_draft()))

        with pytest.raises(PersistenceError):
            run(habit_store.toggle_completion(habit.id, MONDAY, True))

        assert habit_store.completions == []
        assert habit_store.get_today_habits()[0].is_completed is False

    def test_failed_cascade_keeps_habit_and_completions(self, make_store, kv):
        seeded = make_store()
        run(seeded.sign_in(SESSION))
        habit = run(seeded.create_habit(read_draft()))
        run(seeded.toggle_completion(habit.id, MONDAY, True))

        habit_store = make_store(completion_repository=FailingCompletionRepository(kv))
        run(habit_store.sign_in(SESSION))

        with pytest.raises(PersistenceError):
            run(habit_store.delete_habit(habit.id))

        assert [h.id for h in habit_store.habits] == [habit.id]
        assert len(habit_store.completions) == 1

    def test_failed_update_keeps_previous_version(self, make_store, kv):
        seeded = make_store()
        run(seeded.sign_in(SESSION))
        habit = run(seeded.create_habit(read_draft()))

        habit_store = make_store(habit_repository=FailingHabitRepository(kv))
        run(habit_store.sign_in(SESSION))

        with pytest.raises(PersistenceError):
            run(habit_store.update_habit(habit.model_copy(update={"name": "Changed"})))

        assert habit_store.get_habit(habit.id).name == "Read"

    def test_transient_failure_is_retried(self, make_store, kv):
        repository = FailingHabitRepository(kv, failures=1)
        habit_store = make_store(habit_repository=repository, retries=1)
        run(habit_store.sign_in(SESSION))

        habit = run(habit_store.create_habit(read_draft()))

        assert repository.calls == 2
        assert habit_store.habits == [habit]

    def test_gives_up_after_retries(self, make_store, kv):
        repository = FailingHabitRepository(kv)
        habit_store = make_store(habit_repository=repository, retries=2)
        run(habit_store.sign_in(SESSION))

        with pytest.raises(PersistenceError, match="disk full"):
            run(habit_store.create_habit(read_draft()))

        assert repository.calls == 3

    def test_slow_write_times_out(self, make_store, kv):
        habit_store = make_store(habit_repository=SlowHabitRepository(kv), timeout_s=0.01)
        run(habit_store.sign_in(SESSION))

        with pytest.raises(PersistenceError, match="timed out"):
            run(habit_store.create_habit(read_draft()))

        assert habit_store.habits == []

    def test_retried_save_after_timeout_stores_habit_once(self, make_store):
        late_kv = LateAcknowledgingStore()
        habit_store = make_store(
            habit_repository=LocalHabitRepository(late_kv),
            completion_repository=LocalCompletionRepository(late_kv),
            retries=1,
            timeout_s=0.05
        )
        run(habit_store.sign_in(SESSION))

        habit = run(habit_store.create_habit(read_draft()))

        reloaded = make_store(
            habit_repository=LocalHabitRepository(late_kv),
            completion_repository=LocalCompletionRepository(late_kv)
        )
        run(reloaded.sign_in(SESSION))
        assert habit_store.habits == [habit]
        assert reloaded.habits == [habit]
        assert len(reloaded.get_today_habits()) == 1


class TestSessionLifecycle:
    def test_states(self, make_store):
        habit_store = make_store()
        assert habit_store.state is StoreState.UNAUTHENTICATED

        run(habit_store.sign_in(SESSION))
        assert habit_store.state is StoreState.READY
        assert habit_store.session == SESSION

        run(habit_store.sign_out())
        assert habit_store.state is StoreState.UNAUTHENTICATED
        assert habit_store.session is None

    def test_sign_out_clears_collections(self, store):
        run(store.create_habit(read_draft()))
        run(store.sign_out())

        assert store.habits == []
        assert store.completions == []
        with pytest.raises(AuthenticationRequired):
            run(store.create_habit(read_draft()))

    def test_data_survives_a_new_store(self, store, make_store):
        habit = run(store.create_habit(read_draft()))
        run(store.toggle_completion(habit.id, MONDAY, True))

        reloaded = make_store()
        run(reloaded.sign_in(SESSION))

        assert reloaded.habits == [habit]
        assert reloaded.get_today_habits()[0].is_completed is True

    def test_owners_are_isolated(self, store, make_store):
        run(store.create_habit(read_draft()))

        other = make_store()
        run(other.sign_in(Session(owner_id="owner-2", email="other@example.com")))

        assert other.habits == []

    def test_failed_load_leaves_store_unauthenticated(self, make_store, kv):
        habit_store = make_store(habit_repository=BrokenLoadRepository(kv))

        with pytest.raises(PersistenceError):
            run(habit_store.sign_in(SESSION))

        assert habit_store.state is StoreState.UNAUTHENTICATED
        assert habit_store.session is None

    def test_orphan_completions_are_dropped_on_load(self, store, make_store, kv):
        habit = run(store.create_habit(read_draft()))
        run(store.toggle_completion(habit.id, MONDAY, True))
        run(LocalHabitRepository(kv).delete_habit(SESSION.owner_id, habit.id))

        reloaded = make_store()
        run(reloaded.sign_in(SESSION))

        assert reloaded.habits == []
        assert reloaded.completions == []


class TestStats:
    def test_habit_stats(self, store):
        habit = run(store.create_habit(read_draft(recurrence=DailyRecurrence())))
        run(store.toggle_completion(habit.id, date(2023, 12, 30), True))
        run(store.toggle_completion(habit.id, date(2023, 12, 31), True))

        stats = store.get_habit_stats(habit.id)

        assert stats.current_streak == 2
        assert stats.completion_rate == 100.0
        assert stats.last_completed == date(2023, 12, 31)

    def test_unknown_habit(self, store):
        with pytest.raises(NotFoundError):
            store.get_habit_stats("missing")


def test_store_is_constructible_without_options(kv):
    habit_store = HabitStore(LocalHabitRepository(kv), LocalCompletionRepository(kv))
    assert habit_store.state is StoreState.UNAUTHENTICATED
