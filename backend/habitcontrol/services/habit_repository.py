"""
Habit and completion repositories - the stores behind the habit store.

Two interchangeable backends: JSON records in a device key-value store
(``Local*``) and SQLAlchemy tables (``Sql*``). Every failure is raised as
PersistenceError.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List
import logging

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from habitcontrol.core.errors import PersistenceError
from habitcontrol.models.habit import HabitRow, HabitCompletionRow
from habitcontrol.schemas.habit import Habit, HabitCompletion, recurrence_fields
from habitcontrol.services.persistence import KeyValueStore

logger = logging.getLogger(__name__)

HABITS_KEY = "@habits"
COMPLETIONS_KEY = "@completions"


class HabitRepository(ABC):
    @abstractmethod
    async def load_habits(self, owner_id: str) -> List[Habit]:
        ...

    @abstractmethod
    async def save_habit(self, owner_id: str, habit: Habit) -> None:
        """Store a new habit; saving the same id again replaces the stored record"""

    @abstractmethod
    async def update_habit(self, owner_id: str, habit: Habit) -> None:
        ...

    @abstractmethod
    async def delete_habit(self, owner_id: str, habit_id: str) -> None:
        ...


class CompletionRepository(ABC):
    @abstractmethod
    async def load_completions(self, owner_id: str) -> List[HabitCompletion]:
        ...

    @abstractmethod
    async def save_completion(self, owner_id: str, completion: HabitCompletion) -> None:
        """Insert the record, or replace the stored record with the same id"""

    @abstractmethod
    async def delete_completions(self, owner_id: str, habit_id: str) -> None:
        ...


# ==========================================
# DEVICE KEY-VALUE BACKEND
# ==========================================

class _JsonRecordStore:
    """Keeps a JSON list of records per owner under ``<prefix>:<owner_id>``"""

    prefix = ""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def key_for(self, owner_id: str) -> str:
        return f"{self.prefix}:{owner_id}"

    async def _read_records(self, owner_id: str) -> List[Dict[str, Any]]:
        key = self.key_for(owner_id)
        try:
            raw = await self.kv.load(key)
        except OSError as e:
            raise PersistenceError(f"Could not read '{key}': {e}") from e

        if raw is None:
            return []
        try:
            records = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Stored data under '{key}' is not valid JSON: {e}") from e
        if not isinstance(records, list):
            raise PersistenceError(f"Stored data under '{key}' is not a list")
        return records

    async def _write_records(self, owner_id: str, records: List[Dict[str, Any]]) -> None:
        key = self.key_for(owner_id)
        payload = json.dumps(records, ensure_ascii=False).encode("utf-8")
        if not await self.kv.save(key, payload):
            raise PersistenceError(f"Could not write '{key}'")


class LocalHabitRepository(_JsonRecordStore, HabitRepository):
    prefix = HABITS_KEY

    async def load_habits(self, owner_id: str) -> List[Habit]:
        records = await self._read_records(owner_id)
        try:
            return [Habit.from_record(record) for record in records]
        except (KeyError, TypeError, SchemaValidationError) as e:
            raise PersistenceError(f"Stored habit record is malformed: {e}") from e

    async def save_habit(self, owner_id: str, habit: Habit) -> None:
        records = await self._read_records(owner_id)
        records = [r for r in records if r.get("id") != habit.id]
        records.append(habit.to_record())
        await self._write_records(owner_id, records)

    async def update_habit(self, owner_id: str, habit: Habit) -> None:
        records = await self._read_records(owner_id)
        replaced = False
        for index, record in enumerate(records):
            if record.get("id") == habit.id:
                records[index] = habit.to_record()
                replaced = True
        if not replaced:
            logger.warning(f"Habit {habit.id} missing from local storage, appending it")
            records.append(habit.to_record())
        await self._write_records(owner_id, records)

    async def delete_habit(self, owner_id: str, habit_id: str) -> None:
        records = await self._read_records(owner_id)
        await self._write_records(owner_id, [r for r in records if r.get("id") != habit_id])


class LocalCompletionRepository(_JsonRecordStore, CompletionRepository):
    prefix = COMPLETIONS_KEY

    async def load_completions(self, owner_id: str) -> List[HabitCompletion]:
        records = await self._read_records(owner_id)
        try:
            return [HabitCompletion.from_record(record) for record in records]
        except (KeyError, TypeError, SchemaValidationError) as e:
            raise PersistenceError(f"Stored completion record is malformed: {e}") from e

    async def save_completion(self, owner_id: str, completion: HabitCompletion) -> None:
        records = await self._read_records(owner_id)
        records = [r for r in records if r.get("id") != completion.id]
        records.append(completion.to_record())
        await self._write_records(owner_id, records)

    async def delete_completions(self, owner_id: str, habit_id: str) -> None:
        records = await self._read_records(owner_id)
        await self._write_records(owner_id, [r for r in records if r.get("habitId") != habit_id])


# ==========================================
# SQL BACKEND
# ==========================================

class _SqlStore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def _run(self, fn: Callable[[Session], Any]) -> Any:
        """Run ``fn`` with a fresh session in the default executor"""

        def run_sync():
            db = self.session_factory()
            try:
                return fn(db)
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, run_sync)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Database error: {e}") from e


def _habit_to_row_values(owner_id: str, habit: Habit) -> Dict[str, Any]:
    fields = recurrence_fields(habit.recurrence)
    days = fields.get("repeatDays")
    dates = fields.get("repeatDates")
    return {
        "id": habit.id,
        "user_id": owner_id,
        "name": habit.name,
        "time": habit.time,
        "repeat_type": habit.repeat_type,
        "repeat_value": habit.repeat_value,
        "repeat_days": json.dumps(days) if days is not None else None,
        "repeat_dates": json.dumps(dates) if dates is not None else None,
        "created_at": habit.created_at,
        "updated_at": habit.updated_at,
    }


def _habit_from_row(row: HabitRow) -> Habit:
    return Habit.from_record({
        "id": row.id,
        "name": row.name,
        "time": row.time,
        "repeatType": row.repeat_type,
        "repeatValue": row.repeat_value,
        "repeatDays": json.loads(row.repeat_days) if row.repeat_days else None,
        "repeatDates": json.loads(row.repeat_dates) if row.repeat_dates else None,
        "createdAt": row.created_at,
        "updatedAt": row.updated_at,
    })


class SqlHabitRepository(_SqlStore, HabitRepository):
    async def load_habits(self, owner_id: str) -> List[Habit]:
        def query(db: Session) -> List[HabitRow]:
            return db.query(HabitRow).filter(HabitRow.user_id == owner_id).all()

        rows = await self._run(query)
        try:
            return [_habit_from_row(row) for row in rows]
        except (ValueError, TypeError, SchemaValidationError) as e:
            raise PersistenceError(f"Stored habit row is malformed: {e}") from e

    async def save_habit(self, owner_id: str, habit: Habit) -> None:
        def upsert(db: Session) -> None:
            db.merge(HabitRow(**_habit_to_row_values(owner_id, habit)))
            db.commit()

        await self._run(upsert)

    async def update_habit(self, owner_id: str, habit: Habit) -> None:
        def update(db: Session) -> None:
            row = db.query(HabitRow).filter(
                HabitRow.id == habit.id,
                HabitRow.user_id == owner_id
            ).first()
            if row is None:
                raise PersistenceError(f"Habit {habit.id} does not exist in the database")
            for column, value in _habit_to_row_values(owner_id, habit).items():
                setattr(row, column, value)
            db.commit()

        await self._run(update)

    async def delete_habit(self, owner_id: str, habit_id: str) -> None:
        def delete(db: Session) -> None:
            db.query(HabitRow).filter(
                HabitRow.id == habit_id,
                HabitRow.user_id == owner_id
            ).delete()
            db.commit()

        await self._run(delete)


class SqlCompletionRepository(_SqlStore, CompletionRepository):
    async def load_completions(self, owner_id: str) -> List[HabitCompletion]:
        def query(db: Session) -> List[HabitCompletionRow]:
            return db.query(HabitCompletionRow).filter(HabitCompletionRow.user_id == owner_id).all()

        rows = await self._run(query)
        return [
            HabitCompletion(
                id=row.id,
                habit_id=row.habit_id,
                date=row.date,
                completed=bool(row.completed),
                completed_at=row.completed_at
            ) for row in rows
        ]

    async def save_completion(self, owner_id: str, completion: HabitCompletion) -> None:
        def upsert(db: Session) -> None:
            row = db.query(HabitCompletionRow).filter(HabitCompletionRow.id == completion.id).first()
            if row is None:
                row = HabitCompletionRow(id=completion.id, user_id=owner_id)
                db.add(row)
            row.habit_id = completion.habit_id
            row.date = completion.date
            row.completed = completion.completed
            row.completed_at = completion.completed_at
            db.commit()

        await self._run(upsert)

    async def delete_completions(self, owner_id: str, habit_id: str) -> None:
        def delete(db: Session) -> None:
            db.query(HabitCompletionRow).filter(
                HabitCompletionRow.habit_id == habit_id,
                HabitCompletionRow.user_id == owner_id
            ).delete()
            db.commit()

        await self._run(delete)
