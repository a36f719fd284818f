from sqlalchemy import Column, String, Integer, Boolean, Date, Text, Index
from habitcontrol.db.base import Base
import uuid


class HabitRow(Base):
    __tablename__ = "habits"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    name = Column(Text, nullable=False)
    time = Column(String(5), nullable=False)
    repeat_type = Column(String, nullable=False)
    repeat_value = Column(Integer, nullable=False, default=1)
    repeat_days = Column(Text, nullable=True)  # JSON list, weekly only
    repeat_dates = Column(Text, nullable=True)  # JSON list, monthly only
    created_at = Column(String(32), nullable=False)
    updated_at = Column(String(32), nullable=False)

    def __repr__(self):
        return f"<HabitRow(name='{self.name}', repeat_type='{self.repeat_type}')>"


class HabitCompletionRow(Base):
    __tablename__ = "habit_completions"
    # Lookup index only: one row per (habit_id, date) is kept by the store's upsert
    __table_args__ = (Index("ix_habit_completions_habit_date", "habit_id", "date"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    habit_id = Column(String, nullable=False)
    user_id = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(String(32), nullable=True)

    def __repr__(self):
        return f"<HabitCompletionRow(habit_id='{self.habit_id}', date='{self.date}', completed={self.completed})>"
