"""
db/records.py

SQLAlchemy tables for question sets and attempts.
Question lists, answer sheets and per-question marks are stored as JSON
columns; the pydantic models in jee_mains_cbt.models validate them on read.
"""

import datetime as dt
import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.types import TypeDecorator

from jee_mains_cbt.db.base import Base


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class UTCDateTime(TypeDecorator):
    """Aware UTC datetimes, stored naive since SQLite keeps no offset."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(dt.timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=dt.timezone.utc)
        return value


class QuestionSetRecord(Base):
    __tablename__ = "question_sets"
    __table_args__ = (
        UniqueConstraint("year", "slot", name="uq_question_sets_year_slot"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    year = Column(Integer, nullable=False)
    slot = Column(String(20), nullable=False)
    questions = Column(JSON, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)


class AttemptRecord(Base):
    __tablename__ = "attempts"

    id = Column(String(32), primary_key=True, default=new_id)
    owner = Column(String(128), nullable=False, index=True)
    question_set_id = Column(String(32), ForeignKey("question_sets.id"), nullable=False)
    responses = Column(JSON, nullable=False, default=list)
    subject_boundaries = Column(JSON, nullable=False, default=list)
    status = Column(String(10), nullable=False, default="OPEN")
    score = Column(Integer)
    per_question = Column(JSON, nullable=False, default=list)
    started_at = Column(UTCDateTime, nullable=False, default=utcnow)
    expires_at = Column(UTCDateTime)
    completed_at = Column(UTCDateTime)
    # bumped on every write, checked by conditional updates
    version = Column(Integer, nullable=False, default=0)
    # "<owner>|<question_set_id>" while OPEN, NULL once SCORED
    open_key = Column(String(200), unique=True)
