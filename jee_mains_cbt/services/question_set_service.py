"""
services/question_set_service.py

Read side of the question set table: lookup and existence checks.
Stored sets are append-only; nothing here writes.
"""

from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from config import QUESTIONS_PER_SET
from jee_mains_cbt.db.database import Database
from jee_mains_cbt.db.records import QuestionSetRecord
from jee_mains_cbt.errors import NotFound
from jee_mains_cbt.models.question_model import QuestionSet, QuestionSetKey, QuestionSetSummary


def find_question_set(session: Session, key: QuestionSetKey) -> Optional[QuestionSetRecord]:
    stmt = select(QuestionSetRecord).where(
        QuestionSetRecord.year == key.year,
        QuestionSetRecord.slot == key.slot,
    )
    return session.execute(stmt).scalar_one_or_none()


def _complete_set(record: Optional[QuestionSetRecord]) -> QuestionSet:
    # Legacy or partially ingested rows are treated as missing.
    if record is None or len(record.questions or []) != QUESTIONS_PER_SET:
        raise NotFound("Complete question paper not found")
    try:
        return QuestionSet.model_validate(record, from_attributes=True)
    except PydanticValidationError as e:
        raise NotFound("Complete question paper not found") from e


def get_question_set(db: Database, key: QuestionSetKey) -> QuestionSet:
    """Complete question set for (year, slot), or NotFound."""
    with db.session() as session:
        return _complete_set(find_question_set(session, key))


def get_question_set_by_id(db: Database, question_set_id: str) -> QuestionSet:
    with db.session() as session:
        return _complete_set(session.get(QuestionSetRecord, question_set_id))


def summarize(question_set: QuestionSet) -> QuestionSetSummary:
    return QuestionSetSummary(
        id=question_set.id,
        year=question_set.year,
        slot=question_set.slot,
        question_count=len(question_set.questions),
        created_at=question_set.created_at,
    )
