"""
models/question_model.py

JEE Main question paper models (pydantic v2).
A QuestionSet is immutable once stored: exactly 90 questions keyed by (year, slot).
"""

import datetime as dt
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator, model_validator

from config import MIN_YEAR, QUESTIONS_PER_SET

SLOT_PATTERN = r"^[A-Za-z]{3} \d{2} Shift \d$"
IMAGE_URL_PATTERN = r"^https?://.+\..+"
MCQ_OPTION_COUNT = 4


class QuestionType(str, Enum):
    MCQ = "MCQ"
    INTEGER = "Integer"


class Subject(str, Enum):
    MATHEMATICS = "Mathematics"
    PHYSICS = "Physics"
    CHEMISTRY = "Chemistry"


class Question(BaseModel):
    """
    A single paper question.

    MCQ questions carry exactly 4 distinct options and an answer index 0-3.
    Integer questions carry no options and a non-negative integer answer.
    """

    model_config = ConfigDict(frozen=True)

    question_id: StrictInt = Field(
        ...,
        description="Question number, unique within its set"
    )
    type: QuestionType = Field(
        ...,
        description="MCQ or Integer"
    )
    options: List[str] = Field(
        default_factory=list,
        description="Ordered option texts (MCQ only)"
    )
    answer: StrictInt = Field(
        ...,
        ge=0,
        description="Correct option index (MCQ) or the integer answer"
    )
    subject: Subject
    image: str = Field(
        ...,
        pattern=IMAGE_URL_PATTERN,
        description="URL of the rendered question image"
    )

    @field_validator("options", mode="before")
    @classmethod
    def strip_options(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [opt.strip() if isinstance(opt, str) else opt for opt in v]
        return v

    @model_validator(mode="after")
    def validate_options_and_answer(self) -> "Question":
        if self.type is QuestionType.MCQ:
            if len(self.options) != MCQ_OPTION_COUNT:
                raise ValueError("MCQ requires exactly 4 options")
            if len(set(self.options)) != MCQ_OPTION_COUNT:
                raise ValueError("MCQ options must be unique")
            if self.answer >= MCQ_OPTION_COUNT:
                raise ValueError("MCQ answer must be 0-3")
        elif self.options:
            raise ValueError("Integer questions should not have options")
        return self

    def public_view(self) -> Dict[str, Any]:
        """Candidate-facing payload. The answer key never leaves before submission."""
        return self.model_dump(mode="json", exclude={"answer"})


class QuestionSetKey(BaseModel):
    year: int = Field(..., ge=MIN_YEAR)
    slot: str = Field(..., pattern=SLOT_PATTERN)


class SubjectBoundary(BaseModel):
    """Half-open index range [start, end) of one subject block in paper order."""

    subject: Subject
    start: int
    end: int


class QuestionSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    year: int = Field(..., ge=MIN_YEAR)
    slot: str = Field(..., pattern=SLOT_PATTERN)
    questions: List[Question]
    created_at: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc)
    )

    @field_validator("year")
    @classmethod
    def validate_year_not_future(cls, v: int) -> int:
        latest = dt.date.today().year + 1
        if v > latest:
            raise ValueError(f"Year must be between {MIN_YEAR} and {latest}")
        return v

    @field_validator("questions")
    @classmethod
    def validate_questions(cls, v: List[Question]) -> List[Question]:
        if len(v) != QUESTIONS_PER_SET:
            raise ValueError(
                f"A complete question set must contain exactly {QUESTIONS_PER_SET} "
                f"questions (got {len(v)})"
            )
        seen = set()
        for q in v:
            if q.question_id in seen:
                raise ValueError(f"Duplicate question_id found: {q.question_id}")
            seen.add(q.question_id)
        return v

    def question_ids(self) -> List[int]:
        return [q.question_id for q in self.questions]


def derive_subject_boundaries(questions: List[Question]) -> List[SubjectBoundary]:
    """Collapse consecutive questions of the same subject into index ranges."""
    boundaries: List[SubjectBoundary] = []
    for idx, q in enumerate(questions):
        if boundaries and boundaries[-1].subject == q.subject:
            boundaries[-1].end = idx + 1
        else:
            boundaries.append(SubjectBoundary(subject=q.subject, start=idx, end=idx + 1))
    return boundaries


class IngestResult(BaseModel):
    id: str
    year: int
    slot: str
    question_count: int


class ImportReport(BaseModel):
    """Outcome of a bulk directory import: one entry per file."""

    imported: List[IngestResult] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)


class QuestionSetSummary(BaseModel):
    id: str
    year: int
    slot: str
    question_count: int
    created_at: dt.datetime
