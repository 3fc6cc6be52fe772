"""
models/attempt_model.py

A candidate's run through one question set (the OMR card), and the
result shapes returned by the lifecycle service.
"""

import datetime as dt
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, StrictInt

from jee_mains_cbt.models.question_model import SubjectBoundary


class AttemptStatus(str, Enum):
    OPEN = "OPEN"
    SCORED = "SCORED"


class Response(BaseModel):
    """
    One answer slot on the OMR card.

    question_id may be omitted, in which case the slot position decides which
    question it answers. answer None means the question was left unattempted.
    Both must be JSON integers: booleans and numeric strings are rejected.
    """

    question_id: Optional[StrictInt] = None
    answer: Optional[StrictInt] = Field(default=None, ge=0)


class QuestionResult(BaseModel):
    question_id: int
    marks: int
    correct: bool


class ScoreResult(BaseModel):
    total: int
    per_question: List[QuestionResult]
    subject_boundaries: List[SubjectBoundary]
    total_questions: int
    max_possible: int


class Attempt(BaseModel):
    """
    Stored attempt row.

    Attributes:
        owner:            candidate identity supplied by the auth provider.
        question_set_id:  read-only reference to the QuestionSet being attempted.
        responses:        last saved answer sheet, replaced wholesale on save.
        status:           OPEN until submit, then SCORED for good.
        expires_at:       end of the exam clock. Saves are refused after it;
                          submit still scores the last saved sheet.
        version:          bumped on every write; used for optimistic
                          concurrency checks.
        open_key:         "<owner>|<question_set_id>" while OPEN, None once
                          SCORED. Unique in the attempts table.
    """

    id: Optional[str] = None
    owner: str
    question_set_id: str
    responses: List[Response] = Field(default_factory=list)
    subject_boundaries: List[SubjectBoundary] = Field(default_factory=list)
    status: AttemptStatus = AttemptStatus.OPEN
    score: Optional[int] = None
    per_question: List[QuestionResult] = Field(default_factory=list)
    started_at: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc)
    )
    expires_at: Optional[dt.datetime] = None
    completed_at: Optional[dt.datetime] = None
    version: int = 0
    open_key: Optional[str] = None

    @property
    def is_scored(self) -> bool:
        return self.status is AttemptStatus.SCORED

    def is_expired(self, now: Optional[dt.datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or dt.datetime.now(dt.timezone.utc)
        return now >= self.expires_at

    def answered_count(self) -> int:
        return sum(1 for r in self.responses if r.answer is not None)


def make_open_key(owner: str, question_set_id: str) -> str:
    return f"{owner}|{question_set_id}"


class StartResult(BaseModel):
    attempt_id: str
    question_set_id: str
    resumed: bool
    questions: List[Dict[str, Any]]
    subject_boundaries: List[SubjectBoundary]
    started_at: dt.datetime
    expires_at: Optional[dt.datetime] = None


class AttemptResult(BaseModel):
    """Stored score of a SCORED attempt plus the subject-wise breakdown."""

    attempt_id: str
    score: ScoreResult
    subject_scores: List[Dict[str, Any]]
    incorrect_question_ids: List[int]
    completed_at: dt.datetime
