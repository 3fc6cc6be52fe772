"""
services/attempt_service.py

Attempt lifecycle: start -> save progress (any number of times) -> submit.

    OPEN --submit--> SCORED   (terminal)

Every write to an attempt is a conditional UPDATE on the version it was read
at. A stale write is retried against a fresh read, so a save racing a submit
can never reopen a scored attempt and two racing submits produce exactly one
score.

The exam clock starts with the attempt. Once it runs out the sheet is frozen:
saves are refused, and submit scores whatever was last saved.
"""

import datetime as dt
import json
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from config import CORRECT_MARKS, EXAM_DURATION_MINUTES, MAX_WRITE_RETRIES, QUESTIONS_PER_SET
from jee_mains_cbt.db.database import Database
from jee_mains_cbt.db.records import AttemptRecord
from jee_mains_cbt.errors import Forbidden, InvalidState, NotFound, StoreUnavailable, ValidationError
from jee_mains_cbt.models.attempt_model import (
    Attempt,
    AttemptResult,
    AttemptStatus,
    Response,
    ScoreResult,
    StartResult,
    make_open_key,
)
from jee_mains_cbt.models.question_model import (
    QuestionSet,
    QuestionSetKey,
    derive_subject_boundaries,
)
from jee_mains_cbt.services.question_set_service import get_question_set, get_question_set_by_id
from jee_mains_cbt.services.scoring_service import (
    calculate_subject_scores,
    get_incorrect_questions,
    score_responses,
)


def read_sheet(payload: Any) -> Any:
    """
    Responses out of a save request.

    Accepts the raw JSON body (bytes or str) or an already decoded value.
    A dict body carries the sheet under "responses"; anything else is taken
    as the sheet itself.
    """
    if isinstance(payload, (bytes, bytearray, str)):
        try:
            payload = json.loads(payload or "null")
        except ValueError as e:
            raise ValidationError(
                "Request body is not valid JSON",
                errors=[{"loc": ["body"], "msg": str(e)}],
            ) from e
    if isinstance(payload, dict):
        return payload.get("responses")
    return payload


def normalize_responses(responses: Any, question_set: QuestionSet) -> List[Response]:
    """
    Validate a full answer sheet against its paper.

    Exactly one entry per question slot is required. An entry without a
    question_id answers the question at the same position. The resulting ids
    must be exactly the paper's ids, each once.
    """
    if not isinstance(responses, list):
        raise ValidationError(
            "Responses must be an array",
            errors=[{"loc": ["responses"], "msg": "expected a list"}],
        )
    if len(responses) != QUESTIONS_PER_SET:
        msg = f"Must answer all {QUESTIONS_PER_SET} questions (got {len(responses)} entries)"
        raise ValidationError(msg, errors=[{"loc": ["responses"], "msg": msg}])

    try:
        entries = [Response.model_validate(r) for r in responses]
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid response entry",
            errors=[{"loc": ["responses", *err["loc"]], "msg": err["msg"]}
                    for err in e.errors(include_url=False)],
        ) from e

    ids = question_set.question_ids()
    sheet = [
        Response(question_id=r.question_id if r.question_id is not None else ids[i], answer=r.answer)
        for i, r in enumerate(entries)
    ]

    sheet_ids = [r.question_id for r in sheet]
    if len(set(sheet_ids)) != len(sheet_ids) or set(sheet_ids) != set(ids):
        raise ValidationError(
            "Responses must cover each question of the paper exactly once",
            errors=[{"loc": ["responses"], "msg": "question_id mismatch"}],
        )
    return sheet


class AttemptManager:
    def __init__(
        self,
        db: Database,
        max_retries: int = MAX_WRITE_RETRIES,
        exam_duration: dt.timedelta = dt.timedelta(minutes=EXAM_DURATION_MINUTES),
    ):
        self.db = db
        self.max_retries = max_retries
        self.exam_duration = exam_duration

    # ── helpers ─────────────────────────────────────────────────────────────

    def _load_attempt(self, attempt_id: str) -> Attempt:
        with self.db.session() as session:
            record = session.get(AttemptRecord, attempt_id)
            if record is None:
                raise NotFound("Attempt not found")
            return Attempt.model_validate(record, from_attributes=True)

    def _load_owned(self, attempt_id: str, candidate_id: str) -> Attempt:
        attempt = self._load_attempt(attempt_id)
        self.authorize_access(attempt, candidate_id)
        return attempt

    def _write(self, attempt_id: str, expected_version: int, fields: Dict[str, Any]) -> Optional[Attempt]:
        """Apply `fields` if the row is still at `expected_version`, else None."""
        stmt = (
            update(AttemptRecord)
            .where(AttemptRecord.id == attempt_id, AttemptRecord.version == expected_version)
            .values(version=expected_version + 1, **fields)
            .execution_options(synchronize_session=False)
        )
        with self.db.session() as session:
            if session.execute(stmt).rowcount == 0:
                return None
            return Attempt.model_validate(session.get(AttemptRecord, attempt_id), from_attributes=True)

    def _write_open(self, attempt: Attempt, fields: Dict[str, Any]) -> Attempt:
        """Versioned write that only lands while the attempt is still OPEN."""
        for _ in range(self.max_retries):
            written = self._write(attempt.id, attempt.version, fields)
            if written is not None:
                return written
            attempt = self._load_attempt(attempt.id)
            if attempt.is_scored:
                raise InvalidState("Attempt has already been submitted")
        raise StoreUnavailable("Attempt is busy, retry later")

    def question_set_for(self, attempt: Attempt) -> QuestionSet:
        return get_question_set_by_id(self.db, attempt.question_set_id)

    @staticmethod
    def _start_result(attempt: Attempt, question_set: QuestionSet, resumed: bool) -> StartResult:
        return StartResult(
            attempt_id=attempt.id,
            question_set_id=question_set.id,
            resumed=resumed,
            questions=[q.public_view() for q in question_set.questions],
            subject_boundaries=attempt.subject_boundaries,
            started_at=attempt.started_at,
            expires_at=attempt.expires_at,
        )

    # ── lifecycle ───────────────────────────────────────────────────────────

    def start_attempt(self, candidate_id: str, key: QuestionSetKey) -> StartResult:
        """
        Open an attempt on the paper identified by `key`.

        A candidate holds at most one OPEN attempt per paper; starting again
        resumes it, clock included. The returned questions carry no answer keys.

        Raises:
            NotFound: the paper is missing or does not hold all 90 questions.
        """
        question_set = get_question_set(self.db, key)
        open_key = make_open_key(candidate_id, question_set.id)
        boundaries = derive_subject_boundaries(question_set.questions)

        for _ in range(self.max_retries):
            try:
                with self.db.session() as session:
                    stmt = select(AttemptRecord).where(AttemptRecord.open_key == open_key)
                    record = session.execute(stmt).scalar_one_or_none()
                    resumed = record is not None
                    if not resumed:
                        started_at = dt.datetime.now(dt.timezone.utc)
                        record = AttemptRecord(
                            owner=candidate_id,
                            question_set_id=question_set.id,
                            responses=[],
                            subject_boundaries=[b.model_dump(mode="json") for b in boundaries],
                            status=AttemptStatus.OPEN.value,
                            per_question=[],
                            started_at=started_at,
                            expires_at=started_at + self.exam_duration,
                            version=0,
                            open_key=open_key,
                        )
                        session.add(record)
                        session.flush()
                    attempt = Attempt.model_validate(record, from_attributes=True)
            except IntegrityError:
                # lost the race to a concurrent start; resume the winner's attempt
                continue
            return self._start_result(attempt, question_set, resumed)

        raise StoreUnavailable("Could not open attempt, retry later")

    def authorize_access(self, attempt: Attempt, candidate_id: str) -> None:
        if attempt.owner != str(candidate_id):
            raise Forbidden("Unauthorized access to attempt")

    def get_attempt(self, attempt_id: str, candidate_id: str) -> Attempt:
        return self._load_owned(attempt_id, candidate_id)

    def save_progress(self, attempt_id: str, candidate_id: str, payload: Any) -> Attempt:
        """
        Replace the stored answer sheet wholesale.

        `payload` is the sheet itself, a {"responses": [...]} dict, or the raw
        JSON request body. Ownership is checked before the payload is read.

        Raises:
            Forbidden:       caller does not own the attempt.
            InvalidState:    the attempt was already submitted or its time is up.
            ValidationError: unreadable body, or not one entry per question.
        """
        attempt = self._load_owned(attempt_id, candidate_id)
        if attempt.is_scored:
            raise InvalidState("Attempt has already been submitted")
        if attempt.is_expired():
            raise InvalidState("Time limit for this attempt has expired")
        sheet = normalize_responses(read_sheet(payload), self.question_set_for(attempt))
        return self._write_open(attempt, {"responses": [r.model_dump(mode="json") for r in sheet]})

    def submit_attempt(self, attempt_id: str, candidate_id: str) -> ScoreResult:
        """
        Score the attempt once and freeze it.

        A second submit is rejected with InvalidState; the stored score is
        never recomputed. Submitting after the clock ran out is allowed.
        """
        attempt = self._load_owned(attempt_id, candidate_id)
        if attempt.is_scored:
            raise InvalidState("Attempt has already been submitted")
        question_set = self.question_set_for(attempt)

        for _ in range(self.max_retries):
            result = score_responses(
                attempt.responses, question_set, attempt.subject_boundaries or None
            )
            fields = {
                "status": AttemptStatus.SCORED.value,
                "score": result.total,
                "per_question": [r.model_dump(mode="json") for r in result.per_question],
                "completed_at": dt.datetime.now(dt.timezone.utc),
                "open_key": None,
            }
            if self._write(attempt.id, attempt.version, fields) is not None:
                return result
            # a save landed in between: re-score the latest sheet
            attempt = self._load_attempt(attempt.id)
            if attempt.is_scored:
                raise InvalidState("Attempt has already been submitted")

        raise StoreUnavailable("Attempt is busy, retry later")

    def get_result(self, attempt_id: str, candidate_id: str) -> AttemptResult:
        """Stored result of a scored attempt, with a subject-wise breakdown."""
        attempt = self._load_owned(attempt_id, candidate_id)
        if not attempt.is_scored:
            raise InvalidState("Attempt has not been submitted yet")
        question_set = self.question_set_for(attempt)

        score = ScoreResult(
            total=attempt.score,
            per_question=attempt.per_question,
            subject_boundaries=attempt.subject_boundaries
            or derive_subject_boundaries(question_set.questions),
            total_questions=len(question_set.questions),
            max_possible=len(question_set.questions) * CORRECT_MARKS,
        )
        incorrect = get_incorrect_questions(question_set.questions, attempt.responses)
        return AttemptResult(
            attempt_id=attempt.id,
            score=score,
            subject_scores=calculate_subject_scores(question_set.questions, attempt.responses),
            incorrect_question_ids=[q.question_id for q in incorrect],
            completed_at=attempt.completed_at,
        )
