"""
services/ingestion_service.py

Question set ingestion.
Public API:
  - parse_set_identity(filename) -> QuestionSetKey       : "2024_Jan_27_Shift_1" -> (2024, "Jan 27 Shift 1")
  - ingest_question_set(db, payload) -> IngestResult     : validate + commit one set
  - import_directory(db, directory) -> ImportReport      : bulk import of *.json files

A set is committed in a single database transaction. On any failure nothing is
written: no partial set is ever visible to readers.
"""

import calendar
import json
import os
import re
from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from config import QUESTIONS_PER_SET
from jee_mains_cbt.db.database import Database
from jee_mains_cbt.db.records import QuestionSetRecord
from jee_mains_cbt.errors import CbtError, Conflict, ValidationError
from jee_mains_cbt.models.question_model import (
    ImportReport,
    IngestResult,
    QuestionSet,
    QuestionSetKey,
)
from jee_mains_cbt.services.question_set_service import find_question_set

FILENAME_RE = re.compile(r"^(\d{4})_([A-Za-z]{3})_(\d{2})_Shift_(\d)(?:\.json)?$")

_MONTHS = {abbr.lower(): abbr for abbr in calendar.month_abbr if abbr}


def _field_errors(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": list(err["loc"]), "msg": err["msg"]}
        for err in exc.errors(include_url=False)
    ]


def parse_set_identity(filename: str) -> QuestionSetKey:
    """
    Derive (year, slot) from the canonical file name YYYY_Mon_DD_Shift_N.

    The ".json" suffix is optional. The month abbreviation is matched
    case-insensitively and stored capitalised.
    """
    match = FILENAME_RE.match(os.path.basename(filename or ""))
    if not match:
        raise ValidationError(
            "Invalid filename format. Expected: YYYY_MMM_DD_Shift_N",
            errors=[{"loc": ["filename"], "msg": f"unrecognised name {filename!r}"}],
        )

    year, month, day, shift = match.groups()
    month_abbr = _MONTHS.get(month.lower())
    if month_abbr is None:
        raise ValidationError(
            f"Unknown month abbreviation {month!r}",
            errors=[{"loc": ["filename"], "msg": "month must be Jan..Dec"}],
        )
    if not 1 <= int(day) <= 31:
        raise ValidationError(
            f"Invalid day {day!r}",
            errors=[{"loc": ["filename"], "msg": "day must be 01..31"}],
        )

    try:
        return QuestionSetKey(year=int(year), slot=f"{month_abbr} {day} Shift {shift}")
    except PydanticValidationError as e:
        raise ValidationError("Invalid question set identity", errors=_field_errors(e)) from e


def build_question_set(key: QuestionSetKey, questions: Any) -> QuestionSet:
    """Validate raw question dicts into a QuestionSet, reporting every error found."""
    if not isinstance(questions, list):
        raise ValidationError(
            "Questions must be a list",
            errors=[{"loc": ["questions"], "msg": "expected a list"}],
        )
    if len(questions) != QUESTIONS_PER_SET:
        msg = (
            f"A complete question set must contain exactly {QUESTIONS_PER_SET} "
            f"questions (got {len(questions)})"
        )
        raise ValidationError(msg, errors=[{"loc": ["questions"], "msg": msg}])

    try:
        return QuestionSet(year=key.year, slot=key.slot, questions=questions)
    except PydanticValidationError as e:
        raise ValidationError("Validation failed", errors=_field_errors(e)) from e


def ingest_question_set(db: Database, payload: Any) -> IngestResult:
    """
    Validate and atomically store one question set.

    Payload shape: {"filename": "2024_Jan_27_Shift_1", "questions": [...]}
    ("fileData" is accepted in place of "questions").

    Raises:
        ValidationError: bad file name or malformed questions.
        Conflict:        a set already exists for the same (year, slot).
        StoreUnavailable: the store could not be reached.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid request format")
    questions = payload.get("questions", payload.get("fileData"))
    if not isinstance(payload.get("filename"), str) or questions is None:
        raise ValidationError(
            "Invalid request format",
            errors=[{"loc": ["body"], "msg": "filename and questions are required"}],
        )

    key = parse_set_identity(payload["filename"])
    question_set = build_question_set(key, questions)
    doc = question_set.model_dump(mode="json", include={"questions"})

    try:
        with db.session() as session:
            if find_question_set(session, key) is not None:
                raise Conflict(f"Question set {key.year} {key.slot} already exists")
            record = QuestionSetRecord(
                year=question_set.year,
                slot=question_set.slot,
                questions=doc["questions"],
                created_at=question_set.created_at,
            )
            session.add(record)
            session.flush()
    except IntegrityError as e:
        raise Conflict(f"Question set {key.year} {key.slot} already exists") from e

    return IngestResult(
        id=record.id,
        year=record.year,
        slot=record.slot,
        question_count=len(record.questions),
    )


def import_directory(db: Database, directory: str) -> ImportReport:
    """
    Import every canonical *.json file under `directory`.

    Each file holds the question list for one set and is committed in its own
    transaction. A failing file is recorded and skipped; the rest still load.
    """
    report = ImportReport()
    for name in sorted(os.listdir(directory)):
        if not name.endswith(".json"):
            continue
        path = os.path.join(directory, name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                questions = json.load(f)
            result = ingest_question_set(db, {"filename": name, "questions": questions})
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            report.failed[name] = f"Invalid JSON: {e}"
        except OSError as e:
            report.failed[name] = f"Unreadable file: {e}"
        except CbtError as e:
            report.failed[name] = e.message
        else:
            report.imported.append(result)
    return report
