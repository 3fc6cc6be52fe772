"""
Tests for question set ingestion: identity parsing, validation, atomic commit.
"""

import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import SET_FILENAME, build_questions, count_rows, make_db
from jee_mains_cbt.errors import Conflict, StoreUnavailable, ValidationError
from jee_mains_cbt.services.ingestion_service import (
    import_directory,
    ingest_question_set,
    parse_set_identity,
)
from jee_mains_cbt.db.records import QuestionSetRecord
from jee_mains_cbt.services import ingestion_service


class TestParseSetIdentity:

    @pytest.mark.parametrize("name", ["2024_Jan_27_Shift_1", "2024_Jan_27_Shift_1.json"])
    def test_canonical_name_gives_year_and_slot(self, name):
        key = parse_set_identity(name)

        assert key.year == 2024
        assert key.slot == "Jan 27 Shift 1"

    def test_month_is_case_insensitive(self):
        assert parse_set_identity("2023_apr_08_Shift_2").slot == "Apr 08 Shift 2"

    @pytest.mark.parametrize("name", [
        "2024-Jan-27-Shift-1",
        "24_Jan_27_Shift_1",
        "2024_January_27_Shift_1",
        "2024_Jan_27_Shift_12",
        "",
    ])
    def test_malformed_name_raises(self, name):
        with pytest.raises(ValidationError, match="Invalid filename format"):
            parse_set_identity(name)

    def test_unknown_month_raises(self):
        with pytest.raises(ValidationError, match="Unknown month"):
            parse_set_identity("2024_Foo_27_Shift_1")

    def test_day_zero_raises(self):
        with pytest.raises(ValidationError, match="Invalid day"):
            parse_set_identity("2024_Jan_00_Shift_1")

    def test_year_before_2000_raises(self):
        with pytest.raises(ValidationError):
            parse_set_identity("1999_Jan_27_Shift_1")


class TestIngestQuestionSet:

    def test_valid_payload_creates_one_set(self, db, questions):
        result = ingest_question_set(db, {"filename": SET_FILENAME, "questions": questions})

        assert result.year == 2024
        assert result.slot == "Jan 27 Shift 1"
        assert result.question_count == 90
        assert count_rows(db, QuestionSetRecord) == 1
        with db.session() as session:
            stored = session.get(QuestionSetRecord, result.id)
        assert [q["question_id"] for q in stored.questions] == list(range(1, 91))

    def test_file_data_is_accepted_for_questions(self, db, questions):
        result = ingest_question_set(db, {"filename": SET_FILENAME, "fileData": questions})

        assert result.question_count == 90

    def test_duplicate_set_raises_conflict_without_writing(self, db, questions):
        payload = {"filename": SET_FILENAME, "questions": questions}
        ingest_question_set(db, payload)

        with pytest.raises(Conflict, match="already exists"):
            ingest_question_set(db, payload)
        assert count_rows(db, QuestionSetRecord) == 1

    def test_91_questions_raises_count_mismatch(self, db):
        with pytest.raises(ValidationError) as exc_info:
            ingest_question_set(db, {"filename": SET_FILENAME, "questions": build_questions(91)})

        assert "exactly 90" in exc_info.value.message
        assert "got 91" in exc_info.value.message
        assert count_rows(db, QuestionSetRecord) == 0

    def test_every_invalid_question_is_reported(self, db, questions):
        questions[3]["options"] = ["A", "B", "C"]
        questions[40]["subject"] = "Biology"
        questions[70]["answer"] = 7

        with pytest.raises(ValidationError) as exc_info:
            ingest_question_set(db, {"filename": SET_FILENAME, "questions": questions})

        locs = [tuple(err["loc"][:2]) for err in exc_info.value.errors]
        assert ("questions", 3) in locs
        assert ("questions", 40) in locs
        assert ("questions", 70) in locs
        assert count_rows(db, QuestionSetRecord) == 0

    def test_duplicate_question_ids_rejected(self, db, questions):
        questions[89]["question_id"] = 1

        with pytest.raises(ValidationError):
            ingest_question_set(db, {"filename": SET_FILENAME, "questions": questions})
        assert count_rows(db, QuestionSetRecord) == 0

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"questions": []},
        {"filename": SET_FILENAME},
        {"filename": 2024, "questions": []},
    ])
    def test_malformed_payload_raises(self, db, payload):
        with pytest.raises(ValidationError):
            ingest_question_set(db, payload)

    def test_locked_store_raises_unavailable_and_writes_nothing(self, tmp_path, questions):
        db = make_db(tmp_path, timeout=0.2)

        with db.engine.connect() as holder:
            holder.begin()
            with pytest.raises(StoreUnavailable):
                ingest_question_set(db, {"filename": SET_FILENAME, "questions": questions})

        assert count_rows(db, QuestionSetRecord) == 0

    @pytest.mark.parametrize("answer", [True, "1"])
    def test_non_integer_answer_rejected(self, db, questions, answer):
        questions[10]["answer"] = answer

        with pytest.raises(ValidationError) as exc_info:
            ingest_question_set(db, {"filename": SET_FILENAME, "questions": questions})

        assert ("questions", 10, "answer") in [tuple(err["loc"][:3]) for err in exc_info.value.errors]
        assert count_rows(db, QuestionSetRecord) == 0

    def test_concurrent_ingestion_has_exactly_one_winner(self, db, questions):
        payload = {"filename": SET_FILENAME, "questions": questions}

        def attempt(_):
            try:
                ingest_question_set(db, payload)
                return "ok"
            except Conflict:
                return "conflict"

        with ThreadPoolExecutor(max_workers=8) as executor:
            outcomes = list(executor.map(attempt, range(8)))

        assert outcomes.count("ok") == 1
        assert outcomes.count("conflict") == 7
        assert count_rows(db, QuestionSetRecord) == 1


class TestImportDirectory:

    def test_imports_good_files_and_reports_bad_ones(self, db, tmp_path):
        (tmp_path / "2024_Jan_27_Shift_1.json").write_text(json.dumps(build_questions()))
        (tmp_path / "2024_Jan_27_Shift_2.json").write_text(json.dumps(build_questions(89)))
        (tmp_path / "2024_Jan_29_Shift_1.json").write_text("{not json")
        (tmp_path / "paper.json").write_text(json.dumps(build_questions()))
        (tmp_path / "README.txt").write_text("ignored")

        report = import_directory(db, str(tmp_path))

        assert [r.slot for r in report.imported] == ["Jan 27 Shift 1"]
        assert set(report.failed) == {
            "2024_Jan_27_Shift_2.json",
            "2024_Jan_29_Shift_1.json",
            "paper.json",
        }
        assert "exactly 90" in report.failed["2024_Jan_27_Shift_2.json"]
        assert report.failed["2024_Jan_29_Shift_1.json"].startswith("Invalid JSON")
        assert count_rows(db, QuestionSetRecord) == 1

    def test_existing_set_is_reported_as_failure(self, db, tmp_path, questions):
        ingest_question_set(db, {"filename": SET_FILENAME, "questions": questions})
        (tmp_path / "2024_Jan_27_Shift_1.json").write_text(json.dumps(questions))

        report = import_directory(db, str(tmp_path))

        assert report.imported == []
        assert "already exists" in report.failed["2024_Jan_27_Shift_1.json"]

    def test_unavailable_store_fails_one_file_and_continues(self, db, tmp_path, monkeypatch):
        (tmp_path / "2024_Jan_27_Shift_1.json").write_text(json.dumps(build_questions()))
        (tmp_path / "2024_Jan_27_Shift_2.json").write_text(json.dumps(build_questions()))
        real_ingest = ingestion_service.ingest_question_set

        def flaky_ingest(database, payload):
            if payload["filename"] == "2024_Jan_27_Shift_1.json":
                raise StoreUnavailable("Store did not respond, retry later")
            return real_ingest(database, payload)

        monkeypatch.setattr(ingestion_service, "ingest_question_set", flaky_ingest)

        report = import_directory(db, str(tmp_path))

        assert [r.slot for r in report.imported] == ["Jan 27 Shift 2"]
        assert report.failed == {"2024_Jan_27_Shift_1.json": "Store did not respond, retry later"}

    def test_unreadable_file_is_reported(self, db, tmp_path):
        (tmp_path / "2024_Jan_27_Shift_1.json").mkdir()
        (tmp_path / "2024_Jan_27_Shift_2.json").write_text(json.dumps(build_questions()))

        report = import_directory(db, str(tmp_path))

        assert [r.slot for r in report.imported] == ["Jan 27 Shift 2"]
        assert report.failed["2024_Jan_27_Shift_1.json"].startswith("Unreadable file")
