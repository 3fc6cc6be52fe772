import pytest
from sqlalchemy import func, select

from jee_mains_cbt.db.database import Database
from jee_mains_cbt.db.records import AttemptRecord
from jee_mains_cbt.models.attempt_model import Attempt
from jee_mains_cbt.models.question_model import QuestionSetKey
from jee_mains_cbt.services.attempt_service import AttemptManager
from jee_mains_cbt.services.ingestion_service import ingest_question_set
from jee_mains_cbt.services.question_set_service import get_question_set

# 30 questions per subject, in paper order
SUBJECT_ANSWERS = [("Mathematics", 2), ("Physics", 1), ("Chemistry", 0)]

SET_FILENAME = "2024_Jan_27_Shift_1"
SET_KEY = QuestionSetKey(year=2024, slot="Jan 27 Shift 1")


def build_questions(count: int = 90) -> list:
    questions = []
    for i in range(count):
        subject, answer = SUBJECT_ANSWERS[min(i // 30, 2)]
        questions.append({
            "question_id": i + 1,
            "type": "MCQ",
            "options": ["A", "B", "C", "D"],
            "answer": answer,
            "subject": subject,
            "image": f"https://cdn.example.com/2024/q{i + 1}.png",
        })
    return questions


def build_responses(correct: int, wrong: int, questions=None) -> list:
    """First `correct` answered right, next `wrong` answered wrong, rest left blank."""
    questions = questions or build_questions()
    responses = []
    for i, q in enumerate(questions):
        if i < correct:
            answer = q["answer"]
        elif i < correct + wrong:
            answer = (q["answer"] + 1) % 4
        else:
            answer = None
        responses.append({"question_id": q["question_id"], "answer": answer})
    return responses


def count_rows(db: Database, record) -> int:
    with db.session() as session:
        return session.scalar(select(func.count()).select_from(record))


def stored_attempt(db: Database, attempt_id: str) -> Attempt:
    with db.session() as session:
        return Attempt.model_validate(session.get(AttemptRecord, attempt_id), from_attributes=True)


def make_db(tmp_path, timeout: float = 5.0) -> Database:
    db = Database(f"sqlite:///{tmp_path / 'cbt.db'}", timeout=timeout)
    db.create_all()
    return db


@pytest.fixture
def questions():
    return build_questions()


@pytest.fixture
def db(tmp_path):
    database = make_db(tmp_path)
    yield database
    database.dispose()


@pytest.fixture
def question_set(db, questions):
    ingest_question_set(db, {"filename": SET_FILENAME, "questions": questions})
    return get_question_set(db, SET_KEY)


@pytest.fixture
def manager(db, question_set):
    return AttemptManager(db)
