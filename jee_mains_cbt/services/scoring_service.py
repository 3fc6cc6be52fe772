"""
services/scoring_service.py

JEE Main marking and result breakdown.
Pure Python functions: no I/O, no hidden state. Scoring the same
(responses, question set) pair always gives the same result.

Marking scheme:
  correct answer  +4
  wrong answer    -1
  unattempted      0
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from config import CORRECT_MARKS, INCORRECT_MARKS, UNANSWERED_MARKS
from jee_mains_cbt.models.attempt_model import QuestionResult, Response, ScoreResult
from jee_mains_cbt.models.question_model import (
    Question,
    QuestionSet,
    SubjectBoundary,
    derive_subject_boundaries,
)


def marks_for(answer: Optional[int], question: Question) -> int:
    """Marks awarded for one answer. Answers are compared as numbers."""
    if answer is None:
        return UNANSWERED_MARKS
    return CORRECT_MARKS if int(answer) == int(question.answer) else INCORRECT_MARKS


def answer_map(responses: Iterable[Response]) -> Dict[int, Optional[int]]:
    """{question_id: answer} for responses that name their question."""
    return {r.question_id: r.answer for r in responses if r.question_id is not None}


def score_responses(
    responses: Iterable[Response],
    question_set: QuestionSet,
    subject_boundaries: Optional[List[SubjectBoundary]] = None,
) -> ScoreResult:
    """
    Score an answer sheet against its question set.

    Questions are walked in the set's canonical order; a question with no
    matching response scores 0. The total is the plain integer sum of the
    per-question marks.

    Args:
        responses:          the candidate's answer sheet.
        question_set:       the paper holding the authoritative answers.
        subject_boundaries: passed through to the result unchanged. Derived
                            from the paper's subject order when omitted.
    """
    answers = answer_map(responses)

    per_question: List[QuestionResult] = []
    for q in question_set.questions:
        marks = marks_for(answers.get(q.question_id), q)
        per_question.append(
            QuestionResult(question_id=q.question_id, marks=marks, correct=marks == CORRECT_MARKS)
        )

    if subject_boundaries is None:
        subject_boundaries = derive_subject_boundaries(question_set.questions)

    return ScoreResult(
        total=sum(r.marks for r in per_question),
        per_question=per_question,
        subject_boundaries=subject_boundaries,
        total_questions=len(question_set.questions),
        max_possible=len(question_set.questions) * CORRECT_MARKS,
    )


def get_incorrect_questions(
    questions: List[Question],
    responses: Iterable[Response],
) -> List[Question]:
    """
    Questions answered wrongly (for the review sheet).

    Unattempted questions are not included, since they carry no penalty.
    Original order is kept.
    """
    answers = answer_map(responses)
    return [
        q for q in questions
        if answers.get(q.question_id) is not None
        and marks_for(answers[q.question_id], q) == INCORRECT_MARKS
    ]


def calculate_subject_scores(
    questions: List[Question],
    responses: Iterable[Response],
) -> List[Dict[str, object]]:
    """
    Per-subject breakdown.

    Returns:
        [{"subject": str, "total": int, "correct": int,
          "incorrect": int, "unanswered": int, "marks": int}, ...]
        in the order subjects first appear in the paper.
    """
    answers = answer_map(responses)
    buckets: Dict[str, Dict[str, int]] = defaultdict(
        lambda: {"total": 0, "correct": 0, "incorrect": 0, "unanswered": 0, "marks": 0}
    )

    for q in questions:
        b = buckets[q.subject.value]
        b["total"] += 1
        ans = answers.get(q.question_id)
        marks = marks_for(ans, q)
        b["marks"] += marks
        if ans is None:
            b["unanswered"] += 1
        elif marks == CORRECT_MARKS:
            b["correct"] += 1
        else:
            b["incorrect"] += 1

    return [{"subject": subj, **b} for subj, b in buckets.items()]
