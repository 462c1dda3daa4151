"""Package a finished exam into an immutable history record."""

from __future__ import annotations

import time
from collections.abc import Sequence
from datetime import UTC, datetime
from uuid import uuid4

from .models import AnswerRecord, ExamAttempt, ExamMode, Question
from .scoring import Answers, compute_score, domain_scores, is_answer_correct, is_passing, round_half_up


def new_exam_id(now_ms: int | None = None) -> str:
    """Return a unique exam id of the form `exam-<epoch ms>-<suffix>`."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"exam-{stamp}-{uuid4().hex[:7]}"


def build_attempt(
    exam_id: str,
    mode: ExamMode,
    questions: Sequence[Question],
    answers: Answers,
    start_ms: int,
    end_ms: int,
    completed_at: datetime | None = None,
) -> ExamAttempt:
    """Score every question of the exam and return the attempt record.

    Unanswered questions are recorded with an empty selection, marked
    incorrect, and zero time spent. `questions_used` keeps the delivered
    order because later sampling reads it for anti-repetition.
    """
    if end_ms < start_ms:
        raise ValueError(f"Exam end time {end_ms} precedes start time {start_ms}.")

    records: list[AnswerRecord] = []
    correct_count = 0
    for question in questions:
        answer = answers.get(question.id)
        correct = is_answer_correct(question, answer)
        if correct:
            correct_count += 1
        records.append(
            AnswerRecord(
                question_id=question.id,
                selected=tuple(answer.selected) if answer is not None else (),
                correct=correct,
                time_spent=answer.time_spent if answer is not None else 0,
            )
        )

    score = compute_score(questions, answers)
    stamp = completed_at if completed_at is not None else datetime.now(UTC)
    return ExamAttempt(
        id=exam_id,
        date=stamp.isoformat(),
        mode=mode,
        score=score,
        passed=is_passing(score),
        duration=round_half_up((end_ms - start_ms) / 1000),
        total_questions=len(questions),
        correct_answers=correct_count,
        answers=tuple(records),
        domain_scores=domain_scores(questions, answers),
        questions_used=tuple(question.id for question in questions),
    )
