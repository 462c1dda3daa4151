"""State of one exam while it is being taken."""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from typing import Literal

from .attempts import build_attempt, new_exam_id
from .models import ExamAttempt, ExamConfig, Question, QuestionAnswer
from .scoring import is_answer_correct

ExamPhase = Literal["in-progress", "finished"]


def now_ms() -> int:
    return int(time.time() * 1000)


class ExamSession:
    """Answers, review marks, and navigation for a single in-progress exam."""

    def __init__(
        self,
        config: ExamConfig,
        questions: Sequence[Question],
        exam_id: str | None = None,
        start_ms: int | None = None,
    ) -> None:
        self.start_ms = start_ms if start_ms is not None else now_ms()
        self.id = exam_id if exam_id is not None else new_exam_id(self.start_ms)
        self.config = config
        self.questions: tuple[Question, ...] = tuple(questions)
        self.answers: dict[str, QuestionAnswer] = {}
        self.marked_for_review: list[str] = []
        self.current_index = 0
        self.end_ms: int | None = None
        self.phase: ExamPhase = "in-progress"
        self._by_id = {question.id: question for question in self.questions}

    @property
    def current_question(self) -> Question | None:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    def question(self, question_id: str) -> Question:
        try:
            return self._by_id[question_id]
        except KeyError:
            raise KeyError(f"Question {question_id} is not part of exam {self.id}") from None

    def answer(self, question_id: str, selected: Iterable[str], at_ms: int | None = None) -> QuestionAnswer:
        """Record the selected options for one question.

        Time spent is fixed on the first answer as seconds since exam start.
        """
        self._require_in_progress()
        question = self.question(question_id)
        chosen: list[str] = []
        for option_id in selected:
            normalized = option_id.strip().upper()
            if normalized not in question.option_ids:
                raise ValueError(f"Option {option_id!r} is not valid for question {question_id}.")
            if normalized not in chosen:
                chosen.append(normalized)
        previous = self.answers.get(question_id)
        if previous is not None:
            time_spent = previous.time_spent
        else:
            moment = at_ms if at_ms is not None else now_ms()
            time_spent = max(0, (moment - self.start_ms) // 1000)
        recorded = QuestionAnswer(question_id=question_id, selected=chosen, time_spent=time_spent)
        self.answers[question_id] = recorded
        return recorded

    def clear_answer(self, question_id: str) -> None:
        self._require_in_progress()
        self.answers.pop(question_id, None)

    def check(self, question_id: str) -> bool:
        """Grade one question immediately (practice feedback)."""
        return is_answer_correct(self.question(question_id), self.answers.get(question_id))

    def toggle_mark(self, question_id: str) -> bool:
        """Flip the review mark on a question; return the new state."""
        self.question(question_id)
        if question_id in self.marked_for_review:
            self.marked_for_review.remove(question_id)
            return False
        self.marked_for_review.append(question_id)
        return True

    def is_marked(self, question_id: str) -> bool:
        return question_id in self.marked_for_review

    def go_to(self, index: int) -> bool:
        if 0 <= index < len(self.questions):
            self.current_index = index
            return True
        return False

    def next(self) -> bool:
        return self.go_to(self.current_index + 1)

    def previous(self) -> bool:
        return self.go_to(self.current_index - 1)

    def answered_count(self) -> int:
        return len(self.answers)

    def marked_count(self) -> int:
        return len(self.marked_for_review)

    def unanswered_ids(self) -> list[str]:
        return [question.id for question in self.questions if question.id not in self.answers]

    def time_remaining(self, at_ms: int | None = None) -> int | None:
        """Seconds left on the clock (negative in overtime), or None when untimed."""
        if not self.config.timed:
            return None
        moment = self.end_ms if self.end_ms is not None else (at_ms if at_ms is not None else now_ms())
        elapsed = (moment - self.start_ms) // 1000
        return self.config.duration_minutes * 60 - elapsed

    def is_expired(self, at_ms: int | None = None) -> bool:
        """True when a timed exam without overtime has run out of time."""
        remaining = self.time_remaining(at_ms)
        return remaining is not None and remaining <= 0 and not self.config.allow_overtime

    def finish(self, at_ms: int | None = None) -> ExamAttempt:
        """Close the exam and return its scored attempt."""
        self._require_in_progress()
        end_ms = at_ms if at_ms is not None else now_ms()
        attempt = build_attempt(self.id, self.config.mode, self.questions, self.answers, self.start_ms, end_ms)
        self.end_ms = end_ms
        self.phase = "finished"
        return attempt

    def _require_in_progress(self) -> None:
        if self.phase != "in-progress":
            raise RuntimeError(f"Exam {self.id} is already finished.")
