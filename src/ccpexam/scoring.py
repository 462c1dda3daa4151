"""Weighted scoring on the 100-1000 scale.

Each question is weighted by its domain's exam-board weight times a
difficulty multiplier. The weighted fraction answered correctly maps
linearly onto the scaled range:

    score = round(100 + weighted_correct / weighted_total * 900)

The real exam uses an undisclosed non-linear scale; the linear form is kept
so stored attempts stay comparable.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence

from .models import DOMAIN_KEYS, Difficulty, DomainKey, DomainScore, DomainScores, Question, QuestionAnswer
from .question_bank import domain_info

DIFFICULTY_MULTIPLIERS: dict[Difficulty, float] = {
    "easy": 0.8,
    "medium": 1.0,
    "hard": 1.2,
}

MIN_SCORE = 100
MAX_SCORE = 1000
PASSING_SCORE = 700
PASSING_RATIO = 0.70

Answers = Mapping[str, QuestionAnswer]


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up."""
    return math.floor(value + 0.5)


def is_answer_correct(question: Question, answer: QuestionAnswer | None) -> bool:
    """Return whether an answer exactly matches the correct option set."""
    if answer is None:
        return False
    # No partial credit: the selection must equal the correct set.
    return set(answer.selected) == set(question.correct)


def question_weight(question: Question) -> float:
    return domain_info(question.domain).weight * DIFFICULTY_MULTIPLIERS[question.difficulty]


def domain_scores(questions: Sequence[Question], answers: Answers) -> DomainScores:
    """Tally correct/total per domain over every question of the exam."""
    stats: dict[DomainKey, list[int]] = {key: [0, 0] for key in DOMAIN_KEYS}
    for question in questions:
        tally = stats[question.domain]
        tally[1] += 1
        if is_answer_correct(question, answers.get(question.id)):
            tally[0] += 1

    def build(correct: int, total: int) -> DomainScore:
        percentage = round_half_up(correct / total * 100) if total > 0 else 0
        return DomainScore(correct=correct, total=total, percentage=percentage)

    return DomainScores(**{key: build(*stats[key]) for key in DOMAIN_KEYS})


def compute_score(questions: Sequence[Question], answers: Answers) -> int:
    """Return the scaled score in [MIN_SCORE, MAX_SCORE]; an empty exam scores the floor."""
    if not questions:
        return MIN_SCORE

    weighted_correct = 0.0
    weighted_total = 0.0
    for question in questions:
        weight = question_weight(question)
        weighted_total += weight
        if is_answer_correct(question, answers.get(question.id)):
            weighted_correct += weight

    raw_percentage = weighted_correct / weighted_total if weighted_total > 0 else 0.0
    score = MIN_SCORE + round_half_up(raw_percentage * (MAX_SCORE - MIN_SCORE))
    return max(MIN_SCORE, min(MAX_SCORE, score))


def is_passing(score: int) -> bool:
    return score >= PASSING_SCORE


def score_label(score: int) -> str:
    """Short descriptive band for a scaled score."""
    if score >= 900:
        return "Exceptional"
    if score >= 800:
        return "Excellent"
    if score >= PASSING_SCORE:
        return "Passed"
    if score >= 600:
        return "Close"
    if score >= 500:
        return "Needs Improvement"
    return "Keep Studying"


def questions_to_pass(current_correct: int, total_questions: int) -> int:
    """Approximate further correct answers needed to reach a passing share."""
    required = math.ceil(total_questions * PASSING_RATIO)
    return max(0, required - current_correct)
