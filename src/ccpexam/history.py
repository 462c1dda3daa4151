"""Attempt history and the analytics derived from it."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from .models import DOMAIN_KEYS, DomainKey, ExamAttempt, ExamMode, SortBy
from .question_bank import domain_key
from .scoring import round_half_up

DomainLookup = Callable[[str], DomainKey | None]

RECENT_ATTEMPT_WINDOW = 3
WEAK_DOMAIN_THRESHOLD = 70.0

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MissedQuestion:
    """Miss count for one question across history."""

    question_id: str
    count: int
    domain: DomainKey | None


@dataclass(frozen=True)
class ScorePoint:
    """One attempt on the score trend line."""

    attempt_id: str
    date: str
    mode: ExamMode
    score: int
    passed: bool


@dataclass(frozen=True)
class HistoryStats:
    """Dashboard summary over every attempt."""

    total_exams: int
    pass_rate: int
    average_score: int
    best_score: int
    average_duration: int
    domain_averages: dict[DomainKey, float]


@dataclass(frozen=True)
class _MissTally:
    counts: dict[str, int]
    last_missed: dict[str, int]


def _unknown_domain(question_id: str) -> DomainKey | None:
    return None


def _attempt_time(attempt: ExamAttempt) -> datetime:
    try:
        parsed = datetime.fromisoformat(attempt.date)
    except ValueError:
        return datetime.min.replace(tzinfo=UTC)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class AttemptHistory:
    """Ordered collection of attempts, oldest first.

    Analytics are recomputed from the attempt list; the shared miss tally is
    cached and dropped on every mutation.
    """

    def __init__(self, attempts: Iterable[ExamAttempt] = (), domain_of: DomainLookup | None = None) -> None:
        self._attempts: list[ExamAttempt] = list(attempts)
        self._domain_of = domain_of if domain_of is not None else _unknown_domain
        self._tally: _MissTally | None = None

    def __len__(self) -> int:
        return len(self._attempts)

    @property
    def attempts(self) -> list[ExamAttempt]:
        return list(self._attempts)

    def get(self, attempt_id: str) -> ExamAttempt | None:
        for attempt in self._attempts:
            if attempt.id == attempt_id:
                return attempt
        return None

    def add_attempt(self, attempt: ExamAttempt) -> None:
        """Append one attempt."""
        if self.get(attempt.id) is not None:
            raise ValueError(f"Attempt {attempt.id} is already in history.")
        self._attempts.append(attempt)
        self._tally = None
        logger.debug("Added attempt %s (score %d)", attempt.id, attempt.score)

    def delete_attempt(self, attempt_id: str) -> bool:
        """Remove one attempt by id; return whether it existed."""
        before = len(self._attempts)
        self._attempts = [attempt for attempt in self._attempts if attempt.id != attempt_id]
        self._tally = None
        return len(self._attempts) < before

    def clear_history(self) -> None:
        self._attempts = []
        self._tally = None

    def recent_attempts(self, count: int) -> list[ExamAttempt]:
        """Return up to `count` attempts, newest date first."""
        ordered = sorted(self._attempts, key=_attempt_time, reverse=True)
        return ordered[: max(0, count)]

    def recent_question_ids(self, count: int = RECENT_ATTEMPT_WINDOW) -> list[str]:
        """Return the deduplicated ids used by the `count` most recent attempts."""
        seen: dict[str, None] = {}
        for attempt in self.recent_attempts(count):
            for question_id in attempt.questions_used:
                seen.setdefault(question_id, None)
        return list(seen)

    def wrong_question_ids(self) -> list[str]:
        """Return every id answered incorrectly at least once, in first-miss order."""
        return list(self._miss_tally().counts)

    def filtered_wrong_question_ids(self, domains: Iterable[str], sort_by: SortBy = "recent") -> list[str]:
        """Return missed ids within `domains`, most frequent or most recently missed first.

        Domains may be given as keys or ids; unknown ones raise ValueError.
        Ties keep first-miss order. Ids whose domain cannot be resolved are left out.
        """
        if sort_by not in ("recent", "frequent"):
            raise ValueError(f"Unknown sort order: {sort_by!r}")
        allowed = {domain_key(item) for item in domains}
        tally = self._miss_tally()
        ids = [question_id for question_id in tally.counts if self._domain_of(question_id) in allowed]
        if sort_by == "frequent":
            ids.sort(key=lambda question_id: tally.counts[question_id], reverse=True)
        else:
            ids.sort(key=lambda question_id: tally.last_missed[question_id], reverse=True)
        return ids

    def top_missed_questions(self, limit: int = 10) -> list[MissedQuestion]:
        """Return the most-missed questions tagged with their domain."""
        counts = self._miss_tally().counts
        items = [
            MissedQuestion(question_id=question_id, count=count, domain=self._domain_of(question_id))
            for question_id, count in counts.items()
        ]
        items.sort(key=lambda item: item.count, reverse=True)
        return items[: max(0, limit)]

    def missed_questions_by_domain(self, domain: DomainKey) -> list[MissedQuestion]:
        """Return all missed questions of one domain, most-missed first."""
        counts = self._miss_tally().counts
        items = [
            MissedQuestion(question_id=question_id, count=count, domain=domain)
            for question_id, count in counts.items()
            if self._domain_of(question_id) == domain
        ]
        items.sort(key=lambda item: item.count, reverse=True)
        return items

    def domain_averages(self) -> dict[DomainKey, float]:
        """Mean domain percentage over the attempts that contained that domain."""
        sums = {key: 0 for key in DOMAIN_KEYS}
        counts = {key: 0 for key in DOMAIN_KEYS}
        for attempt in self._attempts:
            for key, score in attempt.domain_scores.items():
                if score.total == 0:
                    continue
                sums[key] += score.percentage
                counts[key] += 1
        return {key: (sums[key] / counts[key] if counts[key] else 0.0) for key in DOMAIN_KEYS}

    def weak_domains(self, threshold: float = WEAK_DOMAIN_THRESHOLD) -> list[DomainKey]:
        """Return attempted domains averaging below `threshold`, weakest first."""
        averages = self.domain_averages()
        weak = [(key, value) for key, value in averages.items() if 0 < value < threshold]
        weak.sort(key=lambda pair: pair[1])
        return [key for key, _ in weak]

    def stats(self) -> HistoryStats:
        """Return the dashboard summary."""
        if not self._attempts:
            return HistoryStats(
                total_exams=0,
                pass_rate=0,
                average_score=0,
                best_score=0,
                average_duration=0,
                domain_averages={key: 0.0 for key in DOMAIN_KEYS},
            )
        total = len(self._attempts)
        passed = len([attempt for attempt in self._attempts if attempt.passed])
        return HistoryStats(
            total_exams=total,
            pass_rate=round_half_up(passed / total * 100),
            average_score=round_half_up(sum(attempt.score for attempt in self._attempts) / total),
            best_score=max(attempt.score for attempt in self._attempts),
            average_duration=round_half_up(sum(attempt.duration for attempt in self._attempts) / total),
            domain_averages=self.domain_averages(),
        )

    def score_trend(self) -> list[ScorePoint]:
        """Return scores in chronological order."""
        ordered = sorted(self._attempts, key=_attempt_time)
        return [
            ScorePoint(
                attempt_id=attempt.id,
                date=attempt.date,
                mode=attempt.mode,
                score=attempt.score,
                passed=attempt.passed,
            )
            for attempt in ordered
        ]

    def _miss_tally(self) -> _MissTally:
        if self._tally is None:
            counts: dict[str, int] = {}
            last_missed: dict[str, int] = {}
            for index, attempt in enumerate(self._attempts):
                for answer in attempt.answers:
                    if answer.correct:
                        continue
                    counts[answer.question_id] = counts.get(answer.question_id, 0) + 1
                    last_missed[answer.question_id] = index
            self._tally = _MissTally(counts=counts, last_missed=last_missed)
        return self._tally
