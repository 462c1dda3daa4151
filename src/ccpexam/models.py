"""Core records for exam generation, scoring, and attempt history."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Literal

DomainKey = Literal["domain1", "domain2", "domain3", "domain4"]
Difficulty = Literal["easy", "medium", "hard"]
QuestionType = Literal["single-choice", "multiple-choice"]
ExamMode = Literal["official", "practice", "quick", "wrong-answers"]
SortBy = Literal["recent", "frequent"]

DOMAIN_KEYS: tuple[DomainKey, ...] = ("domain1", "domain2", "domain3", "domain4")
EXAM_MODES: tuple[ExamMode, ...] = ("official", "practice", "quick", "wrong-answers")


@dataclass(frozen=True)
class QuestionOption:
    """One lettered answer option."""

    id: str
    text: str


@dataclass(frozen=True)
class Question:
    """Immutable catalog entry."""

    id: str
    domain: DomainKey
    subdomain: str
    difficulty: Difficulty
    type: QuestionType
    prompt: str
    options: tuple[QuestionOption, ...]
    correct: tuple[str, ...]
    explanation: str = ""
    references: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    diagram: str | None = None
    table: tuple[tuple[str, ...], ...] | None = None
    course_reference: str | None = None

    @property
    def option_ids(self) -> tuple[str, ...]:
        return tuple(option.id for option in self.options)


@dataclass(frozen=True)
class DomainDistribution:
    """Target question count per domain."""

    domain1: int = 0
    domain2: int = 0
    domain3: int = 0
    domain4: int = 0

    def __post_init__(self) -> None:
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"Distribution count for {item.name} must be a non-negative integer, got {value!r}.")

    @classmethod
    def from_mapping(cls, counts: Mapping[str, int]) -> DomainDistribution:
        unknown = set(counts) - set(DOMAIN_KEYS)
        if unknown:
            raise ValueError(f"Unknown domain keys in distribution: {', '.join(sorted(unknown))}")
        return cls(**{key: counts.get(key, 0) for key in DOMAIN_KEYS})

    def get(self, domain: DomainKey) -> int:
        return int(getattr(self, domain))

    def items(self) -> Iterator[tuple[DomainKey, int]]:
        for key in DOMAIN_KEYS:
            yield key, self.get(key)

    def total(self) -> int:
        return sum(count for _, count in self.items())

    def restricted_to(self, domains: set[str] | frozenset[str]) -> DomainDistribution:
        """Return a copy with every domain outside `domains` set to zero."""
        return DomainDistribution.from_mapping({key: count if key in domains else 0 for key, count in self.items()})

    def as_dict(self) -> dict[str, int]:
        return dict(self.items())


@dataclass(frozen=True)
class ExamConfig:
    """Shape of one exam instance, fixed at exam start."""

    mode: ExamMode
    duration_minutes: int
    total_questions: int
    distribution: DomainDistribution
    allow_overtime: bool
    show_timer: bool

    @property
    def timed(self) -> bool:
        return self.duration_minutes > 0

    def with_total(self, total_questions: int) -> ExamConfig:
        """Return a copy reporting the number of questions actually delivered."""
        return replace(self, total_questions=total_questions)


OFFICIAL_EXAM_CONFIG = ExamConfig(
    mode="official",
    duration_minutes=90,
    total_questions=65,
    distribution=DomainDistribution(domain1=16, domain2=19, domain3=22, domain4=8),
    allow_overtime=False,
    show_timer=True,
)

PRACTICE_EXAM_CONFIG = ExamConfig(
    mode="practice",
    duration_minutes=0,
    total_questions=60,
    distribution=DomainDistribution(domain1=15, domain2=18, domain3=21, domain4=6),
    allow_overtime=True,
    show_timer=False,
)

QUICK_EXAM_CONFIG = ExamConfig(
    mode="quick",
    duration_minutes=30,
    total_questions=20,
    distribution=DomainDistribution(domain1=5, domain2=6, domain3=7, domain4=2),
    allow_overtime=True,
    show_timer=True,
)

WRONG_ANSWERS_EXAM_CONFIG = ExamConfig(
    mode="wrong-answers",
    duration_minutes=0,
    total_questions=0,
    distribution=DomainDistribution(),
    allow_overtime=True,
    show_timer=False,
)


@dataclass
class QuestionAnswer:
    """Live response to one question during an exam."""

    question_id: str
    selected: list[str] = field(default_factory=list)
    time_spent: int = 0


@dataclass(frozen=True)
class DomainScore:
    """Correct/total tally for one domain."""

    correct: int
    total: int
    percentage: int


@dataclass(frozen=True)
class DomainScores:
    """Per-domain breakdown of one completed answer set."""

    domain1: DomainScore
    domain2: DomainScore
    domain3: DomainScore
    domain4: DomainScore

    def get(self, domain: DomainKey) -> DomainScore:
        return getattr(self, domain)

    def items(self) -> Iterator[tuple[DomainKey, DomainScore]]:
        for key in DOMAIN_KEYS:
            yield key, self.get(key)


@dataclass(frozen=True)
class AnswerRecord:
    """Final result for one question of an attempt."""

    question_id: str
    selected: tuple[str, ...]
    correct: bool
    time_spent: int


@dataclass(frozen=True)
class ExamAttempt:
    """Completed, scored exam kept in history."""

    id: str
    date: str
    mode: ExamMode
    score: int
    passed: bool
    duration: int
    total_questions: int
    correct_answers: int
    answers: tuple[AnswerRecord, ...]
    domain_scores: DomainScores
    questions_used: tuple[str, ...]
