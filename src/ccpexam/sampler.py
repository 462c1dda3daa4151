"""Weighted, anti-repetition question selection for one exam shape."""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from .models import DOMAIN_KEYS, DomainDistribution, DomainKey, Question
from .question_bank import QuestionBank, domain_info, domain_key
from .scoring import round_half_up

T = TypeVar("T")

WEAK_DOMAIN_BOOST_RATIO = 0.1

logger = logging.getLogger(__name__)


class EmptySelectionError(LookupError):
    """Raised when a selection request matches nothing at all."""


@dataclass(frozen=True)
class DomainShortfall:
    """A domain whose target could not be met from the pool."""

    domain: DomainKey
    requested: int
    delivered: int


@dataclass(frozen=True)
class Selection:
    """Ordered questions for one exam, with any degradation noted."""

    questions: tuple[Question, ...]
    requested: int
    shortfalls: tuple[DomainShortfall, ...] = ()

    @property
    def delivered(self) -> int:
        return len(self.questions)

    @property
    def short(self) -> bool:
        return self.delivered < self.requested

    @property
    def question_ids(self) -> list[str]:
        return [question.id for question in self.questions]


def shuffle(items: Iterable[T], rng: random.Random | None = None) -> list[T]:
    """Return a uniformly permuted copy (Fisher-Yates)."""
    source = rng if rng is not None else random
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = source.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def group_by_domain(questions: Iterable[Question]) -> dict[DomainKey, list[Question]]:
    """Group questions by domain key, preserving input order."""
    grouped: dict[DomainKey, list[Question]] = {key: [] for key in DOMAIN_KEYS}
    for question in questions:
        grouped[question.domain].append(question)
    return grouped


def select_exam_questions(
    pool: Iterable[Question],
    distribution: DomainDistribution,
    recent_ids: Iterable[str] = (),
    rng: random.Random | None = None,
) -> Selection:
    """Draw questions per domain target, preferring ids not used recently.

    Within each domain the fresh and recently used questions are shuffled
    separately and fresh ones are taken first. The combined result is
    shuffled once more so domain order is not predictable.
    """
    recent = set(recent_ids)
    grouped = group_by_domain(pool)
    selected: list[Question] = []
    shortfalls: list[DomainShortfall] = []

    for key, count in distribution.items():
        if count == 0:
            continue
        domain_questions = grouped[key]
        fresh = [question for question in domain_questions if question.id not in recent]
        used = [question for question in domain_questions if question.id in recent]
        available = shuffle(fresh, rng) + shuffle(used, rng)
        taken = available[:count]
        selected.extend(taken)
        if len(taken) < count:
            shortfalls.append(DomainShortfall(domain=key, requested=count, delivered=len(taken)))
            logger.warning("Domain %s: only %d/%d questions available", key, len(taken), count)

    return Selection(
        questions=tuple(shuffle(selected, rng)),
        requested=distribution.total(),
        shortfalls=tuple(shortfalls),
    )


def select_filtered_questions(
    pool: Iterable[Question],
    domains: Iterable[str],
    distribution: DomainDistribution,
    recent_ids: Iterable[str] = (),
    limit: int | None = None,
    rng: random.Random | None = None,
) -> Selection:
    """Apply the distribution to a pool restricted to `domains`, then truncate to `limit`."""
    allowed = frozenset(domain_key(item) for item in domains)
    restricted = distribution.restricted_to(allowed)
    scoped = [question for question in pool if question.domain in allowed]
    selection = select_exam_questions(scoped, restricted, recent_ids, rng)
    requested = restricted.total() if limit is None else min(limit, restricted.total())
    questions = selection.questions if limit is None else selection.questions[:limit]
    return Selection(questions=questions, requested=requested, shortfalls=selection.shortfalls)


def select_questions_by_ids(
    bank: QuestionBank,
    question_ids: Sequence[str],
    max_questions: int | None = None,
) -> Selection:
    """Map an ordered id list to questions without reordering.

    Ids missing from the catalog are dropped. The order is expected to come
    from history analytics already sorted by recency or frequency.
    """
    wanted = list(question_ids) if max_questions is None else list(question_ids)[:max_questions]
    questions: list[Question] = []
    for question_id in wanted:
        question = bank.get(question_id)
        if question is None:
            logger.warning("Question %s is not in the catalog; skipping", question_id)
            continue
        questions.append(question)
    return Selection(questions=tuple(questions), requested=len(wanted))


def proportional_distribution(total_questions: int) -> DomainDistribution:
    """Split a question total across domains by exam-board weight."""
    if total_questions < 0:
        raise ValueError("total_questions must be non-negative.")
    return DomainDistribution.from_mapping(
        {key: round_half_up(total_questions * domain_info(key).weight) for key in DOMAIN_KEYS}
    )


def weak_domain_distribution(weak_domains: Sequence[str], total_questions: int) -> DomainDistribution:
    """Even split across domains with extra share for weak ones, rescaled to the total."""
    if not weak_domains:
        return proportional_distribution(total_questions)
    base = total_questions // len(DOMAIN_KEYS)
    boost = math.floor(total_questions * WEAK_DOMAIN_BOOST_RATIO / len(weak_domains))
    counts = {key: base for key in DOMAIN_KEYS}
    for item in weak_domains:
        counts[domain_key(item)] += boost
    current = sum(counts.values())
    if current == 0:
        return DomainDistribution()
    scale = total_questions / current
    return DomainDistribution.from_mapping({key: round_half_up(count * scale) for key, count in counts.items()})