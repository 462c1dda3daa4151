"""Load and normalize the question catalog from bundled JSON resources."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, cast

from .models import DOMAIN_KEYS, Difficulty, DomainKey, Question, QuestionOption, QuestionType

CONTENT_PACKAGE = "ccpexam.content.questions"
OPTION_LETTERS = ("A", "B", "C", "D", "E")
DIFFICULTIES: tuple[Difficulty, ...] = ("easy", "medium", "hard")

logger = logging.getLogger(__name__)


class QuestionLoadError(ValueError):
    """Raised when a catalog record cannot be admitted into the pool."""


@dataclass(frozen=True)
class DomainInfo:
    """Exam-board metadata for one content domain."""

    key: DomainKey
    id: str
    name: str
    short_name: str
    weight: float


DOMAINS: tuple[DomainInfo, ...] = (
    DomainInfo("domain1", "domain1-cloud-concepts", "Cloud Concepts", "Cloud", 0.24),
    DomainInfo("domain2", "domain2-security", "Security and Compliance", "Security", 0.30),
    DomainInfo("domain3", "domain3-technology", "Cloud Technology and Services", "Technology", 0.34),
    DomainInfo("domain4", "domain4-billing", "Billing, Pricing, and Support", "Billing", 0.12),
)

_INFO_BY_KEY: dict[str, DomainInfo] = {info.key: info for info in DOMAINS}
_KEY_BY_ID: dict[str, DomainKey] = {info.id: info.key for info in DOMAINS}


def domain_key(value: str) -> DomainKey:
    """Return the domain key for a domain id or key."""
    if value in _INFO_BY_KEY:
        return _INFO_BY_KEY[value].key
    if value in _KEY_BY_ID:
        return _KEY_BY_ID[value]
    raise ValueError(f"Unknown domain: {value!r}")


def domain_id(key: str) -> str:
    """Return the catalog domain id for a domain key."""
    return domain_info(key).id


def domain_info(key: str) -> DomainInfo:
    """Return metadata for one domain key."""
    try:
        return _INFO_BY_KEY[key]
    except KeyError:
        raise ValueError(f"Unknown domain key: {key!r}") from None


class QuestionBank:
    """Read-only catalog of questions keyed by id and grouped by domain."""

    def __init__(self, questions: Iterable[Question]) -> None:
        self._questions: list[Question] = []
        self._by_id: dict[str, Question] = {}
        self._by_domain: dict[DomainKey, list[Question]] = {key: [] for key in DOMAIN_KEYS}
        for question in questions:
            if question.id in self._by_id:
                raise QuestionLoadError(f"Duplicate question id: {question.id}")
            self._questions.append(question)
            self._by_id[question.id] = question
            self._by_domain[question.domain].append(question)

    def __len__(self) -> int:
        return len(self._questions)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._by_id

    def load_all(self) -> list[Question]:
        """Return every question in catalog order."""
        return list(self._questions)

    def by_domain(self, domain: str) -> list[Question]:
        """Return questions of one domain (key or id)."""
        return list(self._by_domain[domain_key(domain)])

    def in_domains(self, domains: Iterable[str]) -> list[Question]:
        """Return questions whose domain is in `domains`, in catalog order."""
        wanted = {domain_key(item) for item in domains}
        return [question for question in self._questions if question.domain in wanted]

    def counts(self) -> dict[DomainKey, int]:
        """Return question count per domain key."""
        return {key: len(items) for key, items in self._by_domain.items()}

    def get(self, question_id: str) -> Question | None:
        return self._by_id.get(question_id)

    def domain_of(self, question_id: str) -> DomainKey | None:
        """Return the domain key of a question id, or None if not in the catalog."""
        question = self._by_id.get(question_id)
        return question.domain if question is not None else None


def question_from_dict(raw: dict[str, Any]) -> Question:
    """Build a question from one raw catalog record, applying defaults once."""
    question_id = str(raw.get("id") or "").strip()
    if not question_id:
        raise QuestionLoadError("Question record is missing required field 'id'.")
    prompt = str(raw.get("question") or "").strip()
    if not prompt:
        raise QuestionLoadError(f"Question '{question_id}' is missing required field 'question'.")

    try:
        domain = domain_key(str(raw.get("domain", "")))
    except ValueError as exc:
        raise QuestionLoadError(f"Question '{question_id}': {exc}") from None

    difficulty_raw = str(raw.get("difficulty", "")).strip().lower()
    difficulty = cast(Difficulty, difficulty_raw) if difficulty_raw in DIFFICULTIES else "medium"
    question_type: QuestionType = "multiple-choice" if raw.get("type") == "multiple-choice" else "single-choice"

    options: list[QuestionOption] = []
    for item in raw.get("options") or []:
        if not isinstance(item, dict):
            raise QuestionLoadError(f"Question '{question_id}' has a malformed option entry.")
        option_id = str(item.get("id", "")).strip().upper()
        if option_id not in OPTION_LETTERS:
            raise QuestionLoadError(f"Question '{question_id}' has invalid option id {option_id!r}.")
        if any(option.id == option_id for option in options):
            raise QuestionLoadError(f"Question '{question_id}' has duplicate option id {option_id!r}.")
        options.append(QuestionOption(id=option_id, text=str(item.get("text", ""))))

    correct = tuple(str(value).strip().upper() for value in raw.get("correct") or [])
    if not correct:
        raise QuestionLoadError(f"Question '{question_id}' has no correct options.")
    option_ids = {option.id for option in options}
    unknown = [value for value in correct if value not in option_ids]
    if unknown:
        raise QuestionLoadError(f"Question '{question_id}' marks unknown options as correct: {', '.join(unknown)}")
    if len(set(correct)) != len(correct):
        raise QuestionLoadError(f"Question '{question_id}' lists a correct option twice.")
    if question_type == "single-choice" and len(correct) != 1:
        raise QuestionLoadError(f"Single-choice question '{question_id}' must have exactly one correct option.")

    diagram_raw = raw.get("diagram")
    diagram = str(diagram_raw.get("code", "")) if isinstance(diagram_raw, dict) else None
    table_raw = raw.get("table")
    table = None
    if isinstance(table_raw, dict):
        header = tuple(str(cell) for cell in table_raw.get("headers", []))
        rows = [tuple(str(cell) for cell in row) for row in table_raw.get("rows", [])]
        table = (header, *rows)

    course_reference = raw.get("maarek_reference") or raw.get("course_reference")
    return Question(
        id=question_id,
        domain=domain,
        subdomain=str(raw.get("subdomain") or ""),
        difficulty=difficulty,
        type=question_type,
        prompt=prompt,
        options=tuple(options),
        correct=correct,
        explanation=str(raw.get("explanation") or ""),
        references=tuple(str(item) for item in raw.get("references") or []),
        tags=tuple(str(item) for item in raw.get("tags") or []),
        diagram=diagram,
        table=table,
        course_reference=str(course_reference) if course_reference else None,
    )


def _records_from_json(text: str, source: str) -> list[dict[str, Any]]:
    """Return raw records from a catalog file (list, or object with `questions`)."""
    try:
        raw: object = json.loads(text)
    except json.JSONDecodeError as exc:
        raise QuestionLoadError(f"Catalog file {source} is not valid JSON: {exc}") from exc
    if isinstance(raw, dict):
        raw = cast(dict[str, object], raw).get("questions", [])
    if not isinstance(raw, list):
        raise QuestionLoadError(f"Catalog file {source} must contain a list of questions.")
    records = cast(list[object], raw)
    for record in records:
        if not isinstance(record, dict):
            raise QuestionLoadError(f"Catalog file {source} contains a non-object record.")
    return cast(list[dict[str, Any]], records)


def load_questions() -> QuestionBank:
    """Load the bundled catalog."""
    questions: list[Question] = []
    entries = sorted(resources.files(CONTENT_PACKAGE).iterdir(), key=lambda entry: entry.name)
    for entry in entries:
        if entry.name.endswith(".json"):
            records = _records_from_json(entry.read_text(encoding="utf-8-sig"), entry.name)
            questions.extend(question_from_dict(record) for record in records)
    bank = QuestionBank(questions)
    logger.debug("Loaded %d bundled questions", len(bank))
    return bank


def load_questions_from_dir(path: Path) -> QuestionBank:
    """Load a catalog from a directory of JSON files for tests/tools."""
    questions: list[Question] = []
    for file_path in sorted(path.glob("*.json")):
        records = _records_from_json(file_path.read_text(encoding="utf-8-sig"), file_path.name)
        questions.extend(question_from_dict(record) for record in records)
    bank = QuestionBank(questions)
    logger.info("Loaded %d questions from %s", len(bank), path)
    return bank
