from __future__ import annotations

import shutil
import sys
from collections.abc import Callable, Iterator
from pathlib import Path
from uuid import uuid4

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ccpexam.models import DOMAIN_KEYS, Question, QuestionOption  # noqa: E402
from ccpexam.question_bank import QuestionBank  # noqa: E402


def _tmp_path_fixture() -> Iterator[Path]:
    """Provide per-test temporary directory path inside the workspace.

    This intentionally overrides pytest's builtin ``tmp_path`` fixture for this
    repository. In this environment, system temp locations and builtin tmp-path
    setup are not reliable, so tests keep temporary files under the project
    working directory at ``.tmp_pytest/``.
    """
    base = ROOT / ".tmp_pytest"
    base.mkdir(parents=True, exist_ok=True)
    path = base / str(uuid4())
    path.mkdir(parents=True, exist_ok=False)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        try:
            next(base.iterdir())
        except StopIteration:
            base.rmdir()
        except FileNotFoundError:
            pass


tmp_path = pytest.fixture(name="tmp_path")(_tmp_path_fixture)


def _question(
    question_id: str,
    domain: str = "domain1",
    *,
    difficulty: str = "medium",
    correct: tuple[str, ...] = ("A",),
    question_type: str | None = None,
    explanation: str = "",
) -> Question:
    return Question(
        id=question_id,
        domain=domain,  # type: ignore[arg-type]
        subdomain="general",
        difficulty=difficulty,  # type: ignore[arg-type]
        type=question_type or ("multiple-choice" if len(correct) > 1 else "single-choice"),  # type: ignore[arg-type]
        prompt=f"Prompt for {question_id}",
        options=tuple(QuestionOption(id=letter, text=f"Option {letter}") for letter in ("A", "B", "C", "D", "E")),
        correct=correct,
        explanation=explanation,
    )


def _bank(per_domain: int | dict[str, int] = 10) -> QuestionBank:
    counts = per_domain if isinstance(per_domain, dict) else {key: per_domain for key in DOMAIN_KEYS}
    questions = [
        _question(f"{key}-q{index:02d}", key)
        for key in DOMAIN_KEYS
        for index in range(counts.get(key, 0))
    ]
    return QuestionBank(questions)


@pytest.fixture
def make_question() -> Callable[..., Question]:
    """Factory for single questions with five options and `A` correct by default."""
    return _question


@pytest.fixture
def make_bank() -> Callable[..., QuestionBank]:
    """Factory for synthetic catalogs with `<domain>-qNN` ids."""
    return _bank
