"""Application service tying the catalog, sampler, sessions, and history together."""

from __future__ import annotations

import json
import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal, cast

from . import __version__
from .history import RECENT_ATTEMPT_WINDOW, AttemptHistory
from .models import (
    DOMAIN_KEYS,
    OFFICIAL_EXAM_CONFIG,
    PRACTICE_EXAM_CONFIG,
    QUICK_EXAM_CONFIG,
    WRONG_ANSWERS_EXAM_CONFIG,
    ExamAttempt,
    ExamConfig,
    ExamMode,
    Question,
    SortBy,
)
from .question_bank import QuestionBank, load_questions
from .sampler import (
    DomainShortfall,
    EmptySelectionError,
    Selection,
    select_exam_questions,
    select_filtered_questions,
    select_questions_by_ids,
    weak_domain_distribution,
)
from .session import ExamSession
from .storage import SCHEMA_VERSION, AttemptStore, attempt_from_dict, attempt_to_dict

EXPORT_FORMAT_VERSION = 1
WRONG_ANSWERS_DEFAULT_LIMIT = 20

QuestionLimit = int | Literal["all"] | None

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExamPlan:
    """Exam shape and the questions drawn for it, before the clock starts."""

    config: ExamConfig
    questions: tuple[Question, ...]
    requested: int
    shortfalls: tuple[DomainShortfall, ...] = ()

    @property
    def short(self) -> bool:
        return len(self.questions) < self.requested


@dataclass(frozen=True)
class HistoryTransferSummary:
    """Summary emitted by history export/import operations."""

    attempts: int
    skipped: int = 0


class ExamService:
    """Coordinates question selection, exam sessions, and attempt history."""

    def __init__(
        self,
        db_path: Path | str,
        bank: QuestionBank | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Load the catalog and replay stored history."""
        self.bank = bank if bank is not None else load_questions()
        self.store = AttemptStore(db_path)
        self.history = AttemptHistory(self.store.load_attempts(), domain_of=self.bank.domain_of)
        self._rng = rng
        logger.info("Loaded %d questions and %d past attempts", len(self.bank), len(self.history))

    def plan_exam(
        self,
        mode: ExamMode,
        *,
        max_questions: QuestionLimit = None,
        domains: Iterable[str] | None = None,
        sort_by: SortBy = "recent",
        focus_weak: bool = False,
    ) -> ExamPlan:
        """Choose questions for one exam of the given mode.

        `domains` and `max_questions` apply to practice and wrong-answers
        modes; `focus_weak` only to practice and `sort_by` only to
        wrong-answers. Practice with `"all"` (or no limit) asks for the full
        practice distribution over the chosen domains. When the pool cannot
        meet the request the plan reports the delivered total instead.
        """
        scope = list(domains) if domains is not None else list(DOMAIN_KEYS)
        if mode in ("official", "quick"):
            config = OFFICIAL_EXAM_CONFIG if mode == "official" else QUICK_EXAM_CONFIG
            recent_ids = self.history.recent_question_ids(RECENT_ATTEMPT_WINDOW)
            selection = select_exam_questions(self.bank.load_all(), config.distribution, recent_ids, self._rng)
            requested = config.total_questions
        elif mode == "practice":
            selection, config = self._practice_selection(scope, max_questions, focus_weak)
            requested = selection.requested
        elif mode == "wrong-answers":
            selection = self._wrong_answers_selection(scope, max_questions, sort_by)
            config = WRONG_ANSWERS_EXAM_CONFIG.with_total(selection.delivered)
            requested = selection.requested
        else:
            raise ValueError(f"Unknown exam mode: {mode!r}")

        if selection.delivered < config.total_questions:
            logger.warning("Only %d of %d questions available for %s exam", selection.delivered, requested, mode)
            config = config.with_total(selection.delivered)
        return ExamPlan(
            config=config,
            questions=selection.questions,
            requested=requested,
            shortfalls=selection.shortfalls,
        )

    def _practice_selection(
        self, domains: list[str], max_questions: QuestionLimit, focus_weak: bool
    ) -> tuple[Selection, ExamConfig]:
        limit = max_questions if isinstance(max_questions, int) else None
        distribution = PRACTICE_EXAM_CONFIG.distribution
        if focus_weak:
            weak = self.history.weak_domains()
            distribution = weak_domain_distribution(weak, PRACTICE_EXAM_CONFIG.total_questions)
            logger.info("Practice weighted toward weak domains: %s", ", ".join(weak) or "none")
        selection = select_filtered_questions(
            self.bank.in_domains(domains),
            domains,
            distribution,
            limit=limit,
            rng=self._rng,
        )
        if not selection.questions:
            raise EmptySelectionError("No questions are available for the selected domains.")
        config = replace(PRACTICE_EXAM_CONFIG, distribution=distribution, total_questions=selection.requested)
        return selection, config

    def _wrong_answers_selection(self, domains: list[str], max_questions: QuestionLimit, sort_by: SortBy) -> Selection:
        wrong_ids = self.history.filtered_wrong_question_ids(domains, sort_by)
        if not wrong_ids:
            raise EmptySelectionError("No incorrectly answered questions match these filters yet.")
        if max_questions == "all":
            limit = None
        else:
            limit = max_questions if max_questions is not None else WRONG_ANSWERS_DEFAULT_LIMIT
        selection = select_questions_by_ids(self.bank, wrong_ids, limit)
        if not selection.questions:
            raise EmptySelectionError("None of the missed questions are in the current catalog.")
        return selection

    def start_exam(self, plan: ExamPlan, start_ms: int | None = None) -> ExamSession:
        """Open a session for a planned exam."""
        session = ExamSession(plan.config, plan.questions, start_ms=start_ms)
        logger.info("Started %s exam %s with %d questions", plan.config.mode, session.id, len(plan.questions))
        return session

    def finish_exam(self, session: ExamSession, at_ms: int | None = None) -> ExamAttempt:
        """Score a session and add the attempt to history."""
        attempt = session.finish(at_ms)
        self.record_attempt(attempt)
        return attempt

    def record_attempt(self, attempt: ExamAttempt) -> None:
        """Persist one attempt and add it to in-memory history."""
        self.store.save_attempt(attempt)
        self.history.add_attempt(attempt)
        logger.info("Recorded attempt %s: score %d (%s)", attempt.id, attempt.score, "pass" if attempt.passed else "fail")

    def delete_attempt(self, attempt_id: str) -> bool:
        """Delete one attempt from storage and history."""
        deleted = self.store.delete_attempt(attempt_id)
        self.history.delete_attempt(attempt_id)
        return deleted

    def clear_history(self) -> int:
        """Delete every attempt; return how many were removed."""
        removed = self.store.clear()
        self.history.clear_history()
        logger.info("Cleared %d attempts from history", removed)
        return removed

    def export_history(self, export_path: Path | str) -> HistoryTransferSummary:
        """Export all attempts to a JSON file."""
        attempts = self.history.attempts
        payload = {
            "format_version": EXPORT_FORMAT_VERSION,
            "exported_at": datetime.now(UTC).isoformat(),
            "source": {
                "app_version": __version__,
                "schema_version": SCHEMA_VERSION,
            },
            "attempts": [attempt_to_dict(attempt) for attempt in attempts],
        }
        path = Path(export_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return HistoryTransferSummary(attempts=len(attempts))

    def import_history(self, import_path: Path | str) -> HistoryTransferSummary:
        """Import attempts from an export file, skipping malformed rows and known ids."""
        raw_obj: object = json.loads(Path(import_path).read_text(encoding="utf-8"))
        if not isinstance(raw_obj, dict):
            raise ValueError("Import file root must be a JSON object.")
        raw = cast(dict[str, object], raw_obj)

        version_raw = raw.get("format_version", 0)
        if isinstance(version_raw, bool) or not isinstance(version_raw, int):
            raise ValueError("Import file has invalid format_version.")
        if version_raw > EXPORT_FORMAT_VERSION:
            raise ValueError(
                f"Import file format version {version_raw} is newer than supported {EXPORT_FORMAT_VERSION}."
            )

        rows = raw.get("attempts")
        if not isinstance(rows, list):
            raise ValueError("Import file has no attempts list.")
        imported = 0
        skipped = 0
        for item in cast(list[object], rows):
            attempt = attempt_from_dict(cast(dict[str, object], item)) if isinstance(item, dict) else None
            if attempt is None or self.history.get(attempt.id) is not None:
                skipped += 1
                continue
            self.record_attempt(attempt)
            imported += 1
        return HistoryTransferSummary(attempts=imported, skipped=skipped)

    def close(self) -> None:
        """Close resources."""
        self.store.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort cleanup for test/process teardown."""
        try:
            self.close()
        except Exception:
            pass
