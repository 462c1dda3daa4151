"""SQLite persistence for completed exam attempts."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast

from .models import DOMAIN_KEYS, EXAM_MODES, AnswerRecord, DomainScore, DomainScores, ExamAttempt, ExamMode
from .scoring import MAX_SCORE, MIN_SCORE, is_passing, round_half_up

SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)


class AttemptStore:
    """Database access layer for attempt history."""

    def __init__(self, db_path: Path | str) -> None:
        """Open (or create) the database and bring its schema up to date."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        self._conn = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")
                self._conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(UTC).isoformat()),
                )

    def _migrate_to_v1(self) -> None:
        """Create attempt and per-question answer tables."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS attempts (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    date TEXT NOT NULL,
                    mode TEXT NOT NULL,
                    score INTEGER NOT NULL,
                    passed INTEGER NOT NULL,
                    duration INTEGER NOT NULL,
                    total_questions INTEGER NOT NULL,
                    correct_answers INTEGER NOT NULL,
                    domain_scores TEXT NOT NULL,
                    questions_used TEXT NOT NULL
                )
                """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS attempt_answers (
                    attempt_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    question_id TEXT NOT NULL,
                    selected TEXT NOT NULL,
                    is_correct INTEGER NOT NULL,
                    time_spent INTEGER NOT NULL,
                    PRIMARY KEY (attempt_id, position)
                )
                """)

    def save_attempt(self, attempt: ExamAttempt) -> None:
        """Insert one attempt with its answer rows."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO attempts (
                    id,
                    date,
                    mode,
                    score,
                    passed,
                    duration,
                    total_questions,
                    correct_answers,
                    domain_scores,
                    questions_used
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    attempt.id,
                    attempt.date,
                    attempt.mode,
                    attempt.score,
                    int(attempt.passed),
                    attempt.duration,
                    attempt.total_questions,
                    attempt.correct_answers,
                    json.dumps(domain_scores_to_dict(attempt.domain_scores)),
                    json.dumps(list(attempt.questions_used)),
                ),
            )
            self._conn.executemany(
                """
                INSERT INTO attempt_answers (attempt_id, position, question_id, selected, is_correct, time_spent)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        attempt.id,
                        position,
                        record.question_id,
                        json.dumps(list(record.selected)),
                        int(record.correct),
                        record.time_spent,
                    )
                    for position, record in enumerate(attempt.answers)
                ],
            )
        logger.debug("Saved attempt %s", attempt.id)

    def load_attempts(self) -> list[ExamAttempt]:
        """Return all attempts in insertion order."""
        rows = self._conn.execute("SELECT * FROM attempts ORDER BY seq ASC").fetchall()
        answer_rows = self._conn.execute(
            "SELECT * FROM attempt_answers ORDER BY attempt_id ASC, position ASC"
        ).fetchall()
        answers_by_attempt: dict[str, list[AnswerRecord]] = {}
        for row in answer_rows:
            answers_by_attempt.setdefault(str(row["attempt_id"]), []).append(
                AnswerRecord(
                    question_id=str(row["question_id"]),
                    selected=tuple(str(item) for item in json.loads(row["selected"])),
                    correct=bool(row["is_correct"]),
                    time_spent=int(row["time_spent"]),
                )
            )
        return [
            ExamAttempt(
                id=str(row["id"]),
                date=str(row["date"]),
                mode=cast(ExamMode, str(row["mode"])),
                score=int(row["score"]),
                passed=bool(row["passed"]),
                duration=int(row["duration"]),
                total_questions=int(row["total_questions"]),
                correct_answers=int(row["correct_answers"]),
                answers=tuple(answers_by_attempt.get(str(row["id"]), [])),
                domain_scores=domain_scores_from_dict(json.loads(row["domain_scores"])),
                questions_used=tuple(str(item) for item in json.loads(row["questions_used"])),
            )
            for row in rows
        ]

    def delete_attempt(self, attempt_id: str) -> bool:
        """Delete one attempt and its answers."""
        with self._conn:
            self._conn.execute("DELETE FROM attempt_answers WHERE attempt_id = ?", (attempt_id,))
            cursor = self._conn.execute("DELETE FROM attempts WHERE id = ?", (attempt_id,))
        return cursor.rowcount > 0

    def clear(self) -> int:
        """Delete every attempt; return how many were removed."""
        with self._conn:
            self._conn.execute("DELETE FROM attempt_answers")
            cursor = self._conn.execute("DELETE FROM attempts")
        return cursor.rowcount

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass


def domain_scores_to_dict(scores: DomainScores) -> dict[str, dict[str, int]]:
    return {
        key: {"correct": score.correct, "total": score.total, "percentage": score.percentage}
        for key, score in scores.items()
    }


def domain_scores_from_dict(raw: object) -> DomainScores:
    """Rebuild domain scores, treating missing or malformed domains as empty."""
    source = cast(dict[str, object], raw) if isinstance(raw, dict) else {}
    built: dict[str, DomainScore] = {}
    for key in DOMAIN_KEYS:
        item = source.get(key)
        values = cast(dict[str, object], item) if isinstance(item, dict) else {}
        correct = max(0, coerce_int(values.get("correct"), default=0) or 0)
        total = max(0, coerce_int(values.get("total"), default=0) or 0)
        percentage = coerce_int(values.get("percentage"))
        if percentage is None:
            percentage = round_half_up(correct / total * 100) if total else 0
        built[key] = DomainScore(correct=correct, total=total, percentage=percentage)
    return DomainScores(**built)


def attempt_to_dict(attempt: ExamAttempt) -> dict[str, object]:
    """Serialize one attempt to JSON-ready data."""
    return {
        "id": attempt.id,
        "date": attempt.date,
        "mode": attempt.mode,
        "score": attempt.score,
        "passed": attempt.passed,
        "duration": attempt.duration,
        "total_questions": attempt.total_questions,
        "correct_answers": attempt.correct_answers,
        "answers": [
            {
                "question_id": record.question_id,
                "selected": list(record.selected),
                "correct": record.correct,
                "time_spent": record.time_spent,
            }
            for record in attempt.answers
        ],
        "domain_scores": domain_scores_to_dict(attempt.domain_scores),
        "questions_used": list(attempt.questions_used),
    }


def attempt_from_dict(raw: Mapping[str, object]) -> ExamAttempt | None:
    """Rebuild an attempt from loose JSON data; return None when it is unusable."""
    attempt_id = raw.get("id")
    date = raw.get("date")
    mode = raw.get("mode")
    score = coerce_int(raw.get("score"))
    if not isinstance(attempt_id, str) or not attempt_id.strip():
        return None
    if not isinstance(date, str) or not date or mode not in EXAM_MODES or score is None:
        return None

    records: list[AnswerRecord] = []
    answers_raw = raw.get("answers")
    for item in cast(list[object], answers_raw) if isinstance(answers_raw, list) else []:
        if not isinstance(item, dict):
            continue
        row = cast(dict[str, object], item)
        question_id = row.get("question_id")
        if not isinstance(question_id, str) or not question_id.strip():
            continue
        selected_raw = row.get("selected")
        selected = [str(value) for value in cast(list[object], selected_raw)] if isinstance(selected_raw, list) else []
        records.append(
            AnswerRecord(
                question_id=question_id.strip(),
                selected=tuple(selected),
                correct=bool(row.get("correct")),
                time_spent=max(0, coerce_int(row.get("time_spent"), default=0) or 0),
            )
        )

    used_raw = raw.get("questions_used")
    if isinstance(used_raw, list):
        questions_used = tuple(str(value) for value in cast(list[object], used_raw))
    else:
        questions_used = tuple(record.question_id for record in records)

    total_questions = coerce_int(raw.get("total_questions"), default=len(records)) or 0
    correct_answers = coerce_int(raw.get("correct_answers"))
    if correct_answers is None:
        correct_answers = len([record for record in records if record.correct])
    passed_raw = raw.get("passed")
    return ExamAttempt(
        id=attempt_id.strip(),
        date=date,
        mode=cast(ExamMode, mode),
        score=max(MIN_SCORE, min(MAX_SCORE, score)),
        passed=bool(passed_raw) if passed_raw is not None else is_passing(score),
        duration=max(0, coerce_int(raw.get("duration"), default=0) or 0),
        total_questions=max(0, total_questions),
        correct_answers=max(0, correct_answers),
        answers=tuple(records),
        domain_scores=domain_scores_from_dict(raw.get("domain_scores")),
        questions_used=questions_used,
    )


def coerce_int(value: object, default: int | None = None) -> int | None:
    """Coerce loose JSON values to int."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default
