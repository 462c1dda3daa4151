"""CLI entrypoint for the exam simulator."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from .history import WEAK_DOMAIN_THRESHOLD
from .logging_config import configure_logging
from .models import DOMAIN_KEYS, DomainKey, ExamAttempt, ExamMode, Question, SortBy
from .question_bank import (
    QuestionBank,
    QuestionLoadError,
    domain_id,
    domain_info,
    load_questions,
    load_questions_from_dir,
)
from .sampler import EmptySelectionError
from .scoring import questions_to_pass, score_label
from .service import ExamPlan, ExamService, QuestionLimit
from .session import ExamSession

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
MENU_QUIT_COMMANDS = {"q"}
MENU_BACK_COMMANDS = {"b"}
EXAM_EXIT_COMMANDS = {":quit", ":exit", ":q"}
DEFAULT_DB_PATH = Path(".ccpexam") / "history.db"
QUESTION_COUNT_CHOICES = ("10", "20", "30", "60", "all")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _service(db_path: Path, questions_dir: Path | None) -> ExamService:
    """Create app service with the chosen database and catalog."""
    bank: QuestionBank = load_questions_from_dir(questions_dir) if questions_dir is not None else load_questions()
    return ExamService(db_path=db_path, bank=bank)


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="ccpexam", description="Cloud Practitioner exam simulator")
    parser.add_argument("command", nargs="?", default="play", choices=["play", "stats"])
    parser.add_argument("--db", type=Path, default=DEFAULT_DB_PATH, help="attempt history database")
    parser.add_argument("--questions-dir", type=Path, default=None, help="directory of question JSON files")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default="WARNING",
        help="logging level (default: WARNING)",
    )
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        service = _service(args.db, args.questions_dir)
    except QuestionLoadError as exc:
        print(f"Could not load questions: {exc}", file=sys.stderr)
        return 2
    try:
        if args.command == "stats":
            _dashboard_flow(service, print)
            return 0
        return play_shell(service)
    finally:
        service.close()


def play_shell(service: ExamService, input_fn: InputFn = input, print_fn: PrintFn = print) -> int:
    """Run persistent menu-driven shell."""
    try:
        while True:
            counts = service.bank.counts()
            print_fn("\n=== Cloud Practitioner Exam Simulator ===")
            print_fn(f"Questions in bank: {sum(counts.values())} | Attempts: {len(service.history)}")
            print_fn("1) Official exam (65 questions, 90 min)")
            print_fn("2) Quick exam (20 questions, 30 min)")
            print_fn("3) Practice (untimed, instant feedback)")
            print_fn("4) Review mistakes")
            print_fn("5) Dashboard")
            print_fn("6) History")
            print_fn("q) Quit")
            choice = input_fn("Choose: ").strip().lower()

            if choice == "1":
                _exam_flow(service, "official", input_fn, print_fn)
            elif choice == "2":
                _exam_flow(service, "quick", input_fn, print_fn)
            elif choice == "3":
                _practice_flow(service, input_fn, print_fn)
            elif choice == "4":
                _review_mistakes_flow(service, input_fn, print_fn)
            elif choice == "5":
                _dashboard_flow(service, print_fn)
                _domain_detail_flow(service, input_fn, print_fn)
            elif choice == "6":
                _history_flow(service, input_fn, print_fn)
            elif choice in MENU_QUIT_COMMANDS:
                return 0
            else:
                print_fn("Invalid choice.")
    except QuitApp:
        return 0


def _practice_flow(service: ExamService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Configure and run a domain-scoped practice session."""
    print_fn("\n=== Practice Setup ===")
    max_questions = _ask_question_count(input_fn, print_fn, default="20")
    if max_questions is None:
        return
    domains = _ask_domains(input_fn, print_fn)
    if domains is None:
        return
    focus_weak = False
    weak = service.history.weak_domains()
    if weak:
        names = ", ".join(domain_info(key).short_name for key in weak)
        answer = input_fn(f"Weight toward weak domains ({names})? [y/N]: ").strip().lower()
        if answer in MENU_BACK_COMMANDS:
            return
        focus_weak = answer == "y"
    _exam_flow(
        service,
        "practice",
        input_fn,
        print_fn,
        max_questions=max_questions,
        domains=domains,
        focus_weak=focus_weak,
    )


def _review_mistakes_flow(service: ExamService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Configure and run a session over previously missed questions."""
    print_fn("\n=== Review Mistakes ===")
    max_questions = _ask_question_count(input_fn, print_fn, default="20")
    if max_questions is None:
        return
    domains = _ask_domains(input_fn, print_fn)
    if domains is None:
        return
    order = input_fn("Order by r) most recent or f) most frequent [r]: ").strip().lower()
    if order in MENU_BACK_COMMANDS:
        return
    sort_by: SortBy = "frequent" if order == "f" else "recent"
    _exam_flow(
        service,
        "wrong-answers",
        input_fn,
        print_fn,
        max_questions=max_questions,
        domains=domains,
        sort_by=sort_by,
    )


def _ask_question_count(input_fn: InputFn, print_fn: PrintFn, default: str) -> QuestionLimit | None:
    """Prompt for a question count; None means go back."""
    while True:
        raw = input_fn(f"Number of questions ({'/'.join(QUESTION_COUNT_CHOICES)}) [{default}]: ").strip().lower()
        if raw in MENU_BACK_COMMANDS:
            return None
        value = raw or default
        if value == "all":
            return "all"
        if value.isdigit() and int(value) > 0:
            return int(value)
        print_fn("Invalid question count.")


def _ask_domains(input_fn: InputFn, print_fn: PrintFn) -> list[DomainKey] | None:
    """Prompt for a domain subset; blank selects all, None means go back."""
    for index, key in enumerate(DOMAIN_KEYS, start=1):
        print_fn(f"{index}) {domain_info(key).name}")
    while True:
        raw = input_fn("Domains (e.g. 1,3; blank = all): ").strip().lower()
        if raw in MENU_BACK_COMMANDS:
            return None
        if not raw:
            return list(DOMAIN_KEYS)
        parts = [part.strip() for part in raw.replace(" ", ",").split(",") if part.strip()]
        if parts and all(part.isdigit() and 1 <= int(part) <= len(DOMAIN_KEYS) for part in parts):
            chosen = {DOMAIN_KEYS[int(part) - 1] for part in parts}
            return [key for key in DOMAIN_KEYS if key in chosen]
        print_fn("Invalid domain selection.")


def _exam_flow(
    service: ExamService,
    mode: ExamMode,
    input_fn: InputFn,
    print_fn: PrintFn,
    *,
    max_questions: QuestionLimit = None,
    domains: list[DomainKey] | None = None,
    sort_by: SortBy = "recent",
    focus_weak: bool = False,
) -> None:
    """Plan, take, and score one exam."""
    try:
        plan = service.plan_exam(
            mode,
            max_questions=max_questions,
            domains=domains,
            sort_by=sort_by,
            focus_weak=focus_weak,
        )
    except EmptySelectionError as exc:
        print_fn(str(exc))
        return
    if not plan.questions:
        print_fn("No questions available.")
        return
    _print_plan_notes(plan, print_fn)

    session = service.start_exam(plan)
    finished = _run_exam(session, input_fn, print_fn, instant_feedback=mode == "practice")
    if not finished:
        print_fn("Exam abandoned. Nothing was recorded.")
        return
    attempt = service.finish_exam(session)
    _print_results(attempt, session, print_fn)


def _print_plan_notes(plan: ExamPlan, print_fn: PrintFn) -> None:
    if not plan.short:
        return
    print_fn(f"Note: only {len(plan.questions)} of {plan.requested} requested questions are available.")
    for shortfall in plan.shortfalls:
        name = domain_info(shortfall.domain).short_name
        print_fn(f"- {name}: {shortfall.delivered}/{shortfall.requested}")


def _run_exam(session: ExamSession, input_fn: InputFn, print_fn: PrintFn, *, instant_feedback: bool) -> bool:
    """Drive one session; return True to score it, False if abandoned."""
    config = session.config
    timer = f"{config.duration_minutes} min" if config.timed else "untimed"
    print_fn(f"\n=== {config.mode.title()} exam: {len(session.questions)} questions, {timer} ===")
    print_fn("Answer with option letters (A or A,C). n) next  p) previous  m) mark  g N) go to  f) finish")
    print_fn("Type :q to abandon.")

    while True:
        if session.is_expired():
            print_fn("Time is up.")
            return True
        question = session.current_question
        if question is None:
            return True
        _print_question(session, question, print_fn)

        raw = input_fn("Answer: ").strip()
        lowered = raw.lower()
        if lowered in EXAM_EXIT_COMMANDS:
            return False
        if lowered == "f":
            unanswered = len(session.unanswered_ids())
            if unanswered:
                confirm = input_fn(f"{unanswered} question(s) unanswered. Type YES to finish: ").strip()
                if confirm != "YES":
                    continue
            return True
        if lowered == "n":
            if not session.next():
                print_fn("This is the last question. Type f to finish.")
            continue
        if lowered == "p":
            if not session.previous():
                print_fn("This is the first question.")
            continue
        if lowered == "m":
            marked = session.toggle_mark(question.id)
            print_fn("Marked for review." if marked else "Review mark removed.")
            continue
        if lowered.startswith("g "):
            target = lowered[2:].strip()
            if not (target.isdigit() and session.go_to(int(target) - 1)):
                print_fn("Invalid question number.")
            continue

        selected = _parse_selection(raw)
        if not selected:
            print_fn("Invalid input.")
            continue
        try:
            session.answer(question.id, selected)
        except ValueError as exc:
            print_fn(str(exc))
            continue
        if instant_feedback:
            if session.check(question.id):
                print_fn("Correct.")
            else:
                print_fn(f"Incorrect. Correct answer: {', '.join(question.correct)}")
            if question.explanation:
                print_fn(f"Note: {question.explanation}")
        if not session.next():
            print_fn("Last question answered. Type f to finish or p to go back.")


def _parse_selection(raw: str) -> list[str]:
    """Parse `A`, `A,C`, `a c` or `AC` into option letters."""
    cleaned = raw.replace(",", " ").split()
    if len(cleaned) == 1 and cleaned[0].isalpha() and len(cleaned[0]) > 1:
        cleaned = list(cleaned[0])
    letters = [item.upper() for item in cleaned]
    if not letters or any(len(item) != 1 or not item.isalpha() for item in letters):
        return []
    return letters


def _print_question(session: ExamSession, question: Question, print_fn: PrintFn) -> None:
    position = session.current_index + 1
    header = f"\nQuestion {position}/{len(session.questions)} [{domain_info(question.domain).short_name}]"
    if session.is_marked(question.id):
        header += " (marked)"
    if session.config.show_timer:
        remaining = session.time_remaining()
        if remaining is not None:
            header += f" | {_format_clock(remaining)}"
    print_fn(header)
    print_fn(question.prompt)
    if question.type == "multiple-choice":
        print_fn(f"(Select {len(question.correct)})")
    current = session.answers.get(question.id)
    for option in question.options:
        chosen = "*" if current is not None and option.id in current.selected else " "
        print_fn(f"{chosen}{option.id}) {option.text}")


def _print_results(attempt: ExamAttempt, session: ExamSession, print_fn: PrintFn) -> None:
    """Print score card, domain breakdown, and missed questions."""
    print_fn("\n=== Results ===")
    verdict = "PASS" if attempt.passed else "FAIL"
    print_fn(f"Score: {attempt.score}/1000 - {score_label(attempt.score)} ({verdict})")
    print_fn(f"Correct: {attempt.correct_answers}/{attempt.total_questions}")
    print_fn(f"Time: {_format_clock(attempt.duration)}")
    if not attempt.passed:
        needed = questions_to_pass(attempt.correct_answers, attempt.total_questions)
        print_fn(f"About {needed} more correct answer(s) needed to pass.")

    name_width = max(len(domain_info(key).name) for key in DOMAIN_KEYS)
    print_fn("\nBy domain:")
    for key, score in attempt.domain_scores.items():
        if score.total == 0:
            continue
        print_fn(f"{domain_info(key).name:<{name_width}} {score.correct:>3}/{score.total:<3} {score.percentage:>3}%")

    missed = [record for record in attempt.answers if not record.correct]
    if missed:
        print_fn("\nMissed:")
        for record in missed:
            question = session.question(record.question_id)
            chosen = ", ".join(record.selected) if record.selected else "-"
            print_fn(f"- {record.question_id}: chose {chosen}, correct {', '.join(question.correct)}")


def _dashboard_flow(service: ExamService, print_fn: PrintFn) -> None:
    """Print history statistics, weak domains, and top missed questions."""
    history = service.history
    stats = history.stats()
    print_fn("\n=== Dashboard ===")
    if stats.total_exams == 0:
        print_fn("No exams taken yet.")
        return
    print_fn(f"Exams taken: {stats.total_exams}")
    print_fn(f"Pass rate: {stats.pass_rate}%")
    print_fn(f"Average score: {stats.average_score}")
    print_fn(f"Best score: {stats.best_score}")
    print_fn(f"Average duration: {_format_clock(stats.average_duration)}")

    print_fn("\nDomain averages:")
    for key in DOMAIN_KEYS:
        print_fn(f"- {domain_info(key).name}: {stats.domain_averages[key]:.0f}%")

    weak = history.weak_domains()
    if weak:
        names = ", ".join(domain_info(key).short_name for key in weak)
        print_fn(f"\nWeak domains (< {WEAK_DOMAIN_THRESHOLD:.0f}%): {names}")

    missed = history.top_missed_questions(limit=10)
    if missed:
        print_fn("\nMost missed questions:")
        for item in missed:
            domain = domain_info(item.domain).short_name if item.domain is not None else "?"
            print_fn(f"- {item.question_id} [{domain}] missed {item.count}x")

    print_fn("\nRecent scores:")
    for point in history.score_trend()[-10:]:
        print_fn(f"- {_format_local_date(point.date)} {point.mode:<13} {point.score:>4}")


def _domain_detail_flow(service: ExamService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Show missed questions for domains picked from the dashboard."""
    history = service.history
    if len(history) == 0:
        return
    while True:
        raw = input_fn("Domain number for missed questions (1-4, blank = back): ").strip().lower()
        if not raw or raw in MENU_BACK_COMMANDS:
            return
        if raw in MENU_QUIT_COMMANDS:
            raise QuitApp()
        if not (raw.isdigit() and 1 <= int(raw) <= len(DOMAIN_KEYS)):
            print_fn("Invalid domain.")
            continue
        key = DOMAIN_KEYS[int(raw) - 1]
        print_fn(f"\n=== {domain_info(key).name} ({domain_id(key)}) ===")
        print_fn(f"Average: {history.domain_averages()[key]:.0f}%")
        missed = history.missed_questions_by_domain(key)
        if not missed:
            print_fn("No missed questions in this domain.")
            continue
        for item in missed:
            question = service.bank.get(item.question_id)
            prompt = question.prompt if question is not None else ""
            print_fn(f"- {item.question_id} missed {item.count}x: {prompt}")


def _history_flow(service: ExamService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """List attempts and manage history."""
    while True:
        attempts = service.history.recent_attempts(len(service.history))
        print_fn("\n=== History ===")
        if attempts:
            for idx, attempt in enumerate(attempts, start=1):
                verdict = "pass" if attempt.passed else "fail"
                print_fn(
                    f"{idx:>2}) {_format_local_date(attempt.date)} {attempt.mode:<13} "
                    f"{attempt.score:>4} {verdict} {attempt.correct_answers}/{attempt.total_questions}"
                )
        else:
            print_fn("No attempts recorded.")
        print_fn("d) Delete attempt")
        print_fn("c) Clear history")
        print_fn("e) Export history")
        print_fn("i) Import history")
        print_fn("b) Back")
        print_fn("q) Quit")
        choice = input_fn("Choose: ").strip().lower()
        if choice in MENU_BACK_COMMANDS:
            return
        if choice in MENU_QUIT_COMMANDS:
            raise QuitApp()
        if choice == "d":
            _delete_attempt_flow(service, attempts, input_fn, print_fn)
        elif choice == "c":
            _clear_history_flow(service, input_fn, print_fn)
        elif choice == "e":
            _export_history_flow(service, input_fn, print_fn)
        elif choice == "i":
            _import_history_flow(service, input_fn, print_fn)
        else:
            print_fn("Invalid choice.")


def _delete_attempt_flow(
    service: ExamService, attempts: list[ExamAttempt], input_fn: InputFn, print_fn: PrintFn
) -> None:
    if not attempts:
        print_fn("No attempts available to delete.")
        return
    choice = input_fn("Attempt number to delete: ").strip()
    if not choice.isdigit() or not (1 <= int(choice) <= len(attempts)):
        print_fn("Invalid choice.")
        return
    target = attempts[int(choice) - 1]
    if service.delete_attempt(target.id):
        print_fn(f"Deleted attempt {target.id}.")
    else:
        print_fn("Attempt was not found.")


def _clear_history_flow(service: ExamService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Clear history with explicit confirmation safeguard."""
    print_fn("WARNING: This permanently deletes every recorded attempt.")
    confirm = input_fn("Type YES to confirm: ").strip()
    if confirm != "YES":
        print_fn("Clear cancelled.")
        return
    removed = service.clear_history()
    print_fn(f"Removed {removed} attempt(s).")


def _export_history_flow(service: ExamService, input_fn: InputFn, print_fn: PrintFn) -> None:
    path_text = input_fn("Export file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    try:
        summary = service.export_history(path_text)
    except OSError as exc:
        print_fn(f"Export failed: {exc}")
        return
    print_fn(f"Exported {summary.attempts} attempt(s) to {path_text}")


def _import_history_flow(service: ExamService, input_fn: InputFn, print_fn: PrintFn) -> None:
    path_text = input_fn("Import file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    try:
        summary = service.import_history(path_text)
    except (OSError, ValueError) as exc:
        print_fn(f"Import failed: {exc}")
        return
    print_fn(f"Imported {summary.attempts} attempt(s), skipped {summary.skipped}.")


def _format_clock(seconds: int) -> str:
    sign = "-" if seconds < 0 else ""
    minutes, secs = divmod(abs(seconds), 60)
    return f"{sign}{minutes:02d}:{secs:02d}"


def _format_local_date(value: str) -> str:
    """Convert ISO timestamp to local human-readable datetime."""
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return value
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
