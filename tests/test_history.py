from ccpexam.history import AttemptHistory
from ccpexam.models import AnswerRecord, DomainScore, DomainScores, ExamAttempt

EMPTY = DomainScore(correct=0, total=0, percentage=0)


def _scores(**percentages: int) -> DomainScores:
    built = {key: EMPTY for key in ("domain1", "domain2", "domain3", "domain4")}
    for key, percentage in percentages.items():
        built[key] = DomainScore(correct=percentage // 5, total=20, percentage=percentage)
    return DomainScores(**built)


def _attempt(
    attempt_id: str,
    date: str,
    *,
    missed: tuple[str, ...] = (),
    right: tuple[str, ...] = (),
    score: int = 700,
    duration: int = 600,
    domain_scores: DomainScores | None = None,
) -> ExamAttempt:
    records = [AnswerRecord(question_id, ("B",), False, 10) for question_id in missed]
    records += [AnswerRecord(question_id, ("A",), True, 10) for question_id in right]
    return ExamAttempt(
        id=attempt_id,
        date=date,
        mode="quick",
        score=score,
        passed=score >= 700,
        duration=duration,
        total_questions=len(records),
        correct_answers=len(right),
        answers=tuple(records),
        domain_scores=domain_scores if domain_scores is not None else _scores(),
        questions_used=tuple(record.question_id for record in records),
    )


DOMAINS_BY_ID = {"A": "domain1", "B": "domain2", "C": "domain3", "D": "domain4"}


def _history(*attempts: ExamAttempt) -> AttemptHistory:
    return AttemptHistory(attempts, domain_of=DOMAINS_BY_ID.get)


def test_frequent_sort_puts_most_missed_first() -> None:
    history = _history(
        _attempt("e1", "2026-01-01T10:00:00+00:00", missed=("A", "B")),
        _attempt("e2", "2026-01-02T10:00:00+00:00", missed=("A",)),
        _attempt("e3", "2026-01-03T10:00:00+00:00", missed=("A",)),
    )
    assert history.filtered_wrong_question_ids(["domain1", "domain2"], "frequent") == ["A", "B"]


def test_recent_sort_puts_latest_miss_first() -> None:
    history = _history(
        _attempt("e1", "2026-01-01T10:00:00+00:00", missed=("A", "C")),
        _attempt("e2", "2026-01-02T10:00:00+00:00", missed=("B",)),
        _attempt("e3", "2026-01-03T10:00:00+00:00", missed=("D",)),
    )
    assert history.filtered_wrong_question_ids(["domain1", "domain2", "domain3", "domain4"]) == ["D", "B", "A", "C"]


def test_filtered_ids_respect_domains_and_drop_unknown() -> None:
    history = _history(_attempt("e1", "2026-01-01T10:00:00+00:00", missed=("A", "B", "ghost")))
    assert history.filtered_wrong_question_ids(["domain2"]) == ["B"]
    assert history.wrong_question_ids() == ["A", "B", "ghost"]
    assert history.filtered_wrong_question_ids(["domain1", "domain2", "domain3", "domain4"], "frequent") == ["A", "B"]


def test_filtered_ids_accept_catalog_domain_ids() -> None:
    history = _history(_attempt("e1", "2026-01-01T10:00:00+00:00", missed=("A", "B")))
    assert history.filtered_wrong_question_ids(["domain1-cloud-concepts"]) == ["A"]
    assert history.filtered_wrong_question_ids(["domain1-cloud-concepts", "domain2"]) == history.filtered_wrong_question_ids(
        ["domain1", "domain2"]
    )
    try:
        history.filtered_wrong_question_ids(["domain9"])
    except ValueError:
        pass
    else:
        raise AssertionError("Expected ValueError")


def test_frequent_sort_keeps_first_miss_order_on_ties() -> None:
    history = _history(
        _attempt("e1", "2026-01-01T10:00:00+00:00", missed=("C", "A")),
        _attempt("e2", "2026-01-02T10:00:00+00:00", missed=("B", "D")),
        _attempt("e3", "2026-01-03T10:00:00+00:00", missed=("B", "C", "A")),
    )
    everything = ["domain1", "domain2", "domain3", "domain4"]
    assert history.filtered_wrong_question_ids(everything, "frequent") == ["C", "A", "B", "D"]


def test_filtered_ids_reject_unknown_sort() -> None:
    try:
        _history().filtered_wrong_question_ids(["domain1"], "oldest")  # type: ignore[arg-type]
    except ValueError:
        pass
    else:
        raise AssertionError("Expected ValueError")


def test_correct_answers_are_not_counted_as_misses() -> None:
    history = _history(
        _attempt("e1", "2026-01-01T10:00:00+00:00", missed=("A",), right=("B",)),
        _attempt("e2", "2026-01-02T10:00:00+00:00", right=("A", "C")),
    )
    assert history.wrong_question_ids() == ["A"]


def test_weak_domains_ignore_unattempted_domains() -> None:
    history = _history(
        _attempt("e1", "2026-01-01T10:00:00+00:00", domain_scores=_scores(domain2=80, domain3=60, domain4=100)),
        _attempt("e2", "2026-01-02T10:00:00+00:00", domain_scores=_scores(domain2=90, domain3=70, domain4=100)),
    )
    averages = history.domain_averages()
    assert averages["domain1"] == 0.0
    assert averages["domain3"] == 65.0
    assert history.weak_domains(70) == ["domain3"]


def test_weak_domains_sorted_weakest_first() -> None:
    history = _history(_attempt("e1", "2026-01-01T10:00:00+00:00", domain_scores=_scores(domain1=50, domain2=20)))
    assert history.weak_domains() == ["domain2", "domain1"]


def test_recent_question_ids_use_last_three_attempts_by_date() -> None:
    history = _history(
        _attempt("e4", "2026-01-04T10:00:00+00:00", missed=("D",)),
        _attempt("e1", "2026-01-01T10:00:00+00:00", missed=("A",)),
        _attempt("e3", "2026-01-03T10:00:00+00:00", missed=("C", "D")),
        _attempt("e2", "2026-01-02T10:00:00+00:00", missed=("B",)),
    )
    assert [attempt.id for attempt in history.recent_attempts(2)] == ["e4", "e3"]
    assert history.recent_question_ids() == ["D", "C", "B"]
    assert history.recent_question_ids(0) == []


def test_mutations_refresh_cached_analytics() -> None:
    history = _history(_attempt("e1", "2026-01-01T10:00:00+00:00", missed=("A",)))
    assert history.wrong_question_ids() == ["A"]

    history.add_attempt(_attempt("e2", "2026-01-02T10:00:00+00:00", missed=("B",)))
    assert history.wrong_question_ids() == ["A", "B"]

    assert history.delete_attempt("e1") is True
    assert history.delete_attempt("e1") is False
    assert history.wrong_question_ids() == ["B"]

    history.clear_history()
    assert history.wrong_question_ids() == []
    assert len(history) == 0


def test_add_attempt_rejects_duplicate_id() -> None:
    history = _history(_attempt("e1", "2026-01-01T10:00:00+00:00"))
    try:
        history.add_attempt(_attempt("e1", "2026-01-05T10:00:00+00:00"))
    except ValueError:
        pass
    else:
        raise AssertionError("Expected ValueError")


def test_top_missed_and_by_domain() -> None:
    history = _history(
        _attempt("e1", "2026-01-01T10:00:00+00:00", missed=("A", "B", "ghost")),
        _attempt("e2", "2026-01-02T10:00:00+00:00", missed=("B",)),
    )
    top = history.top_missed_questions(limit=2)
    assert [(item.question_id, item.count, item.domain) for item in top] == [("B", 2, "domain2"), ("A", 1, "domain1")]
    ghost = history.top_missed_questions()[-1]
    assert (ghost.question_id, ghost.domain) == ("ghost", None)
    assert [item.question_id for item in history.missed_questions_by_domain("domain2")] == ["B"]


def test_stats_and_trend() -> None:
    history = _history(
        _attempt("late", "2026-02-01T10:00:00+00:00", score=650, duration=300),
        _attempt("early", "2026-01-01T10:00:00+00:00", score=800, duration=600),
    )
    stats = history.stats()
    assert stats.total_exams == 2
    assert stats.pass_rate == 50
    assert stats.average_score == 725
    assert stats.best_score == 800
    assert stats.average_duration == 450
    assert [point.attempt_id for point in history.score_trend()] == ["early", "late"]


def test_stats_on_empty_history() -> None:
    stats = _history().stats()
    assert stats.total_exams == 0
    assert stats.best_score == 0
    assert stats.domain_averages == {"domain1": 0.0, "domain2": 0.0, "domain3": 0.0, "domain4": 0.0}


def test_history_without_catalog_lookup_keeps_raw_ids() -> None:
    history = AttemptHistory([_attempt("e1", "2026-01-01T10:00:00+00:00", missed=("A",))])
    assert history.wrong_question_ids() == ["A"]
    assert history.filtered_wrong_question_ids(["domain1"]) == []
    assert history.top_missed_questions()[0].domain is None
