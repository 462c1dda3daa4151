import json
from pathlib import Path

from ccpexam.question_bank import (
    DOMAINS,
    QuestionBank,
    QuestionLoadError,
    domain_id,
    domain_info,
    domain_key,
    load_questions_from_dir,
    question_from_dict,
)


def _record(**overrides: object) -> dict[str, object]:
    record: dict[str, object] = {
        "id": "q-1",
        "domain": "domain2-security",
        "subdomain": "iam",
        "difficulty": "hard",
        "type": "single-choice",
        "question": "Which service manages identities?",
        "options": [
            {"id": "A", "text": "IAM"},
            {"id": "B", "text": "S3"},
            {"id": "C", "text": "EC2"},
            {"id": "D", "text": "SQS"},
        ],
        "correct": ["A"],
        "explanation": "IAM manages identities.",
    }
    record.update(overrides)
    return record


def test_question_from_dict_maps_fields() -> None:
    question = question_from_dict(_record(tags=["iam"], references=["https://example.com"]))
    assert question.id == "q-1"
    assert question.domain == "domain2"
    assert question.difficulty == "hard"
    assert question.type == "single-choice"
    assert question.option_ids == ("A", "B", "C", "D")
    assert question.correct == ("A",)
    assert question.tags == ("iam",)
    assert question.references == ("https://example.com",)


def test_question_from_dict_applies_defaults() -> None:
    raw = _record()
    del raw["difficulty"]
    del raw["type"]
    question = question_from_dict(raw)
    assert question.difficulty == "medium"
    assert question.type == "single-choice"
    assert question.explanation == "IAM manages identities."


def test_question_from_dict_reads_diagram_table_and_course_reference() -> None:
    question = question_from_dict(
        _record(
            diagram={"type": "mermaid", "code": "graph TD; A-->B"},
            table={"headers": ["Plan", "TAM"], "rows": [["Business", "No"], ["Enterprise", "Yes"]]},
            maarek_reference="Section 4",
        )
    )
    assert question.diagram == "graph TD; A-->B"
    assert question.table == (("Plan", "TAM"), ("Business", "No"), ("Enterprise", "Yes"))
    assert question.course_reference == "Section 4"


def test_question_from_dict_rejects_unknown_domain() -> None:
    try:
        question_from_dict(_record(domain="domain9-unknown"))
    except QuestionLoadError as exc:
        assert "domain9-unknown" in str(exc)
    else:
        raise AssertionError("Expected QuestionLoadError")


def test_question_from_dict_rejects_correct_outside_options() -> None:
    try:
        question_from_dict(_record(correct=["E"]))
    except QuestionLoadError as exc:
        assert "unknown options" in str(exc)
    else:
        raise AssertionError("Expected QuestionLoadError")


def test_domain_table_is_bidirectional() -> None:
    assert [info.key for info in DOMAINS] == ["domain1", "domain2", "domain3", "domain4"]
    for info in DOMAINS:
        assert domain_key(info.id) == info.key
        assert domain_key(info.key) == info.key
        assert domain_id(info.key) == info.id
    assert round(sum(info.weight for info in DOMAINS), 6) == 1.0
    assert domain_info("domain3").weight == 0.34


def test_bank_groups_and_looks_up(make_bank) -> None:
    bank = make_bank({"domain1": 2, "domain3": 3})
    assert len(bank) == 5
    assert bank.counts() == {"domain1": 2, "domain2": 0, "domain3": 3, "domain4": 0}
    assert [question.id for question in bank.by_domain("domain3-technology")] == [
        "domain3-q00",
        "domain3-q01",
        "domain3-q02",
    ]
    assert [question.id for question in bank.in_domains(["domain1"])] == ["domain1-q00", "domain1-q01"]
    assert "domain1-q00" in bank
    assert bank.get("missing") is None
    assert bank.domain_of("domain3-q01") == "domain3"
    assert bank.domain_of("missing") is None


def test_bank_rejects_duplicate_ids(make_question) -> None:
    try:
        QuestionBank([make_question("dup"), make_question("dup", "domain2")])
    except QuestionLoadError as exc:
        assert "dup" in str(exc)
    else:
        raise AssertionError("Expected QuestionLoadError")


def test_load_questions_from_dir_reads_lists_and_wrapped_objects(tmp_path: Path) -> None:
    (tmp_path / "a.json").write_text(json.dumps([_record(id="a-1")]), encoding="utf-8")
    (tmp_path / "b.json").write_text(
        json.dumps({"questions": [_record(id="b-1", domain="domain4-billing")]}),
        encoding="utf-8",
    )
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    bank = load_questions_from_dir(tmp_path)
    assert [question.id for question in bank.load_all()] == ["a-1", "b-1"]
    assert bank.domain_of("b-1") == "domain4"
