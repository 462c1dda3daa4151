import json
from pathlib import Path

from ccpexam.question_bank import QuestionLoadError, domain_info, domain_key, load_questions_from_dir, question_from_dict


def _record(**overrides: object) -> dict[str, object]:
    record: dict[str, object] = {
        "id": "edge-1",
        "domain": "domain1-cloud-concepts",
        "question": "Prompt",
        "options": [{"id": "A", "text": "a"}, {"id": "B", "text": "b"}, {"id": "C", "text": "c"}],
        "correct": ["B"],
    }
    record.update(overrides)
    return record


def _expect_load_error(raw: dict[str, object], fragment: str) -> None:
    try:
        question_from_dict(raw)
    except QuestionLoadError as exc:
        assert fragment in str(exc)
    else:
        raise AssertionError("Expected QuestionLoadError")


def test_missing_id_or_prompt_fails() -> None:
    _expect_load_error(_record(id=""), "'id'")
    _expect_load_error(_record(question="  "), "'question'")


def test_missing_or_empty_correct_fails() -> None:
    raw = _record()
    del raw["correct"]
    _expect_load_error(raw, "no correct options")
    _expect_load_error(_record(correct=[]), "no correct options")


def test_single_choice_requires_exactly_one_correct() -> None:
    _expect_load_error(_record(correct=["A", "B"]), "exactly one")


def test_multiple_choice_accepts_several_correct() -> None:
    question = question_from_dict(_record(type="multiple-choice", correct=["c", "a"]))
    assert question.type == "multiple-choice"
    assert question.correct == ("C", "A")


def test_duplicate_correct_and_option_ids_fail() -> None:
    _expect_load_error(_record(type="multiple-choice", correct=["A", "A"]), "twice")
    _expect_load_error(
        _record(options=[{"id": "A", "text": "a"}, {"id": "a", "text": "again"}], correct=["A"]),
        "duplicate option id",
    )


def test_option_ids_must_be_letters_a_to_e() -> None:
    _expect_load_error(_record(options=[{"id": "F", "text": "f"}], correct=["F"]), "invalid option id")
    _expect_load_error(_record(options=["A"], correct=["A"]), "malformed option")


def test_unknown_difficulty_and_type_fall_back() -> None:
    question = question_from_dict(_record(difficulty="brutal", type="essay"))
    assert question.difficulty == "medium"
    assert question.type == "single-choice"


def test_domain_lookups_reject_unknown_values() -> None:
    for call in (lambda: domain_key("domain5"), lambda: domain_info("domain1-cloud-concepts")):
        try:
            call()
        except ValueError:
            pass
        else:
            raise AssertionError("Expected ValueError")


def test_catalog_file_must_hold_a_list(tmp_path: Path) -> None:
    (tmp_path / "bad.json").write_text(json.dumps({"questions": {"id": "x"}}), encoding="utf-8")
    try:
        load_questions_from_dir(tmp_path)
    except QuestionLoadError as exc:
        assert "bad.json" in str(exc)
    else:
        raise AssertionError("Expected QuestionLoadError")


def test_catalog_file_rejects_non_object_records(tmp_path: Path) -> None:
    (tmp_path / "mixed.json").write_text(json.dumps([_record(), "oops"]), encoding="utf-8")
    try:
        load_questions_from_dir(tmp_path)
    except QuestionLoadError as exc:
        assert "non-object" in str(exc)
    else:
        raise AssertionError("Expected QuestionLoadError")


def test_duplicate_ids_across_files_fail(tmp_path: Path) -> None:
    (tmp_path / "one.json").write_text(json.dumps([_record()]), encoding="utf-8")
    (tmp_path / "two.json").write_text(json.dumps([_record()]), encoding="utf-8")
    try:
        load_questions_from_dir(tmp_path)
    except QuestionLoadError as exc:
        assert "edge-1" in str(exc)
    else:
        raise AssertionError("Expected QuestionLoadError")


def test_catalog_file_with_broken_json_names_the_file(tmp_path: Path) -> None:
    (tmp_path / "bad.json").write_text("[{", encoding="utf-8")
    try:
        load_questions_from_dir(tmp_path)
    except QuestionLoadError as exc:
        assert "bad.json is not valid JSON" in str(exc)
    else:
        raise AssertionError("Expected QuestionLoadError")
