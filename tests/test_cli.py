import json

import pytest

from conftest import all_texts, build_docx
from memoire.cli import main


@pytest.fixture
def template_path(tmp_path, memo_template):
    path = tmp_path / "modele.docx"
    path.write_bytes(memo_template)
    return path


def build(tmp_path, template_path, capsys):
    store = tmp_path / "store"
    code = main(["--store", str(store), "build", str(template_path), "--document-id", "doc-1", "--no-semantic", "--json"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    return store, payload


def test_detect_listing(template_path, capsys):
    assert main(["detect", str(template_path)]) == 0
    out = capsys.readouterr().out
    assert "§1 ITEM 1 : Moyens humains" in out
    assert "Avez-vous un collaborateur dédié à la sécurité ?" in out
    assert "3 questions (1 sub-questions)" in out


def test_detect_json_to_file(template_path, tmp_path, capsys):
    out_path = tmp_path / "questions.json"
    assert main(["detect", str(template_path), "-o", str(out_path)]) == 0
    payload = json.loads(out_path.read_text(encoding="utf-8"))
    assert len(payload["questions"]) == 3
    assert payload["stats"]["total_questions"] == 3


def test_build_export_validate(template_path, tmp_path, capsys):
    store, payload = build(tmp_path, template_path, capsys)
    assert payload["placeholders"] == 3
    assert payload["semantic_fallback"] is False

    first_id = payload["questions"][0]["id"]
    answers = tmp_path / "answers.json"
    answers.write_text(json.dumps({first_id: "Oui"}), encoding="utf-8")
    out = tmp_path / "rendu.docx"

    code = main([
        "--store", str(store), "export", "--document-id", "doc-1", "--answers", str(answers),
        "-o", str(out), "--original", str(template_path), "--missing-text", "",
    ])
    assert code == 0
    assert "1/3 injected, 2 missing" in capsys.readouterr().out
    texts = all_texts(out.read_bytes())
    assert texts[texts.index(payload["questions"][0]["text"]) + 1] == "Oui"

    assert main(["--store", str(store), "validate", "--document-id", "doc-1", "--original", str(template_path)]) == 0
    assert capsys.readouterr().out.strip() == "valid"


def test_validate_reports_stale_template(template_path, tmp_path, capsys):
    store, _ = build(tmp_path, template_path, capsys)
    edited = tmp_path / "modifie.docx"
    edited.write_bytes(build_docx(["Autre contenu"]))
    assert main(["--store", str(store), "validate", "--document-id", "doc-1", "--original", str(edited)]) == 2
    assert "stale" in capsys.readouterr().out


def test_strict_export_fails_on_drift(template_path, tmp_path, capsys):
    store, _ = build(tmp_path, template_path, capsys)
    answers = tmp_path / "answers.json"
    answers.write_text(json.dumps([{"question_id": "inconnu", "answer": "x"}]), encoding="utf-8")
    code = main([
        "--store", str(store), "export", "--document-id", "doc-1", "--answers", str(answers),
        "-o", str(tmp_path / "rendu.docx"), "--strict",
    ])
    assert code == 3
    assert "not found" in capsys.readouterr().err


def test_missing_or_wrong_files(tmp_path, capsys):
    assert main(["detect", str(tmp_path / "absent.docx")]) == 1
    txt = tmp_path / "notes.txt"
    txt.write_text("x")
    assert main(["detect", str(txt)]) == 1
    assert main(["--store", str(tmp_path / "s"), "validate", "--document-id", "x", "--original", str(txt)]) == 1
    assert "Error:" in capsys.readouterr().err
