import io

import docx
import pytest
from docx.shared import Pt, RGBColor

from conftest import all_texts, build_docx
from memoire.documents.docx.package import iter_body_paragraphs, open_package, package_hash
from memoire.documents.extraction.question_detector import detect_questions
from memoire.documents.models import AnchorPosition, Question, TableCoordinates
from memoire.documents.templating.placeholders import (
    TOKEN_RE,
    find_tokens,
    is_token_only,
    placeholder_token,
)
from memoire.documents.templating.template_builder import (
    InternalTemplate,
    QuestionPositionMapping,
    build_internal_template,
)
from memoire.errors import PlaceholderCollision, StaleTemplate


def test_token_format_is_stable():
    token = placeholder_token("q_123")
    assert TOKEN_RE.fullmatch(token)
    assert token == placeholder_token("q_123")
    assert token != placeholder_token("q_124")
    assert find_tokens(f"avant {token} après") == [token]
    assert is_token_only(f"  {token} ")
    assert not is_token_only(f"x {token}")


def test_placeholder_follows_each_anchor(memo_template):
    questions = detect_questions(memo_template).questions
    build = build_internal_template(memo_template, questions)
    texts = all_texts(build.template.package_bytes)

    main, sub, other = questions
    assert texts == [
        "Mémoire technique",
        "ITEM 1 : Moyens humains",
        main.text,
        placeholder_token(main.id),
        sub.text,
        placeholder_token(sub.id),
        "Le présent cadre est limité à deux pages.",
        "ITEM 2 : Matériel",
        other.text,
        placeholder_token(other.id),
    ]
    assert build.unanchored == []
    assert build.template.original_hash == package_hash(memo_template)


def test_placeholder_is_invisible(memo_template):
    questions = detect_questions(memo_template).questions
    build = build_internal_template(memo_template, questions)
    document = open_package(build.template.package_bytes)
    token_paragraphs = [bp.paragraph for bp in iter_body_paragraphs(document) if find_tokens(bp.text)]

    assert len(token_paragraphs) == 3
    for paragraph in token_paragraphs:
        (run,) = paragraph.runs
        assert run.font.size == Pt(1)
        assert run.font.color.rgb == RGBColor(0xFF, 0xFF, 0xFF)


def test_mappings_describe_each_placeholder(memo_template):
    questions = detect_questions(memo_template).questions
    template = build_internal_template(memo_template, questions).template

    assert [m.question_id for m in template.mappings] == [q.id for q in questions]
    first = template.mappings[0]
    assert first.placeholder_token == placeholder_token(questions[0].id)
    assert first.question_title == questions[0].text
    assert first.section_id == "section-1"
    assert first.question_order == 1
    assert first.anchor_position == questions[0].anchor_position
    assert QuestionPositionMapping.from_dict(first.to_dict()) == first


def test_original_package_is_not_modified(memo_template):
    before = bytes(memo_template)
    build_internal_template(memo_template, detect_questions(memo_template).questions)
    assert memo_template == before
    assert not any(find_tokens(t) for t in all_texts(memo_template))


def test_table_question_gets_placeholder_in_answer_cell():
    data = build_docx([], table_rows=[("Disposez-vous d'une certification ISO 9001 ?", "")])
    questions = detect_questions(data).questions
    template = build_internal_template(data, questions).template

    document = docx.Document(io.BytesIO(template.package_bytes))
    answer_cell = document.tables[0].cell(0, 1)
    assert answer_cell.paragraphs[-1].text == placeholder_token(questions[0].id)
    question_cell = document.tables[0].cell(0, 0)
    assert not find_tokens(question_cell.text)


def test_questions_sharing_an_anchor_keep_their_order():
    data = build_docx(["Avez-vous une démarche RSE ?"])
    anchor = AnchorPosition(paragraph_index=0)
    questions = [
        Question(id="a", text="Avez-vous une démarche RSE ?", anchor_position=anchor),
        Question(id="b", text="Avez-vous une démarche RSE ?", anchor_position=anchor, level=2),
    ]
    texts = all_texts(build_internal_template(data, questions).template.package_bytes)
    assert texts[1:] == [placeholder_token("a"), placeholder_token("b")]


def test_unanchored_questions_are_reported_not_embedded(memo_template):
    questions = detect_questions(memo_template).questions
    extra = Question(id="ai_extra", text="Quelles certifications détenez-vous ?", provenance="SEMANTIC")
    build = build_internal_template(memo_template, questions + [extra])

    assert [q.id for q in build.unanchored] == ["ai_extra"]
    assert "ai_extra" not in build.template.by_question_id()
    assert placeholder_token("ai_extra") not in all_texts(build.template.package_bytes)


def test_anchor_out_of_range_is_stale(memo_template):
    q = Question(id="q", text="Effectifs ?", anchor_position=AnchorPosition(paragraph_index=99))
    with pytest.raises(StaleTemplate):
        build_internal_template(memo_template, [q])


def test_changed_anchor_text_is_stale(memo_template):
    questions = detect_questions(memo_template).questions
    edited = build_docx(["Mémoire technique", "ITEM 1", "Texte libre sans rapport"])
    with pytest.raises(StaleTemplate):
        build_internal_template(edited, questions)


def test_anchor_moved_out_of_table_is_stale():
    data = build_docx(["Avez-vous une démarche RSE ?"])
    coords = TableCoordinates(table_index=0, row_index=0, cell_index=0)
    q = Question(id="q", text="Avez-vous une démarche RSE ?", anchor_position=AnchorPosition(0, coords))
    with pytest.raises(StaleTemplate):
        build_internal_template(data, [q])


def test_duplicate_question_ids_collide():
    data = build_docx(["Avez-vous une démarche RSE ?", "Décrivez votre organisation"])
    questions = [
        Question(id="dup", text="Avez-vous une démarche RSE ?", anchor_position=AnchorPosition(0)),
        Question(id="dup", text="Décrivez votre organisation", anchor_position=AnchorPosition(1)),
    ]
    with pytest.raises(PlaceholderCollision):
        build_internal_template(data, questions)


def test_lookup_helpers():
    mapping = QuestionPositionMapping("q1", placeholder_token("q1"), "Effectifs ?", 1)
    template = InternalTemplate(package_bytes=b"", mappings=[mapping], original_hash="x")
    assert template.by_token()[placeholder_token("q1")] is mapping
    assert template.by_question_id()["q1"] is mapping
    assert template.created_at
