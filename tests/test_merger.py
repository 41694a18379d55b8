import pytest

from memoire.documents.extraction.merger import match_score, merge_questions, normalize_question
from memoire.documents.models import AnchorPosition, Question


def pattern(qid, text, idx, order, section=None, **kw):
    kw.setdefault("confidence", 0.8)
    return Question(
        id=qid,
        text=text,
        section_order=section,
        order_in_section=order,
        anchor_position=AnchorPosition(paragraph_index=idx),
        provenance="PATTERN",
        **kw,
    )


def semantic(qid, text, order, section=None, **kw):
    return Question(
        id=qid,
        text=text,
        section_order=section,
        order_in_section=order,
        confidence=0.7,
        provenance="SEMANTIC",
        detection_method="semantic",
        **kw,
    )


def test_match_score_values():
    assert match_score("", "effectifs") == 0.0
    assert match_score("effectifs", "effectifs") == 1.0
    assert match_score("effectifs", "effectifs du chantier") == pytest.approx(0.9)
    assert match_score("le la de", "un du et") == 0.0
    assert match_score(
        "delais intervention chantier equipe",
        "delais intervention chantier soir",
    ) == pytest.approx(0.75)


def test_normalize_question_drops_numbering_and_accents():
    assert normalize_question("1.2 Décrivez  le MATÉRIEL ?") == "decrivez le materiel"


def test_reordered_semantic_list_is_realigned_to_pattern_order():
    patterns = [
        pattern("p1", "1. Effectifs ?", 0, 1),
        pattern("p2", "2. Matériel ?", 1, 2),
    ]
    semantics = [
        semantic("s1", "Matériel ?", 1),
        semantic("s2", "Effectifs ?", 2),
    ]
    result = merge_questions(patterns, semantics)

    assert [q.id for q in result.merged_questions] == ["p1", "p2"]
    assert all(q.provenance == "MERGED" for q in result.merged_questions)
    assert all(q.confidence >= 0.9 for q in result.merged_questions)
    assert result.stats.merged == 2
    assert result.stats.semantic_match_rate == pytest.approx(1.0)


def test_semantic_only_question_is_appended_unanchored():
    patterns = [pattern("p1", "Effectifs ?", 0, 1)]
    semantics = [
        semantic("s1", "Effectifs ?", 1),
        semantic("s2", "Quelles certifications détenez-vous ?", 2),
    ]
    result = merge_questions(patterns, semantics)

    assert [q.id for q in result.merged_questions] == ["p1", "s2"]
    extra = result.merged_questions[1]
    assert extra.provenance == "SEMANTIC"
    assert extra.anchor_position is None
    assert extra.confidence == pytest.approx(0.7)
    assert [q.id for q in result.unanchored] == ["s2"]
    assert result.stats.semantic_only == 1
    assert result.stats.pattern_only == 0


def test_score_at_threshold_is_not_a_match():
    patterns = [pattern("p1", "Délais intervention chantier équipe mobile", 0, 1)]
    semantics = [semantic("s1", "Délais intervention chantier soir", 1)]
    result = merge_questions(patterns, semantics)
    assert result.stats.merged == 0
    assert result.merged_questions[0].provenance == "PATTERN"
    assert result.merged_questions[1].provenance == "SEMANTIC"


def test_above_threshold_is_a_match():
    patterns = [pattern("p1", "Délais intervention chantier équipe", 0, 1)]
    semantics = [semantic("s1", "Délais intervention chantier soir", 1)]
    result = merge_questions(patterns, semantics)
    assert result.stats.merged == 1
    assert len(result.merged_questions) == 1


def test_tie_goes_to_first_candidate():
    patterns = [pattern("p1", "Décrivez vos effectifs", 0, 1)]
    semantics = [
        semantic("s1", "Décrivez vos effectifs", 1),
        semantic("s2", "Décrivez vos effectifs", 2),
    ]
    result = merge_questions(patterns, semantics)
    assert [q.id for q in result.merged_questions] == ["p1", "s2"]


def test_merged_question_adopts_semantic_classification():
    patterns = [
        pattern("p1", "Avez-vous un plan qualité ?", 0, 1, confidence=0.7),
        pattern("p2", "Décrivez votre organisation", 1, 2, confidence=0.95),
    ]
    semantics = [
        semantic("s1", "Avez-vous un plan qualité ?", 1, type="YES_NO", required=False),
        semantic("s2", "Décrivez votre organisation", 2),
    ]
    first, second = merge_questions(patterns, semantics).merged_questions
    assert first.type == "YES_NO" and first.required is False
    assert first.confidence == pytest.approx(0.9)
    assert first.anchor_position == AnchorPosition(paragraph_index=0)
    assert second.confidence == pytest.approx(0.95)


def test_semantic_sub_question_is_attached_to_merged_parent():
    patterns = [pattern("p1", "Avez-vous un plan qualité ?", 0, 1, section=1)]
    semantics = [
        semantic("s1", "Avez-vous un plan qualité ?", 1, section=1),
        semantic("s2", "Si oui, joignez-le", 2, section=1, level=2, parent_question_order=1),
    ]
    parent, sub = merge_questions(patterns, semantics).merged_questions
    assert sub.parent_question_id == "p1"
    assert sub.level == 2
    assert sub.parent_question_order == parent.order_in_section == 1


def test_merged_sub_question_is_attached_to_merged_parent():
    patterns = [
        pattern("p1", "Avez-vous un responsable sécurité ?", 0, 1, section=1),
        pattern("p2", "Précisez son rôle dans l'entreprise :", 1, 2, section=1),
    ]
    semantics = [
        semantic("s1", "Avez-vous un responsable sécurité ?", 5, section=1),
        semantic("s2", "Précisez son rôle dans l'entreprise :", 6, section=1, level=2, parent_question_order=5),
    ]
    parent, sub = merge_questions(patterns, semantics).merged_questions
    assert sub.provenance == "MERGED"
    assert sub.parent_question_id == "p1"
    assert sub.level == 2
    assert sub.parent_question_order == parent.order_in_section == 1


def test_merged_question_drops_unresolved_semantic_parent_order():
    patterns = [pattern("p1", "Précisez son rôle dans l'entreprise :", 0, 1, section=1)]
    semantics = [semantic("s1", "Précisez son rôle dans l'entreprise :", 2, section=1, parent_question_order=1)]
    (only,) = merge_questions(patterns, semantics).merged_questions
    assert only.parent_question_id is None
    assert only.parent_question_order is None
    assert only.level == 1


def test_orders_are_renumbered_per_section_without_touching_inputs():
    patterns = [
        pattern("p1", "Effectifs ?", 0, 1, section=1),
        pattern("p3", "Sous-traitance ?", 2, 3, section=1),
        pattern("p4", "Planning ?", 4, 1, section=2),
    ]
    semantics = [semantic("s2", "Quelles certifications détenez-vous ?", 2, section=1)]
    result = merge_questions(patterns, semantics)

    assert [(q.id, q.section_order, q.order_in_section) for q in result.merged_questions] == [
        ("p1", 1, 1),
        ("s2", 1, 2),
        ("p3", 1, 3),
        ("p4", 2, 1),
    ]
    assert patterns[1].order_in_section == 3


def test_no_semantic_questions_keeps_pattern_list():
    patterns = [pattern("p1", "Effectifs ?", 0, 2), pattern("p2", "Matériel ?", 1, 5)]
    result = merge_questions(patterns, [])
    assert [q.id for q in result.merged_questions] == ["p1", "p2"]
    assert [q.order_in_section for q in result.merged_questions] == [1, 2]
    assert result.stats.semantic_match_rate == 0.0
    assert result.stats.pattern_only == 2


def test_merge_is_deterministic():
    patterns = [pattern("p1", "1. Effectifs ?", 0, 1), pattern("p2", "2. Matériel ?", 1, 2)]
    semantics = [semantic("s1", "Matériel ?", 1), semantic("s3", "Planning prévisionnel ?", 3)]
    assert merge_questions(patterns, semantics) == merge_questions(patterns, semantics)
