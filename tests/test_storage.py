import pytest

from memoire.documents.extraction.question_detector import detect_questions
from memoire.documents.templating.template_builder import build_internal_template
from memoire.errors import TemplateNotFound
from memoire.storage.templates import InMemoryBlobStorage, LocalBlobStorage, TemplateStore


@pytest.fixture(params=["memory", "local"])
def store(request, tmp_path):
    if request.param == "memory":
        return TemplateStore(InMemoryBlobStorage())
    return TemplateStore(LocalBlobStorage(tmp_path / "store"))


@pytest.fixture
def template(memo_template):
    return build_internal_template(memo_template, detect_questions(memo_template).questions).template


def test_save_and_load(store, template):
    store.save("doc-1", template)
    loaded = store.load("doc-1")
    assert loaded.package_bytes == template.package_bytes
    assert loaded.mappings == template.mappings
    assert loaded.original_hash == template.original_hash
    assert loaded.created_at == template.created_at
    assert store.exists("doc-1")


def test_new_build_replaces_previous_one(store, template, memo_template):
    store.save("doc-1", template)
    rebuilt = build_internal_template(memo_template, detect_questions(memo_template).questions[:1]).template
    store.save("doc-1", rebuilt)
    assert len(store.load("doc-1").mappings) == 1


def test_missing_template(store):
    with pytest.raises(TemplateNotFound):
        store.load("absent")
    assert not store.exists("absent")


def test_delete(store, template):
    store.save("doc-1", template)
    store.delete("doc-1")
    assert not store.exists("doc-1")
    store.delete("doc-1")


def test_document_id_is_sanitised(store, template):
    store.save("../../etc/doc 1", template)
    path = TemplateStore.path_for("../../etc/doc 1")
    assert path.startswith("templates/etcdoc1-")
    assert "/" not in path[len("templates/"):]
    assert store.exists("../../etc/doc 1")
    assert TemplateStore.path_for("../..").startswith("templates/")
    with pytest.raises(ValueError):
        TemplateStore.path_for("")


def test_ids_differing_in_stripped_characters_do_not_share_a_blob(store, template, memo_template):
    other = build_internal_template(memo_template, detect_questions(memo_template).questions[:1]).template
    other.original_hash = "autre"
    store.save("doc.1", template)
    store.save("doc1", other)
    store.save("a/b", other)

    assert store.load("doc.1").original_hash == template.original_hash
    assert store.load("doc1").original_hash == "autre"
    assert not store.exists("ab")
    assert len({TemplateStore.path_for(i) for i in ("doc.1", "doc1", "a/b", "ab")}) == 4


def test_local_storage_rejects_escaping_paths(tmp_path):
    blobs = LocalBlobStorage(tmp_path / "root")
    with pytest.raises(ValueError):
        blobs.write("../outside.bin", b"x")
    blobs.write("a/b.bin", b"payload")
    assert blobs.read("a/b.bin") == b"payload"
    assert not list((tmp_path / "root" / "a").glob("*.tmp"))
