"""
Tests for the sqlite classification and document stores
"""
import pytest

from demakai.classification_store import ClassificationStore, build_match_query
from demakai.document_store import DocumentStore
from demakai.models.records import ClassificationEntry, EntryKind


@pytest.fixture
def classifications(tmp_path):
    store = ClassificationStore(str(tmp_path / "demakai.db"))
    store.init_db()
    store.upsert_entries([
        ClassificationEntry("56101", "Restoran", "Usaha rumah makan dan restoran", EntryKind.BUSINESS),
        ClassificationEntry("82192", "Kegiatan Fotokopi", "Jasa fotokopi dan penggandaan", EntryKind.BUSINESS),
        ClassificationEntry("2512", "Pengembang Perangkat Lunak", "Programmer aplikasi", EntryKind.OCCUPATION),
    ])
    return store


@pytest.fixture
def documents(tmp_path):
    store = DocumentStore(str(tmp_path / "demakai.db"))
    store.init_db()
    return store


def test_match_query_quotes_terms():
    assert build_match_query('usaha "fotokopi" usaha') == '"usaha" OR "fotokopi"'
    assert build_match_query("!!!") == ""


def test_lexical_search_per_table(classifications):
    hits = classifications.search_lexical(EntryKind.BUSINESS, "fotokopi penggandaan")
    assert [h.code for h in hits] == ["82192"]
    assert hits[0].kind is EntryKind.BUSINESS
    assert classifications.search_lexical(EntryKind.OCCUPATION, "fotokopi") == []


def test_regex_search_is_case_insensitive(classifications):
    hits = classifications.search_regex(EntryKind.OCCUPATION, ["PROGRAMMER"])
    assert [h.code for h in hits] == ["2512"]
    assert classifications.search_regex(EntryKind.BUSINESS, []) == []


def test_upsert_replaces_by_code(classifications):
    classifications.upsert_entries([
        ClassificationEntry("82192", "Fotokopi dan Percetakan", "Jasa cetak", EntryKind.BUSINESS),
    ])
    assert classifications.count(EntryKind.BUSINESS) == 2
    assert [h.title for h in classifications.search_lexical(EntryKind.BUSINESS, "percetakan")] == [
        "Fotokopi dan Percetakan"
    ]
    assert classifications.search_lexical(EntryKind.BUSINESS, "penggandaan") == []


def test_documents_with_filters_and_chunks(documents):
    documents.add_document("Demak Dalam Angka", "2023", "publikasi", ["demak"], [
        ("Bab penduduk.", [0.1, 0.2]),
        ("Bab ekonomi.", None),
    ])
    documents.add_document("Berita Resmi Statistik Inflasi", "2024", "brs", [], [])

    docs = documents.list_documents({"year": "2023"})
    assert [d.title for d in docs] == ["Demak Dalam Angka"]
    assert [c.text for c in docs[0].chunks] == ["Bab penduduk.", "Bab ekonomi."]
    assert docs[0].chunks[0].embedding == [0.1, 0.2]
    assert docs[0].chunks[1].embedding is None
    assert docs[0].chunks[0].parent_title == "Demak Dalam Angka"

    assert documents.list_documents(include_chunks=False)[1].chunks == []
    assert documents.count() == 2


def test_unknown_filter_is_rejected(documents):
    with pytest.raises(ValueError):
        documents.list_documents({"author": "BPS"})


def test_metadata_newest_year_first(documents):
    documents.add_document("Lama", "2019")
    documents.add_document("Baru", "2024", tags=["inflasi"])

    metadata = documents.list_document_metadata()
    assert [m["title"] for m in metadata] == ["Baru", "Lama"]
    assert metadata[0]["tags"] == ["inflasi"]


def test_corrupt_json_columns_yield_empty_results(documents):
    documents.add_document("Demak Dalam Angka", "2023", "publikasi", ["demak"], [("Bab penduduk.", [0.1])])
    with documents.get_conn() as conn:
        conn.execute("UPDATE chunks SET embedding = '[0.1,'")
        conn.execute("UPDATE documents SET tags = 'not json'")
        conn.commit()

    assert documents.list_documents() == []
    assert documents.list_document_metadata() == []


def test_missing_tables_yield_empty_results(tmp_path):
    store = DocumentStore(str(tmp_path / "empty.db"))
    assert store.list_documents() == []
    assert store.list_document_metadata() == []
