"""
Tests for character-window chunking.
"""

import pytest

from semantic_retrieval.vector import ChunkingError, Document, chunk_document, chunk_documents


def _text(length):
    return "".join(chr(ord("a") + i % 26) for i in range(length))


def test_short_document_is_returned_unchanged():
    """A text that fits in one window comes back as the same single document."""
    doc = Document(id="short", text="hello world", metadata={"source": "x"})

    chunks = chunk_document(doc, chunk_size=1000, overlap=200)

    assert chunks == [doc]
    assert chunks[0] is doc


def test_text_exactly_chunk_size_is_not_split():
    doc = Document(id="exact", text=_text(1000))
    assert chunk_document(doc) == [doc]


def test_long_document_windows_cover_text():
    """Windows advance by chunk_size - overlap and the last one ends at len(text)."""
    text = _text(2500)
    doc = Document(id="long", text=text, metadata={"source": "long.txt"})

    chunks = chunk_document(doc, chunk_size=1000, overlap=200)

    assert [c.id for c in chunks] == ["long_chunk_1", "long_chunk_2", "long_chunk_3"]
    assert chunks[0].text == text[0:1000]
    assert chunks[1].text == text[800:1800]
    assert chunks[2].text == text[1600:2500]

    # Rebuild the text by dropping each window's overlapping prefix
    rebuilt = chunks[0].text + "".join(c.text[200:] for c in chunks[1:])
    assert rebuilt == text
    assert 1600 + len(chunks[-1].text) == len(text)


def test_no_extra_trailing_window():
    """Chunking stops as soon as a window reaches the end of the text."""
    doc = Document(id="d", text=_text(1001))

    chunks = chunk_document(doc, chunk_size=1000, overlap=200)

    assert len(chunks) == 2
    assert chunks[1].text == doc.text[800:1001]


def test_chunk_metadata_extends_parent():
    doc = Document(id="parent", text=_text(1500), metadata={"source": "p.txt", "file_name": "p.txt"})

    chunks = chunk_document(doc, chunk_size=1000, overlap=200)

    for n, chunk in enumerate(chunks, start=1):
        assert chunk.metadata["source"] == "p.txt"
        assert chunk.metadata["file_name"] == "p.txt"
        assert chunk.metadata["parent_id"] == "parent"
        assert chunk.metadata["chunk_index"] == n
    # Parent metadata is not modified
    assert "parent_id" not in doc.metadata


@pytest.mark.parametrize("chunk_size,overlap", [(0, 0), (100, 100), (100, 150), (100, -1)])
def test_invalid_window_parameters_raise(chunk_size, overlap):
    doc = Document(id="d", text=_text(500))
    with pytest.raises(ChunkingError):
        chunk_document(doc, chunk_size=chunk_size, overlap=overlap)


def test_chunk_documents_falls_back_to_original_on_failure():
    """A chunking failure keeps the unchunked document instead of losing it."""
    doc = Document(id="d", text=_text(500))

    result = chunk_documents([doc], chunk_size=100, overlap=100)

    assert result == [doc]


def test_chunk_documents_flattens_in_order():
    docs = [Document(id="a", text=_text(1500)), Document(id="b", text="tiny")]

    result = chunk_documents(docs, chunk_size=1000, overlap=200)

    assert [d.id for d in result] == ["a_chunk_1", "a_chunk_2", "b"]
