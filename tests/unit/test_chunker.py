import pytest

from research_rag.config import ChunkingConfig
from research_rag.ingest.chunker import FixedSizeChunker, chunk_text, content_id


def test_chunks_concatenate_to_input_and_respect_max_len() -> None:
    text = "Tenants may withhold rent only after written notice. " * 37

    chunks = chunk_text(text, 100)

    assert "".join(chunk.text for chunk in chunks) == text
    assert all(len(chunk.text) <= 100 for chunk in chunks)
    assert all(len(chunk.text) == 100 for chunk in chunks[:-1])


def test_spans_are_contiguous_half_open_offsets() -> None:
    chunks = chunk_text("x" * 2500, 1000)

    assert [chunk.span for chunk in chunks] == [(0, 1000), (1000, 2000), (2000, 2500)]


def test_identical_text_yields_identical_ids_and_duplicates_are_kept() -> None:
    chunks = chunk_text("abcabc", 3)

    assert len(chunks) == 2
    assert chunks[0].id == chunks[1].id == content_id("abc")
    assert len(chunks[0].id) == 16


def test_empty_text_yields_no_chunks() -> None:
    assert chunk_text("", 10) == []


@pytest.mark.parametrize("max_len", [0, -5])
def test_non_positive_max_len_is_rejected(max_len: int) -> None:
    with pytest.raises(ValueError):
        chunk_text("some text", max_len)


def test_fixed_size_chunker_uses_config_default() -> None:
    chunker = FixedSizeChunker(ChunkingConfig(max_chars=4))

    assert [chunk.text for chunk in chunker.chunk("abcdefghij")] == ["abcd", "efgh", "ij"]
    assert [chunk.text for chunk in chunker.chunk("abcdefghij", max_len=5)] == ["abcde", "fghij"]


def test_fixed_size_chunker_rejects_explicit_zero() -> None:
    with pytest.raises(ValueError):
        FixedSizeChunker().chunk("abc", max_len=0)
