import pytest

from requirag.rag.chunker import Chunker, chunk_text
from requirag.rag.types import SourceKind


def _sentence(i: int) -> str:
    # 19 four-character words plus a closing word: exactly 99 characters
    return " ".join([f"s{i:02d}w"] * 19 + [f"s{i:02d}."])


def _document(sentences: int = 24) -> str:
    return " ".join(_sentence(i) for i in range(1, sentences + 1))


class TestChunkText:
    def test_blank_text_produces_no_chunks(self) -> None:
        assert chunk_text("") == []
        assert chunk_text("   \n\n  ") == []

    def test_short_text_is_a_single_chunk(self) -> None:
        assert chunk_text("One sentence. Another one!") == ["One sentence. Another one!"]

    def test_sentences_keep_their_punctuation(self) -> None:
        chunks = chunk_text("First? Second! Third.", max_size=10, overlap=0)
        assert chunks == ["First?", "Second!", "Third."]

    def test_document_of_2400_characters_gives_three_chunks(self) -> None:
        text = _document()
        assert len(text) == 2399

        chunks = chunk_text(text, max_size=1000, overlap=200)

        assert len(chunks) == 3
        assert chunks[0].startswith("s01w") and chunks[0].endswith("s10.")
        assert chunks[1].startswith("s09w") and chunks[1].endswith("s18.")
        assert chunks[2].startswith("s17w") and chunks[2].endswith("s24.")

    def test_adjacent_chunks_share_an_overlapping_word_run(self) -> None:
        chunks = chunk_text(_document(), max_size=1000, overlap=200)

        for current, following in zip(chunks, chunks[1:], strict=False):
            tail = current.split()[-40:]
            head = following.split()[:40]
            assert tail == head

    def test_newline_separated_words_keep_chunks_bounded(self) -> None:
        # Loader output separates words with newlines more often than spaces
        sentences = ["\n".join([f"n{i:02d}w"] * 19 + [f"n{i:02d}."]) for i in range(1, 31)]
        text = " ".join(sentences)

        chunks = chunk_text(text, max_size=400, overlap=200)

        assert all(len(chunk) <= 400 + 200 for chunk in chunks)
        assert sum(len(chunk) for chunk in chunks) < 3 * len(text)
        assert chunks[-1].endswith("n30.")
        for current, following in zip(chunks, chunks[1:], strict=False):
            assert following.split()[:40] == current.split()[-40:]

    def test_joining_space_counts_towards_max_size(self) -> None:
        assert chunk_text("aaaa. bbbb.", max_size=10, overlap=0) == ["aaaa.", "bbbb."]
        assert chunk_text("aaaa. bbbb.", max_size=11, overlap=0) == ["aaaa. bbbb."]

    def test_zero_overlap_starts_fresh(self) -> None:
        chunks = chunk_text(_document(), max_size=1000, overlap=0)

        assert len(chunks) == 3
        assert chunks[1].startswith("s11w")
        assert "s10." not in chunks[1]

    def test_chunking_is_deterministic(self) -> None:
        text = _document(40)
        assert chunk_text(text, 500, 100) == chunk_text(text, 500, 100)

    def test_sentence_longer_than_max_size_is_kept_whole(self) -> None:
        long_sentence = "word " * 60 + "end."
        text = f"Short start. {long_sentence} Short end."

        chunks = chunk_text(text, max_size=50, overlap=0)

        assert long_sentence.strip() in chunks
        assert chunks[0] == "Short start."
        assert chunks[-1] == "Short end."


class TestChunker:
    def test_rejects_invalid_sizes(self) -> None:
        with pytest.raises(ValueError):
            Chunker(max_chunk_size=0)
        with pytest.raises(ValueError):
            Chunker(overlap=-1)

    def test_chunk_document_builds_stable_ids_and_metadata(self) -> None:
        chunker = Chunker(max_chunk_size=1000, overlap=200)

        chunks = chunker.chunk_document(
            text=_document(),
            source="QA-12",
            source_kind=SourceKind.JIRA,
            title="Login flow",
            url="https://jira.example.com/browse/QA-12",
            issue_key="QA-12",
            extra={"status": "Open"},
        )

        assert [c.id for c in chunks] == ["jira-QA-12-0", "jira-QA-12-1", "jira-QA-12-2"]
        for index, chunk in enumerate(chunks):
            assert chunk.metadata.source == "QA-12"
            assert chunk.metadata.source_kind == SourceKind.JIRA
            assert chunk.metadata.chunk_index == index
            assert chunk.metadata.total_chunks == 3
            assert chunk.metadata.issue_key == "QA-12"
            assert chunk.metadata.extra == {"status": "Open"}
        assert len({c.metadata.timestamp for c in chunks}) == 1

    def test_chunk_document_on_blank_text_is_empty(self) -> None:
        chunker = Chunker()
        assert chunker.chunk_document("  ", source="a.md", source_kind=SourceKind.LOCAL) == []

    def test_chunk_document_on_issue_shaped_text(self) -> None:
        steps = "- step{p:02d} {k} opens the reset page and checks the form"
        paragraphs = ["\n".join(steps.format(p=p, k=k) for k in range(5)) + "." for p in range(12)]
        criteria = "\n".join(f"- criterion {k} holds" for k in range(10)) + "."
        text = (
            "Issue: QA-7\nType: Story\nStatus: Open\nPriority: High\n"
            "Summary: Password reset\n\nDescription:\n"
            + "\n\n".join(paragraphs)
            + f"\n\nAcceptance Criteria:\n{criteria}"
        )
        chunker = Chunker(max_chunk_size=500, overlap=100)

        chunks = chunker.chunk_document(text=text, source="QA-7", source_kind=SourceKind.JIRA)

        assert len(chunks) > 1
        assert all(len(c.text) <= 500 + 100 for c in chunks)
        assert sum(len(c.text) for c in chunks) < 2 * len(text)
        assert chunks[0].text.startswith("Issue: QA-7\nType: Story")
        assert chunks[-1].text.endswith("- criterion 9 holds.")
        assert [c.metadata.chunk_index for c in chunks] == list(range(len(chunks)))
        for current, following in zip(chunks, chunks[1:], strict=False):
            assert following.text.split()[:20] == current.text.split()[-20:]
