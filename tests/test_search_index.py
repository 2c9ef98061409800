"""Tests for FTS5 full-text search."""

from knowledge_layer.storage.fts_index import FtsIndex


class TestSearch:
    """Tests for ranked search."""

    def test_finds_matching_note(self, note_repository):
        note_repository.create("Ownership", "Rust ownership rules and borrowing")
        note_repository.create("Gardening", "Tomatoes need sun")

        results = note_repository.search_index.search("borrowing")
        assert [r.note_id for r in results] == ["ownership"]
        assert results[0].title == "Ownership"

    def test_title_is_searchable(self, note_repository):
        note_repository.create("Kubernetes Primer", "containers everywhere")
        results = note_repository.search_index.search("kubernetes")
        assert [r.note_id for r in results] == ["kubernetes-primer"]

    def test_ranked_most_relevant_first(self, note_repository):
        """Higher score means more relevant, and results are sorted by it."""
        note_repository.create("Dense", "rust rust rust")
        note_repository.create(
            "Sparse",
            "a long note that mentions rust only once among many other words "
            "about gardening cooking travel music and weather",
        )
        note_repository.create("Unrelated", "nothing to see here")

        results = note_repository.search_index.search("rust")
        assert [r.note_id for r in results] == ["dense", "sparse"]
        assert results[0].score >= results[1].score

    def test_stemming(self, note_repository):
        """Porter stemming lets "run" match "running"."""
        note_repository.create("Exercise", "I went running yesterday")
        assert [r.note_id for r in note_repository.search_index.search("run")] == [
            "exercise"
        ]

    def test_preview(self, note_repository):
        """Previews are the first 200 characters plus an ellipsis."""
        long_body = "searchable " + "x" * 300
        note_repository.create("Long", long_body)
        note_repository.create("Short", "searchable and short")

        previews = {r.note_id: r.preview for r in note_repository.search_index.search("searchable")}
        assert previews["long"] == long_body[:200] + "..."
        assert previews["short"] == "searchable and short..."

    def test_matches_highlight_terms(self, note_repository):
        note_repository.create("Highlight", "the quick brown fox")
        results = note_repository.search_index.search("brown")
        assert results[0].matches
        assert "[brown]" in results[0].matches[0]

    def test_blank_query(self, note_repository):
        note_repository.create("Anything", "content")
        assert note_repository.search_index.search("") == []
        assert note_repository.search_index.search("   ") == []

    def test_unknown_token(self, note_repository):
        note_repository.create("Anything", "content")
        assert note_repository.search_index.search("zyxwvut") == []

    def test_punctuation_does_not_error(self, note_repository):
        """Queries with FTS5 operators in them are matched literally."""
        note_repository.create("Art", "a state of the art design")
        results = note_repository.search_index.search("state-of-the-art")
        assert [r.note_id for r in results] == ["art"]
        assert note_repository.search_index.search("c++ (draft) ^x") == []

    def test_words_need_not_be_adjacent(self, note_repository):
        """Every word must appear, in any order and position."""
        note_repository.create("Ownership", "borrowing rules in rust")
        note_repository.create("Lending", "borrowing money from a bank")

        results = note_repository.search_index.search("rust borrowing")
        assert [r.note_id for r in results] == ["ownership"]

    def test_limit(self, note_repository):
        for i in range(5):
            note_repository.create(f"Note {i}", "common word")
        assert len(note_repository.search_index.search("common", limit=3)) == 3


class TestQuerySyntax:
    """Tests for native FTS5 syntax pass-through."""

    def test_boolean_or(self, note_repository):
        note_repository.create("A", "alpha text")
        note_repository.create("B", "beta text")
        note_repository.create("C", "gamma text")
        results = note_repository.search_index.search("alpha OR beta")
        assert sorted(r.note_id for r in results) == ["a", "b"]

    def test_prefix(self, note_repository):
        note_repository.create("Code", "programming in python")
        assert [r.note_id for r in note_repository.search_index.search("prog*")] == ["code"]

    def test_quoted_phrase(self, note_repository):
        note_repository.create("Phrase", "red apple pie")
        note_repository.create("Scrambled", "apple red pie")
        results = note_repository.search_index.search('"red apple"')
        assert [r.note_id for r in results] == ["phrase"]

    def test_broken_syntax_falls_back(self, note_repository):
        """An FTS5 syntax error degrades to a plain text scan."""
        note_repository.create("Broken", "text AND (")
        results = note_repository.search_index.search("AND (")
        assert [r.note_id for r in results] == ["broken"]


class TestTagFilter:
    """Tests for filtering search by tags."""

    def test_match_any_tag(self, note_repository):
        note_repository.create("One", "shared", ["a"])
        note_repository.create("Two", "shared", ["b"])
        note_repository.create("Three", "shared", ["c"])
        note_repository.create("Four", "shared", ["a", "b"])

        results = note_repository.search_index.search("shared", tags=["a", "b"])
        assert sorted(r.note_id for r in results) == ["four", "one", "two"]

    def test_filter_tags_are_trimmed(self, note_repository):
        note_repository.create("One", "shared", ["a"])
        results = note_repository.search_index.search("shared", tags=[" a ", ""])
        assert [r.note_id for r in results] == ["one"]

    def test_unknown_tag(self, note_repository):
        note_repository.create("One", "shared", ["a"])
        assert note_repository.search_index.search("shared", tags=["zzz"]) == []


class TestIndexMaintenance:
    """Tests that the index follows every mutation."""

    def test_one_entry_per_note(self, note_repository):
        note_repository.create("One", "first")
        note_repository.create("Two", "second")
        note_repository.update("one", content="changed")
        note_repository.update("one", title="Uno")
        note_repository.delete("two")

        assert note_repository.search_index.entry_count() == note_repository.count_notes() == 1
        assert note_repository.search_index.entry_count("one") == 1

    def test_update_reindexes(self, note_repository):
        note_repository.create("Mutable", "oldword")
        note_repository.update("mutable", content="newword")

        assert note_repository.search_index.search("oldword") == []
        assert [r.note_id for r in note_repository.search_index.search("newword")] == ["mutable"]

    def test_rebuild(self, note_repository):
        note_repository.create("One", "first")
        note_repository.create("Two", "second")
        assert note_repository.search_index.rebuild() == 2
        assert [r.note_id for r in note_repository.search_index.search("second")] == ["two"]


class TestFallback:
    """Tests for the LIKE fallback."""

    def test_fallback_when_unavailable(self, note_repository):
        """With FTS5 disabled, a LIKE scan still answers and ranks title hits first."""
        note_repository.create("Gardening", "about plants")
        note_repository.create("Plants", "a list")
        note_repository.search_index.available = False

        results = note_repository.search_index.search("plants")
        assert [r.note_id for r in results] == ["plants", "gardening"]
        assert results[0].score > results[1].score

    def test_fallback_escapes_wildcards(self, note_repository):
        note_repository.create("Percent", "100% sure")
        note_repository.create("Other", "1000 sure")
        note_repository.search_index.available = False
        assert [r.note_id for r in note_repository.search_index.search("100%")] == ["percent"]

    def test_should_escape(self):
        assert FtsIndex._should_escape("plain words")
        assert FtsIndex._should_escape("state-of-the-art")
        assert not FtsIndex._should_escape("a OR b")
        assert not FtsIndex._should_escape('"exact phrase"')
        assert not FtsIndex._should_escape("prog*")
        assert not FtsIndex._should_escape("title:rust")

    def test_escape_query_quotes_each_word(self):
        assert FtsIndex._escape_query("rust borrowing") == '"rust" "borrowing"'
        assert FtsIndex._escape_query('say "hi"*') == '"say" """hi"""'
        assert FtsIndex._escape_query("* ^") == ""
