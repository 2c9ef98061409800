"""Tests for the vault mirror format and import parsing."""

import pytest

from knowledge_layer.models.schema import Note
from knowledge_layer.storage.markdown_parser import MarkdownParser


@pytest.fixture
def parser():
    return MarkdownParser()


class TestRenderMirror:
    """Tests for rendering notes to the mirror format."""

    def test_with_tags(self, parser):
        note = Note(id="t", title="Title", content="Body [[Link]]", tags=["b", "a"])
        assert parser.render_mirror(note) == "# Title\n\nTags: #a #b\n\nBody [[Link]]"

    def test_without_tags(self, parser):
        """The tags line is left out entirely when there are no tags."""
        note = Note(id="t", title="Title", content="Body")
        assert parser.render_mirror(note) == "# Title\n\nBody"

    def test_content_verbatim(self, parser):
        content = "line one\n\n  indented\n---\nend\n"
        note = Note(id="t", title="T", content=content)
        assert parser.render_mirror(note).endswith(content)


class TestParseDocument:
    """Tests for parsing vault files on import."""

    def test_no_header_passes_text_through(self, parser):
        text = "Just some text\nwith [[Links]]\n"
        doc = parser.parse_document(text, "My File")
        assert doc.title == "My File"
        assert doc.content == text
        assert doc.tags == []

    def test_header_title_and_tag_list(self, parser):
        text = "---\ntitle: Custom Title\ntags: [x, y]\n---\nBody text"
        doc = parser.parse_document(text, "file-stem")
        assert doc.title == "Custom Title"
        assert doc.tags == ["x", "y"]
        assert doc.content == "Body text"

    def test_header_yaml_list_tags(self, parser):
        text = "---\ntags:\n  - beta\n  - alpha\n---\nBody"
        doc = parser.parse_document(text, "stem")
        assert doc.title == "stem"
        assert doc.tags == ["alpha", "beta"]

    def test_header_comma_separated_tags(self, parser):
        """A quoted comma-separated string is split into tags."""
        text = '---\ntags: "one, two"\n---\nBody'
        doc = parser.parse_document(text, "stem")
        assert doc.tags == ["one", "two"]

    def test_quotes_stripped_from_values(self, parser):
        text = "---\ntitle: \"Quoted\"\ntags: ['a', \"b\"]\n---\nBody"
        doc = parser.parse_document(text, "stem")
        assert doc.title == "Quoted"
        assert doc.tags == ["a", "b"]

    def test_malformed_yaml_falls_back_to_lines(self, parser):
        """A header YAML rejects is still read line by line."""
        text = "---\ntitle: Foo: Bar\ntags: [a, b]\n---\nBody"
        doc = parser.parse_document(text, "stem")
        assert doc.title == "Foo: Bar"
        assert doc.tags == ["a", "b"]
        assert doc.content == "Body"

    def test_unclosed_header_is_content(self, parser):
        """Without a closing delimiter there is no header."""
        text = "---\ntitle: Nope\nstill body"
        doc = parser.parse_document(text, "stem")
        assert doc.title == "stem"
        assert doc.content == text

    def test_mirror_format_read_back(self, parser):
        """Files written by the store re-import to the same fields."""
        text = "# Round Trip\n\nTags: #x #y\n\nBody line"
        doc = parser.parse_document(text, "Round Trip")
        assert doc.title == "Round Trip"
        assert doc.tags == ["x", "y"]
        assert doc.content == "Body line"

    def test_mirror_heading_restores_unsafe_title(self, parser):
        """The heading keeps characters the filename had to drop."""
        note = Note(id="client/server:-notes", title="Client/Server: notes", content="x")
        text = parser.render_mirror(note)
        doc = parser.parse_document(text, "ClientServer notes")
        assert doc.title == "Client/Server: notes"
        assert doc.content == "x"

    def test_unrelated_heading_kept(self, parser):
        """A heading running into text under another name stays in the body."""
        text = "# Chapter One\nIt was a dark night."
        doc = parser.parse_document(text, "novel")
        assert doc.title == "novel"
        assert doc.content == text
        assert not doc.mirrored

    def test_renamed_mirror_read_back(self, parser):
        """A mirror whose note was retitled still yields heading and tags."""
        note = Note(id="original", title="Renamed", content="body", tags=["t"])
        doc = parser.parse_document(parser.render_mirror(note), "Original")
        assert doc.title == "Renamed"
        assert doc.tags == ["t"]
        assert doc.content == "body"
        assert doc.mirrored

    def test_spaced_tag_round_trip(self, parser):
        note = Note(id="spaced", title="Spaced", content="body", tags=["my tag"])
        text = parser.render_mirror(note)
        assert "Tags: #my-tag\n" in text
        doc = parser.parse_document(text, "Spaced")
        assert doc.tags == ["my-tag"]
        assert doc.content == "body"
