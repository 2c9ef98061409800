"""Markdown rendering and parsing for vault files.

Renders notes into the vault mirror format and reads vault files back
into a title, tag list and body for import. Import understands an
optional YAML metadata header and the mirror format itself, so files
written by the store re-import cleanly into an empty database.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

import frontmatter
import yaml

from knowledge_layer.models.schema import Note, normalize_tags
from knowledge_layer.utils import mirror_filename

logger = logging.getLogger(__name__)

_QUOTES = "\"'"
_HEADER_DELIMITER = "---"
_TAGS_LINE = re.compile(r"^Tags:((?:\s+#\S+)+)\s*$")


@dataclass
class ParsedDocument:
    """A vault file split into the fields `create` takes."""

    title: str
    content: str
    tags: List[str] = field(default_factory=list)
    # Laid out like a mirror the store wrote
    mirrored: bool = False


class MarkdownParser:
    """Renders the vault mirror and parses vault files for import."""

    def render_mirror(self, note: Note) -> str:
        """Convert a note to its vault mirror text.

        Format: a ``# Title`` heading, a blank line, an optional
        ``Tags: #a #b`` line followed by a blank line, then the raw
        content verbatim.
        """
        markdown = f"# {note.title}\n\n"
        if note.tags:
            markdown += "Tags: " + " ".join(f"#{tag}" for tag in note.tags) + "\n\n"
        return markdown + note.content

    def parse_document(self, text: str, fallback_title: str) -> ParsedDocument:
        """Split a vault file into title, body and tags.

        Args:
            text: Raw file contents.
            fallback_title: Title to use when the file does not name one
                (normally the file stem).

        Returns:
            The parsed document. Files without a recognized header come
            back with their text unchanged as the content.
        """
        if self._has_header(text):
            header = self._parse_header(text)
            if header is not None:
                title, tags, body = header
                return ParsedDocument(
                    title=title or fallback_title, content=body, tags=tags
                )

        mirrored = self._parse_mirror(text, fallback_title)
        if mirrored is not None:
            return mirrored

        return ParsedDocument(title=fallback_title, content=text)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _has_header(text: str) -> bool:
        """A header opens on the first line and must be closed."""
        lines = text.split("\n")
        return lines[0].rstrip() == _HEADER_DELIMITER and _HEADER_DELIMITER in (
            line.rstrip() for line in lines[1:]
        )

    def _parse_header(self, text: str) -> Optional[Tuple[Optional[str], List[str], str]]:
        """Read the ``---`` delimited metadata header.

        Uses the YAML parser first; a header YAML rejects (e.g. an
        unquoted colon in the title) is read line by line instead.
        """
        try:
            post = frontmatter.loads(text)
        except (yaml.YAMLError, ValueError) as e:
            logger.warning(f"Malformed metadata header, reading it line by line: {e}")
            return self._parse_header_lines(text)

        metadata = post.metadata if isinstance(post.metadata, dict) else {}
        title = metadata.get("title")
        title = self._strip_quotes(str(title)) if title is not None else None
        return (
            title or None,
            self._parse_tags(metadata.get("tags")),
            post.content.lstrip("\n"),
        )

    def _parse_header_lines(self, text: str) -> Optional[Tuple[Optional[str], List[str], str]]:
        lines = text.split("\n")
        closing = [
            i for i, line in enumerate(lines)
            if i > 0 and line.rstrip() == _HEADER_DELIMITER
        ]
        if not closing:
            return None
        end = closing[0]

        title: Optional[str] = None
        tags: List[str] = []
        for line in lines[1:end]:
            key, sep, value = line.partition(":")
            if not sep:
                continue
            key = key.strip().lower()
            if key == "title" and title is None:
                title = self._strip_quotes(value.strip()) or None
            elif key == "tags" and not tags:
                tags = self._parse_tags(value.strip())
        body = "\n".join(lines[end + 1:]).lstrip("\n")
        return title, tags, body

    def _parse_mirror(self, text: str, fallback_title: str) -> Optional[ParsedDocument]:
        """Read back a file in the store's own mirror format.

        The first line must be a ``# Title`` heading. It is taken as the
        title when the file is named after it, or when a blank line
        follows it as in every mirror; a renamed note keeps the file it
        was created with. A heading running straight into text stays in
        the body.
        """
        first_line, _, rest = text.partition("\n")
        if not first_line.startswith("# "):
            return None
        title = first_line[2:].rstrip("\r")
        if not title.strip():
            return None
        named_after = mirror_filename(title, "") == fallback_title
        if not named_after and rest and not rest.startswith("\n"):
            return None

        rest = rest[1:] if rest.startswith("\n") else rest
        tags: List[str] = []
        tags_line, _, remainder = rest.partition("\n")
        match = _TAGS_LINE.match(tags_line)
        if match:
            tags = [t.lstrip("#") for t in match.group(1).split()]
            rest = remainder[1:] if remainder.startswith("\n") else remainder
        return ParsedDocument(
            title=title, content=rest, tags=normalize_tags(tags), mirrored=True
        )

    @classmethod
    def _parse_tags(cls, raw: Any) -> List[str]:
        """Accept a YAML list, ``[a, b]`` or ``a, b`` and return clean tags."""
        if raw is None:
            return []
        if isinstance(raw, (list, tuple)):
            values = [str(t) for t in raw]
        else:
            value = str(raw).strip()
            if value.startswith("[") and value.endswith("]"):
                value = value[1:-1]
            values = value.split(",")
        return normalize_tags([cls._strip_quotes(v.strip()) for v in values])

    @staticmethod
    def _strip_quotes(value: str) -> str:
        return value.strip().strip(_QUOTES).strip()
