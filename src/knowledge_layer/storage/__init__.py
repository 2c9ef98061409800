"""Storage layer for the knowledge layer."""

from knowledge_layer.storage.fts_index import FtsIndex
from knowledge_layer.storage.link_extractor import extract_links
from knowledge_layer.storage.link_repository import LinkRepository
from knowledge_layer.storage.markdown_parser import MarkdownParser
from knowledge_layer.storage.note_repository import NoteRepository

__all__ = [
    "FtsIndex",
    "LinkRepository",
    "MarkdownParser",
    "NoteRepository",
    "extract_links",
]
