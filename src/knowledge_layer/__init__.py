"""
Knowledge Layer - a personal knowledge base engine.

Notes are stored in SQLite alongside a human-editable markdown vault.
Notes reference each other with [[Title]] wikilinks; every write keeps the
canonical record, the link graph (with backlinks) and the FTS5 search index
in step.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("knowledge-layer")
except PackageNotFoundError:
    __version__ = "0.1.0"
