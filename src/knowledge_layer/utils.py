"""Utility functions for the knowledge layer."""
import re

_WHITESPACE_RUN = re.compile(r"\s+")

# Characters that cannot appear in a filename on common filesystems
_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def slugify(title: str) -> str:
    """Derive a note ID from a title.

    Lowercases the title and collapses each whitespace run into a single
    hyphen. The mapping is lossy: "Foo Bar" and "foo   bar" share a slug.

    Examples:
        "Daily Review" -> "daily-review"
        "  Rust   Ownership " -> "rust-ownership"
        "rust-ownership" -> "rust-ownership"

    Args:
        title: The note title.

    Returns:
        The slug (empty if the title is blank).
    """
    return _WHITESPACE_RUN.sub("-", title.strip().lower())


def mirror_filename(title: str, extension: str = ".md") -> str:
    """Build the vault filename for a note title.

    Keeps the title readable (spaces and case survive) and only drops
    characters that would be path separators or invalid on disk, so a file
    named after a title maps back onto the same path.

    Examples:
        "Daily Review" -> "Daily Review.md"
        "Client/Server: notes" -> "ClientServer notes.md"

    Args:
        title: The note title.
        extension: File extension including the leading dot.

    Returns:
        A filename safe to create inside the vault directory.
    """
    name = _UNSAFE_FILENAME_CHARS.sub("", title).strip().lstrip(".")
    if not name:
        name = "untitled"
    return f"{name}{extension}"


def escape_like_pattern(value: str) -> str:
    """Escape SQL LIKE wildcards to treat them as literals.

    Args:
        value: User input string that may contain LIKE wildcards

    Returns:
        String with '%', '_', and '\\' escaped for safe use in LIKE clauses

    Example:
        >>> escape_like_pattern("100% complete")
        '100\\% complete'
    """
    escape_table = str.maketrans(
        {
            "\\": "\\\\",  # Escape backslash first
            "%": "\\%",
            "_": "\\_",
        }
    )
    return value.translate(escape_table)
