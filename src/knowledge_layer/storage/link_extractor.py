"""Wikilink extraction from note content."""
import re
from typing import List

from knowledge_layer.models.schema import Link, LinkKind

# [[Target]]: anything up to the first closing bracket
WIKILINK_PATTERN = re.compile(r"\[\[([^\]]+)\]\]")


def extract_links(content: str, origin_id: str = "") -> List[Link]:
    """Extract forward links from note content.

    Links come back in first-occurrence order and repeated references are
    kept, one Link per match. Each link's context is the matched
    ``[[...]]`` span. Only double-bracket references are recognized.

    Args:
        content: Note body text.
        origin_id: ID of the note the content belongs to.

    Returns:
        Reference links whose ``target`` is the bracketed title as written.
    """
    if not content:
        return []
    return [
        Link(
            origin_id=origin_id,
            target=match.group(1),
            kind=LinkKind.REFERENCE,
            context=match.group(0),
        )
        for match in WIKILINK_PATTERN.finditer(content)
    ]
