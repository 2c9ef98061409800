"""Agent-facing tool facade over the knowledge service.

Agents call four tools (read, write, search, query graph) with JSON
arguments. Each tool accepts its request model or a plain dict, and
returns the same typed results the service does.
"""
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

import pydantic

from knowledge_layer.exceptions import ValidationError
from knowledge_layer.models.schema import (GraphQueryRequest, GraphResult,
                                           Note, NoteReadRequest,
                                           NoteWriteRequest, SearchResult)
from knowledge_layer.observability import timed_operation
from knowledge_layer.services.knowledge_service import KnowledgeService

logger = logging.getLogger(__name__)

# Title used when an agent creates a note without naming it
DEFAULT_TITLE = "Untitled"

RequestT = TypeVar("RequestT", bound=pydantic.BaseModel)


class KnowledgeTools:
    """Read/write/search/graph tools for automated agents."""

    def __init__(self, service: KnowledgeService):
        self.service = service

    def tool_read_note(
        self, request: Union[NoteReadRequest, Dict[str, Any]]
    ) -> Optional[Note]:
        """Read a note by ID, or by mirror path when no ID is given.

        Returns None when neither is supplied or nothing matches.
        """
        req = self._validate(NoteReadRequest, request)
        with timed_operation("tool_read_note", note_id=req.note_id) as op:
            if req.note_id:
                note = self.service.read_note(req.note_id)
            elif req.path:
                note = self.service.read_note_by_path(req.path)
            else:
                note = None
            op["found"] = note is not None
            return note

    def tool_write_note(
        self, request: Union[NoteWriteRequest, Dict[str, Any]]
    ) -> Note:
        """Update the note named by ``note_id``, or create a new one.

        A new note without a title is created as "Untitled". ``path`` is
        accepted but ignored; mirror paths always follow the title.
        """
        req = self._validate(NoteWriteRequest, request)
        with timed_operation("tool_write_note", note_id=req.note_id) as op:
            if req.note_id:
                note = self.service.update_note(
                    req.note_id,
                    title=req.title,
                    content=req.content,
                    tags=req.tags,
                )
            else:
                note = self.service.create_note(
                    req.title or DEFAULT_TITLE,
                    req.content or "",
                    req.tags,
                )
            op["note_id"] = note.id
            return note

    def tool_search_notes(
        self, query: str, limit: Optional[int] = None
    ) -> List[SearchResult]:
        """Search notes; the default limit is the tool_search_limit setting (20)."""
        if limit is None:
            limit = self.service.settings.tool_search_limit
        return self.service.search(query, limit=limit)

    def tool_query_graph(
        self, request: Union[GraphQueryRequest, Dict[str, Any]]
    ) -> GraphResult:
        """Query edges around a note; empty when no ``note_id`` is given."""
        req = self._validate(GraphQueryRequest, request)
        if not req.note_id:
            return GraphResult()
        return self.service.get_links(req.note_id, req.direction, req.limit)

    @staticmethod
    def _validate(
        model: Type[RequestT], request: Union[RequestT, Dict[str, Any]]
    ) -> RequestT:
        """Accept a request model or validate a dict into one."""
        if isinstance(request, model):
            return request
        try:
            return model.model_validate(request)
        except pydantic.ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            field = ".".join(str(p) for p in first.get("loc", ())) or None
            logger.warning(f"Rejected {model.__name__}: {e}")
            raise ValidationError(
                f"Invalid {model.__name__}: {first.get('msg', e)}",
                field=field,
                value=first.get("input"),
            ) from e
