"""Repository for the link graph: forward references and their backlinks."""
import logging
from typing import List

from sqlalchemy import and_, bindparam, delete, func, insert, or_, select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from knowledge_layer.models.db_models import DBLink
from knowledge_layer.models.schema import GraphResult, Link, LinkDirection, LinkKind
from knowledge_layer.utils import slugify

logger = logging.getLogger(__name__)


class LinkRepository:
    """Maintains and queries edge rows derived from note content.

    Write methods take the caller's session so edges change in the same
    transaction as the note they were derived from. Read methods open
    their own session.
    """

    def __init__(self, session_factory):
        """Initialize the link repository.

        Args:
            session_factory: SQLAlchemy session factory for read queries.
        """
        self.session_factory = session_factory

    def replace_links(self, session: Session, note_id: str, links: List[Link]) -> None:
        """Replace a note's forward links and materialize their backlinks.

        Deletes every reference row originating at the note, inserts one
        row per extracted link (repeats kept), then inserts a backlink row
        from each distinct target to the note unless one already exists.
        Backlinks are written for targets that are not notes yet, so a note
        created later already knows what links to it. Backlinks into this
        note from targets it no longer references are dropped.

        Args:
            session: Active session (caller commits).
            note_id: The origin note.
            links: Extracted links; targets are titles and get slugified.
        """
        session.execute(
            delete(DBLink).where(
                and_(
                    DBLink.origin_id == note_id,
                    DBLink.kind == LinkKind.REFERENCE.value,
                )
            )
        )

        reference_rows = []
        targets: List[str] = []
        for link in links:
            target_id = slugify(link.target)
            if not target_id:
                continue
            reference_rows.append({
                "origin_id": note_id,
                "target_id": target_id,
                "kind": LinkKind.REFERENCE.value,
                "context": link.context,
            })
            if target_id not in targets:
                targets.append(target_id)

        if reference_rows:
            session.execute(insert(DBLink.__table__), reference_rows)

        # Prune backlinks whose reciprocal reference is gone
        prune = text(
            "DELETE FROM links WHERE kind = 'backlink' AND target_id = :nid"
            + (" AND origin_id NOT IN :targets" if targets else "")
        )
        params = {"nid": note_id}
        if targets:
            prune = prune.bindparams(bindparam("targets", expanding=True))
            params["targets"] = targets
        session.execute(prune, params)

        if targets:
            session.execute(
                sqlite_insert(DBLink.__table__).on_conflict_do_nothing(),
                [
                    {
                        "origin_id": target_id,
                        "target_id": note_id,
                        "kind": LinkKind.BACKLINK.value,
                        "context": "",
                    }
                    for target_id in targets
                ],
            )

    def remove_links(self, session: Session, note_id: str) -> int:
        """Delete every edge where the note is origin or target.

        Returns:
            Number of rows deleted.
        """
        result = session.execute(
            delete(DBLink).where(
                or_(DBLink.origin_id == note_id, DBLink.target_id == note_id)
            )
        )
        return result.rowcount or 0

    def get_links(
        self,
        note_id: str,
        direction: LinkDirection = LinkDirection.OUTGOING,
        limit: int = 100,
    ) -> GraphResult:
        """Query edges around a note.

        "both" returns outgoing rows followed by incoming rows. They are
        not de-duplicated against each other since each row is a distinct
        edge.

        Args:
            note_id: The note at the center of the query.
            direction: Which edges to return.
            limit: Maximum number of edges returned.

        Returns:
            GraphResult with the edges and the count before truncation.
        """
        direction = LinkDirection(direction)
        with self.session_factory() as session:
            outgoing: List[DBLink] = []
            incoming: List[DBLink] = []
            total = 0
            if direction in (LinkDirection.OUTGOING, LinkDirection.BOTH):
                total += self._count(session, DBLink.origin_id == note_id)
                outgoing = list(session.scalars(
                    select(DBLink)
                    .where(DBLink.origin_id == note_id)
                    .order_by(DBLink.id)
                    .limit(limit)
                ).all())
            if direction in (LinkDirection.INCOMING, LinkDirection.BOTH):
                total += self._count(session, DBLink.target_id == note_id)
                remaining = limit - len(outgoing)
                if remaining > 0:
                    incoming = list(session.scalars(
                        select(DBLink)
                        .where(DBLink.target_id == note_id)
                        .order_by(DBLink.id)
                        .limit(remaining)
                    ).all())

            links = [self._db_link_to_model(row) for row in outgoing + incoming]

        return GraphResult(links=links, total_count=total)

    def count_for_note(self, note_id: str) -> int:
        """Count edges where the note is origin or target."""
        with self.session_factory() as session:
            return self._count(
                session,
                or_(DBLink.origin_id == note_id, DBLink.target_id == note_id),
            )

    @staticmethod
    def _count(session: Session, condition) -> int:
        return session.scalar(
            select(func.count()).select_from(DBLink).where(condition)
        ) or 0

    @staticmethod
    def _db_link_to_model(row: DBLink) -> Link:
        """Map a stored edge row to a Link."""
        return Link(
            origin_id=row.origin_id,
            target=row.target_id,
            kind=LinkKind(row.kind),
            context=row.context or "",
        )
