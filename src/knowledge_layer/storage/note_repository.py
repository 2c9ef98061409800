"""Repository for notes: the canonical store and its vault mirror.

Every mutation runs in one database transaction that covers the note row,
its tags, its edges in the link graph and its search entry. The vault
mirror file is written after those rows are staged and before the commit,
so a mirror failure leaves nothing behind.
"""
import logging
import threading
from pathlib import Path
from typing import List, Optional, Union

from sqlalchemy import func, or_, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from knowledge_layer.config import KnowledgeConfig, config
from knowledge_layer.exceptions import (ErrorCode, DuplicateNoteError,
                                        MirrorIOError, NoteNotFoundError,
                                        NoteValidationError)
from knowledge_layer.models.db_models import (DBNote, DBTag, get_session_factory,
                                              init_db)
from knowledge_layer.models.schema import (Note, NoteSummary,
                                           ensure_timezone_aware, utc_now)
from knowledge_layer.storage.fts_index import FtsIndex
from knowledge_layer.storage.link_extractor import extract_links
from knowledge_layer.storage.link_repository import LinkRepository
from knowledge_layer.storage.markdown_parser import MarkdownParser
from knowledge_layer.utils import mirror_filename, slugify

logger = logging.getLogger(__name__)


class NoteRepository:
    """Stores notes and keeps the link graph, search index and mirror in step."""

    def __init__(
        self,
        vault_dir: Optional[Path] = None,
        engine: Optional[Engine] = None,
        note_extension: Optional[str] = None,
        preview_length: Optional[int] = None,
        settings: Optional[KnowledgeConfig] = None,
    ):
        """Initialize the repository.

        Args:
            vault_dir: Directory holding the mirror files. If None, uses
                settings.vault_dir.
            engine: Pre-configured SQLAlchemy engine. When omitted, a store
                file named settings.database_name is opened inside the vault.
            note_extension: Mirror file extension. If None, uses
                settings.note_extension.
            preview_length: Characters of content shown in search previews.
            settings: Configuration that relative paths and defaults come
                from. If None, uses the module-level config.
        """
        self.settings = settings or config
        self.vault_dir = self.settings.get_absolute_path(
            Path(vault_dir) if vault_dir else self.settings.vault_dir
        )
        self.vault_dir.mkdir(parents=True, exist_ok=True)
        self.note_extension = note_extension or self.settings.note_extension

        if engine is not None:
            self.engine = engine
        else:
            self.engine = init_db(
                f"sqlite:///{self.vault_dir / self.settings.database_name}"
            )
        self.session_factory = get_session_factory(self.engine)

        self._parser = MarkdownParser()
        self.links = LinkRepository(self.session_factory)
        self.search_index = FtsIndex(
            self.engine,
            self.session_factory,
            preview_length=preview_length or self.settings.preview_length,
        )

        # SQLite is single-writer; serialize this process's mutations
        self.file_lock = threading.RLock()

        logger.info(f"NoteRepository initialized: vault_dir={self.vault_dir}")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        title: str,
        content: str = "",
        tags: Optional[List[str]] = None,
        *,
        path: Optional[Union[str, Path]] = None,
    ) -> Note:
        """Create a note and its mirror file.

        Args:
            title: Note title; its slug becomes the note ID.
            content: Body text. Wikilinks in it become graph edges.
            tags: Tag names.
            path: Mirror file to use instead of one named after the title.
                Relative paths are taken from the vault directory.

        Returns:
            The stored note, with ``links`` holding the extracted references.

        Raises:
            NoteValidationError: If the title is empty.
            DuplicateNoteError: If the ID or mirror path is already taken.
            MirrorIOError: If the mirror file cannot be written.
        """
        self._require_title(title)
        content = content or ""
        note_id = slugify(title)
        if path is None:
            path = self.vault_dir / mirror_filename(title, self.note_extension)
        elif not Path(path).is_absolute():
            path = self.vault_dir / path
        path = str(path)
        now = utc_now()
        note = Note(
            id=note_id,
            title=title,
            content=content,
            path=path,
            tags=tags or [],
            created_at=now,
            modified_at=now,
            links=extract_links(content, note_id),
        )

        with self.file_lock:
            try:
                with self.session_factory() as session:
                    taken = session.scalar(
                        select(DBNote.id).where(
                            or_(DBNote.id == note_id, DBNote.path == path)
                        )
                    )
                    if taken is not None:
                        raise DuplicateNoteError(note_id, path=path)
                    self._sync_note_to_db(session, note)
                    self._commit_with_mirror(session, note, operation="create")
            except IntegrityError as e:
                raise DuplicateNoteError(note_id, path=path) from e

        logger.info(f"Created note '{note_id}' ({len(note.links)} links)")
        return note

    def update(
        self,
        note_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Note:
        """Merge the supplied fields into an existing note.

        ID, creation time and mirror path never change, even when the
        title does. Links, search entry and mirror are re-derived from the
        merged note.

        Raises:
            NoteNotFoundError: If no note has this ID.
            NoteValidationError: If a blank title is supplied.
            MirrorIOError: If the mirror file cannot be written.
        """
        if title is not None:
            self._require_title(title)

        with self.file_lock:
            with self.session_factory() as session:
                db_note = session.scalar(
                    select(DBNote)
                    .options(selectinload(DBNote.tags))
                    .where(DBNote.id == note_id)
                )
                if db_note is None:
                    raise NoteNotFoundError(note_id)
                existing = self._db_note_to_model(db_note)

                merged_content = content if content is not None else existing.content
                note = Note(
                    id=existing.id,
                    title=title if title is not None else existing.title,
                    content=merged_content,
                    path=existing.path,
                    tags=tags if tags is not None else existing.tags,
                    created_at=existing.created_at,
                    modified_at=max(utc_now(), existing.modified_at),
                    links=extract_links(merged_content, existing.id),
                )
                self._sync_note_to_db(session, note)
                self._commit_with_mirror(session, note, operation="update")

        logger.info(f"Updated note '{note_id}'")
        return note

    def delete(self, note_id: str) -> bool:
        """Delete a note, its edges, its search entry and its mirror file.

        Returns:
            False if no note has this ID, True otherwise. Failing to remove
            the mirror file is logged and does not undo the delete.
        """
        with self.file_lock:
            with self.session_factory() as session:
                db_note = session.get(DBNote, note_id)
                if db_note is None:
                    return False
                path = Path(db_note.path)
                removed = self.links.remove_links(session, note_id)
                self.search_index.remove_note(session, note_id)
                session.delete(db_note)
                session.commit()

            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                error = MirrorIOError(
                    f"Failed to remove mirror for note {note_id}",
                    operation="delete",
                    path=str(path),
                    code=ErrorCode.MIRROR_DELETE_FAILED,
                    original_error=e,
                )
                logger.warning(f"Note '{note_id}' deleted but mirror kept: {error}")

        logger.info(f"Deleted note '{note_id}' ({removed} edges)")
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, note_id: str) -> Optional[Note]:
        """Get a note by ID. ``links`` is always empty on reads."""
        with self.session_factory() as session:
            db_note = session.scalar(
                select(DBNote)
                .options(selectinload(DBNote.tags))
                .where(DBNote.id == note_id)
            )
            return self._db_note_to_model(db_note) if db_note else None

    def get_by_path(self, path: Union[str, Path]) -> Optional[Note]:
        """Get a note by mirror path; relative paths are taken from the vault."""
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.vault_dir / candidate
        with self.session_factory() as session:
            db_note = session.scalar(
                select(DBNote)
                .options(selectinload(DBNote.tags))
                .where(DBNote.path == str(candidate))
            )
            return self._db_note_to_model(db_note) if db_note else None

    def list_notes(self) -> List[NoteSummary]:
        """List every note, most recently modified first."""
        with self.session_factory() as session:
            db_notes = session.scalars(
                select(DBNote)
                .options(selectinload(DBNote.tags))
                .order_by(DBNote.modified_at.desc(), DBNote.id)
            ).all()
            return [
                NoteSummary(
                    id=n.id,
                    title=n.title,
                    path=n.path,
                    tags=sorted(t.name for t in n.tags),
                    created_at=ensure_timezone_aware(n.created_at),
                    modified_at=ensure_timezone_aware(n.modified_at),
                )
                for n in db_notes
            ]

    def count_notes(self) -> int:
        """Get total count of notes in the store."""
        with self.session_factory() as session:
            return session.scalar(select(func.count(DBNote.id))) or 0

    # ------------------------------------------------------------------
    # Write path internals
    # ------------------------------------------------------------------

    def _sync_note_to_db(self, session: Session, note: Note) -> None:
        """Stage a note's row, tags, edges and search entry in the session.

        This is the single write path for the canonical record and the two
        derived indexes. The caller controls the transaction boundary.
        """
        db_note = session.get(DBNote, note.id)
        if db_note:
            db_note.title = note.title
            db_note.content = note.content
            db_note.modified_at = note.modified_at
        else:
            db_note = DBNote(
                id=note.id,
                title=note.title,
                content=note.content,
                path=note.path,
                created_at=note.created_at,
                modified_at=note.modified_at,
            )
            session.add(db_note)

        session.flush()

        db_note.tags = [self._get_or_create_tag(session, tag) for tag in note.tags]
        self.links.replace_links(session, note.id, note.links)
        self.search_index.index_note(session, note.id, note.title, note.content)
        session.flush()

    def _get_or_create_tag(self, session: Session, tag_name: str) -> DBTag:
        """Get or create a tag without racing a concurrent insert."""
        session.execute(
            text("INSERT OR IGNORE INTO tags (name) VALUES (:name)"), {"name": tag_name}
        )
        return session.scalar(select(DBTag).where(DBTag.name == tag_name))

    def _commit_with_mirror(self, session: Session, note: Note, operation: str) -> None:
        """Write the mirror file, then commit.

        A failed write raises before the commit, so the session rolls back
        on close. A failed commit puts the previous mirror back.
        """
        path = Path(note.path)
        previous = self._read_mirror(path)
        self._write_mirror(path, self._parser.render_mirror(note), operation)
        try:
            session.commit()
        except SQLAlchemyError:
            logger.error(f"Commit failed for note '{note.id}', restoring mirror")
            self._restore_mirror(path, previous)
            raise

    @staticmethod
    def _write_mirror(path: Path, markdown: str, operation: str) -> None:
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(markdown)
        except OSError as e:
            raise MirrorIOError(
                f"Failed to write mirror {path.name}",
                operation=operation,
                path=str(path),
                original_error=e,
            ) from e

    @staticmethod
    def _read_mirror(path: Path) -> Optional[str]:
        """Return the current mirror text, or None if there is none."""
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Cannot read existing mirror {path.name}: {e}")
            return None

    @staticmethod
    def _restore_mirror(path: Path, previous: Optional[str]) -> None:
        try:
            if previous is None:
                path.unlink(missing_ok=True)
            else:
                path.write_text(previous, encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to restore mirror {path.name}: {e}")

    @staticmethod
    def _require_title(title: Optional[str]) -> None:
        if not title or not title.strip():
            raise NoteValidationError(
                "Note title is required",
                field="title",
                value=title,
                code=ErrorCode.NOTE_TITLE_REQUIRED,
            )

    @staticmethod
    def _db_note_to_model(db_note: DBNote) -> Note:
        """Convert a stored row to a Note. Links are left empty."""
        return Note(
            id=db_note.id,
            title=db_note.title,
            content=db_note.content or "",
            path=db_note.path,
            tags=[t.name for t in (db_note.tags or [])],
            created_at=ensure_timezone_aware(db_note.created_at),
            modified_at=ensure_timezone_aware(db_note.modified_at),
        )
