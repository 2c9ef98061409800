"""SQLAlchemy database models for the knowledge layer."""
import datetime
import logging
from typing import Optional

from sqlalchemy import (CheckConstraint, Column, DateTime, ForeignKey, Index,
                        Integer, String, Table, Text, create_engine, event, text)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool

from knowledge_layer.config import config
from knowledge_layer.exceptions import SchemaError
from knowledge_layer.models.schema import LinkKind

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()

# Association table for tags and notes
note_tags = Table(
    "note_tags",
    Base.metadata,
    Column("note_id", String(255), ForeignKey("notes.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)


class DBNote(Base):
    """Database model for a note (the canonical record)."""
    __tablename__ = "notes"
    id = Column(String(255), primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False, default="")
    path = Column(Text, nullable=False, unique=True)
    created_at = Column(DateTime, default=datetime.datetime.now, nullable=False)
    modified_at = Column(DateTime, default=datetime.datetime.now, nullable=False, index=True)

    tags = relationship("DBTag", secondary=note_tags, back_populates="notes")

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id='{self.id}', title='{self.title}')>"


class DBTag(Base):
    """Database model for a tag."""
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)

    notes = relationship("DBNote", secondary=note_tags, back_populates="tags")

    def __repr__(self) -> str:
        """Return string representation of tag."""
        return f"<Tag(id={self.id}, name='{self.name}')>"


class DBLink(Base):
    """Database model for an edge in the link graph.

    No foreign keys: a reference may name a note that does not exist yet,
    and its backlink row is keyed by that missing note's slug.
    """
    __tablename__ = "links"
    id = Column(Integer, primary_key=True, autoincrement=True)
    origin_id = Column(String(255), nullable=False, index=True)
    target_id = Column(String(255), nullable=False, index=True)
    kind = Column(String(20), default=LinkKind.REFERENCE.value, nullable=False)
    context = Column(Text, nullable=False, default="")

    __table_args__ = (
        CheckConstraint(
            "kind IN ('reference', 'backlink')", name="ck_links_kind"
        ),
        # References may repeat; a backlink pair is stored once
        Index(
            "uq_links_backlink_pair",
            "origin_id",
            "target_id",
            unique=True,
            sqlite_where=text("kind = 'backlink'"),
        ),
    )

    def __repr__(self) -> str:
        """Return string representation of link."""
        return (
            f"<Link(id={self.id}, origin='{self.origin_id}', "
            f"target='{self.target_id}', kind='{self.kind}')>"
        )


def init_db(database_url: Optional[str] = None) -> Engine:
    """Create the engine and every relation the store needs.

    Applies WAL journaling and a busy timeout so concurrent readers do not
    block on a writer, then creates the ORM tables and the FTS5 table.

    Raises:
        SchemaError: If any relation cannot be created. Fatal at startup.
    """
    url = database_url or config.get_db_url()

    # SQLite is single-writer, so a small pool is enough
    engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_pre_ping=True,
        connect_args={"timeout": 30, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    try:
        Base.metadata.create_all(engine)
        init_search_index(engine)
    except SQLAlchemyError as e:
        engine.dispose()
        logger.error(f"Failed to create knowledge store schema at {url}: {e}")
        raise SchemaError(
            "Failed to create knowledge store schema", original_error=e
        ) from e

    logger.info(f"Knowledge store initialized at {url}")
    return engine


def init_search_index(engine: Engine) -> None:
    """Create the FTS5 table holding one search entry per note.

    The table stores its own copy of title and content and is maintained
    explicitly inside each write transaction. The porter tokenizer stems
    terms so "running" and "runs" both match "run".
    """
    with engine.connect() as conn:
        conn.execute(text("""
            CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
                id UNINDEXED,
                title,
                content,
                tokenize='porter unicode61'
            )
        """))
        conn.commit()


def rebuild_search_index(engine: Engine) -> int:
    """Rebuild the FTS5 table from the notes table.

    Returns:
        Number of entries indexed.
    """
    with engine.begin() as conn:
        conn.execute(text("DELETE FROM notes_fts"))
        conn.execute(text("""
            INSERT INTO notes_fts(id, title, content)
            SELECT id, title, content FROM notes
        """))
        count = conn.execute(text("SELECT COUNT(*) FROM notes_fts")).scalar()

    return count


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine)
