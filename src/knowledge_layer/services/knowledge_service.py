"""Service layer for knowledge base operations."""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from knowledge_layer.config import KnowledgeConfig, config as default_config
from knowledge_layer.exceptions import (ErrorCode, KnowledgeError,
                                        ValidationError)
from knowledge_layer.models.db_models import init_db
from knowledge_layer.models.schema import (GraphResult, LinkDirection, Note,
                                           NoteSummary, SearchResult)
from knowledge_layer.observability import metrics, traced
from knowledge_layer.services.vault_sync import VaultScanResult, VaultSync
from knowledge_layer.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


def _not_initialized() -> KnowledgeError:
    return KnowledgeError(
        "Knowledge service is not initialized",
        code=ErrorCode.STORAGE_CONNECTION_FAILED,
    )


class KnowledgeService:
    """Owns the store for one vault and exposes the knowledge operations.

    Construct it, call ``initialize()`` (or use it as a context manager),
    and ``close()`` it when done. Several services may coexist, each on
    its own vault.
    """

    def __init__(self, settings: Optional[KnowledgeConfig] = None):
        self.settings = settings or default_config
        self.repository: Optional[NoteRepository] = None
        self.vault_sync: Optional[VaultSync] = None
        self._engine = None

    def initialize(self) -> "KnowledgeService":
        """Open the store and optionally import the vault.

        Raises:
            SchemaError: If the store's tables cannot be created.
        """
        if self.repository is not None:
            return self

        vault_path = self.settings.get_vault_path()
        self._engine = init_db(self.settings.get_db_url())
        self.repository = NoteRepository(
            vault_dir=vault_path,
            engine=self._engine,
            note_extension=self.settings.note_extension,
            preview_length=self.settings.preview_length,
            settings=self.settings,
        )
        self.vault_sync = VaultSync(
            self.repository, database_name=self.settings.database_name
        )
        logger.info(f"Knowledge service initialized for vault {vault_path}")

        if self.settings.scan_on_startup:
            try:
                self.vault_sync.scan_and_index_vault()
            except KnowledgeError as e:
                logger.error(f"Startup vault scan failed: {e}")
        return self

    def close(self) -> None:
        """Release the store's connections."""
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Knowledge service closed")
        self._engine = None
        self.repository = None
        self.vault_sync = None

    def __enter__(self) -> "KnowledgeService":
        return self.initialize()

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def _repo(self) -> NoteRepository:
        if self.repository is None:
            raise _not_initialized()
        return self.repository

    @property
    def _sync(self) -> VaultSync:
        if self.vault_sync is None:
            raise _not_initialized()
        return self.vault_sync

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    @traced("create_note")
    def create_note(
        self, title: str, content: str = "", tags: Optional[List[str]] = None
    ) -> Note:
        """Create a note. See NoteRepository.create."""
        return self._repo.create(title, content, tags)

    @traced("read_note")
    def read_note(self, note_id: str) -> Optional[Note]:
        return self._repo.get(note_id)

    @traced("read_note_by_path")
    def read_note_by_path(self, path: Union[str, Path]) -> Optional[Note]:
        return self._repo.get_by_path(path)

    @traced("update_note")
    def update_note(
        self,
        note_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Note:
        """Update the supplied fields of a note. See NoteRepository.update."""
        return self._repo.update(note_id, title=title, content=content, tags=tags)

    @traced("delete_note")
    def delete_note(self, note_id: str) -> bool:
        return self._repo.delete(note_id)

    @traced("list_notes")
    def list_notes(self) -> List[NoteSummary]:
        return self._repo.list_notes()

    # ------------------------------------------------------------------
    # Search and graph
    # ------------------------------------------------------------------

    @traced("search")
    def search(
        self,
        query: str,
        tags: Optional[List[str]] = None,
        limit: Optional[int] = None,
    ) -> List[SearchResult]:
        """Full-text search, most relevant first.

        Args:
            query: Words to match, or FTS5 syntax (phrases, prefixes,
                AND/OR/NOT).
            tags: Keep notes carrying at least one of these tags.
            limit: Maximum results (default config.default_search_limit).
        """
        return self._repo.search_index.search(
            query,
            tags=tags,
            limit=self._check_limit(limit, self.settings.default_search_limit),
        )

    @traced("get_links")
    def get_links(
        self,
        note_id: str,
        direction: Union[str, LinkDirection] = LinkDirection.OUTGOING,
        limit: Optional[int] = None,
    ) -> GraphResult:
        """Edges around a note: outgoing, incoming or both.

        Raises:
            ValidationError: If the direction is not recognized.
        """
        try:
            direction = LinkDirection(direction)
        except ValueError as e:
            raise ValidationError(
                f"Invalid direction: {direction}",
                field="direction",
                value=direction,
                code=ErrorCode.INVALID_DIRECTION,
            ) from e
        return self._repo.links.get_links(
            note_id,
            direction,
            self._check_limit(limit, self.settings.default_graph_limit),
        )

    # ------------------------------------------------------------------
    # Vault
    # ------------------------------------------------------------------

    @traced("scan_and_index_vault")
    def scan_and_index_vault(
        self, path_override: Optional[Union[str, Path]] = None
    ) -> VaultScanResult:
        return self._sync.scan_and_index_vault(path_override)

    def watch_vault(self, path_override: Optional[Union[str, Path]] = None) -> None:
        self._sync.watch_vault(path_override)

    @staticmethod
    def _check_limit(limit: Optional[int], default: int) -> int:
        if limit is None:
            return default
        if limit < 1:
            raise ValidationError("Limit must be at least 1", field="limit", value=limit)
        return limit

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Store counts, search health and operation metrics.

        Metrics are process-wide: every service in the process records
        into the same collector.
        """
        repo = self._repo
        return {
            "vault_dir": str(repo.vault_dir),
            "note_count": repo.count_notes(),
            "search_entries": repo.search_index.entry_count(),
            "search_available": repo.search_index.available,
            "metrics": metrics.get_summary(),
            "operations": metrics.get_metrics(),
        }
