"""One-way import of vault markdown files into the note store."""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from knowledge_layer.exceptions import (ErrorCode, KnowledgeError,
                                        MirrorIOError, VaultImportError)
from knowledge_layer.storage.markdown_parser import MarkdownParser
from knowledge_layer.storage.note_repository import NoteRepository
from knowledge_layer.utils import slugify

logger = logging.getLogger(__name__)


@dataclass
class VaultScanResult:
    """Outcome of one vault scan."""

    scanned: int = 0
    imported: List[str] = field(default_factory=list)  # note IDs
    skipped: List[str] = field(default_factory=list)  # file names
    failed: List[VaultImportError] = field(default_factory=list)


class VaultSync:
    """Imports markdown files the store does not know about yet.

    Files whose path already belongs to a note are left alone, so a scan
    never overwrites or duplicates a note. Edits made to mirror files
    outside the store are not picked up.
    """

    def __init__(
        self,
        repository: NoteRepository,
        database_name: Optional[str] = None,
    ):
        self.repository = repository
        self.database_name = database_name or repository.settings.database_name
        self._parser = MarkdownParser()

    def scan_and_index_vault(
        self, path_override: Optional[Union[str, Path]] = None
    ) -> VaultScanResult:
        """Create a note for every unrecognized markdown file in the vault.

        Only the top level of the directory is scanned. A file that fails
        to read, parse or create is logged and recorded in the result; the
        scan carries on with the next file.

        Args:
            path_override: Directory to scan instead of the repository's
                vault directory. Relative paths are taken from the
                repository settings' base directory.

        Returns:
            Counts and names of what was imported, skipped and failed.

        Raises:
            MirrorIOError: If the directory does not exist.
        """
        vault = (
            self.repository.settings.get_absolute_path(Path(path_override))
            if path_override
            else self.repository.vault_dir
        )
        if not vault.is_dir():
            raise MirrorIOError(
                f"Vault directory not found: {vault}",
                operation="scan",
                path=str(vault),
                code=ErrorCode.MIRROR_READ_FAILED,
            )

        result = VaultScanResult()
        files = sorted(
            p for p in vault.glob(f"*{self.repository.note_extension}")
            if p.is_file() and p.name != self.database_name
        )
        for file_path in files:
            result.scanned += 1
            if self.repository.get_by_path(file_path) is not None:
                result.skipped.append(file_path.name)
                continue
            try:
                note_id = self._import_file(file_path)
            except (KnowledgeError, OSError, ValueError, SQLAlchemyError) as e:
                error = VaultImportError(
                    f"Failed to import {file_path.name}",
                    file_name=file_path.name,
                    original_error=e,
                )
                logger.error(str(error))
                result.failed.append(error)
                continue
            if note_id is None:
                result.skipped.append(file_path.name)
            else:
                result.imported.append(note_id)

        logger.info(
            f"Vault scan of {vault}: {result.scanned} files, "
            f"{len(result.imported)} imported, {len(result.skipped)} skipped, "
            f"{len(result.failed)} failed"
        )
        return result

    def watch_vault(self, path_override: Optional[Union[str, Path]] = None) -> None:
        """Live watching is not supported; this only logs the request."""
        target = path_override or self.repository.vault_dir
        logger.info(
            f"Vault watching is not supported ({target}); "
            f"call scan_and_index_vault to import new files"
        )

    def _import_file(self, file_path: Path) -> Optional[str]:
        """Create a note from one file. Returns None if its title is taken."""
        text = file_path.read_text(encoding="utf-8")
        document = self._parser.parse_document(text, file_path.stem)
        existing = self.repository.get(slugify(document.title))
        if existing is not None:
            logger.debug(
                f"Skipping {file_path.name}: title already stored as '{existing.id}'"
            )
            return None
        # A mirror in the vault keeps its file, even if the title moved on
        adopt = document.mirrored and file_path.parent == self.repository.vault_dir
        note = self.repository.create(
            document.title,
            document.content,
            document.tags,
            path=file_path if adopt else None,
        )
        logger.debug(f"Imported {file_path.name} as '{note.id}'")
        return note.id
