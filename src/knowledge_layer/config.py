"""Configuration module for the knowledge layer."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives outside any checkout
_USER_ENV = Path.home() / ".knowledge-layer" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class KnowledgeConfig(BaseModel):
    """Configuration for the knowledge layer."""

    # Base directory that relative paths are resolved against
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("KNOWLEDGE_BASE_DIR", "."))
    )
    # Vault: one markdown file per note plus the embedded store file
    vault_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("KNOWLEDGE_VAULT_DIR", "knowledge-vault"))
    )
    database_name: str = Field(
        default_factory=lambda: os.getenv("KNOWLEDGE_DATABASE_NAME", "knowledge.db")
    )
    note_extension: str = Field(default=".md")
    # Query defaults
    default_search_limit: int = Field(
        default_factory=lambda: int(os.getenv("KNOWLEDGE_SEARCH_LIMIT", "50"))
    )
    default_graph_limit: int = Field(
        default_factory=lambda: int(os.getenv("KNOWLEDGE_GRAPH_LIMIT", "100"))
    )
    tool_search_limit: int = Field(
        default_factory=lambda: int(os.getenv("KNOWLEDGE_TOOL_SEARCH_LIMIT", "20"))
    )
    preview_length: int = Field(
        default_factory=lambda: int(os.getenv("KNOWLEDGE_PREVIEW_LENGTH", "200"))
    )
    # Import unrecognized vault files when the service starts
    scan_on_startup: bool = Field(
        default_factory=lambda: _env_flag("KNOWLEDGE_SCAN_ON_STARTUP", "true")
    )

    @model_validator(mode="after")
    def _validate_limits(self) -> "KnowledgeConfig":
        """Reject limits that would make every query return nothing."""
        for name in (
            "default_search_limit",
            "default_graph_limit",
            "tool_search_limit",
            "preview_length",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if not self.note_extension.startswith("."):
            raise ValueError("note_extension must start with '.'")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return (self.base_dir / path).resolve()

    def get_vault_path(self) -> Path:
        """Get the absolute vault directory, creating it if needed."""
        vault_path = self.get_absolute_path(self.vault_dir)
        vault_path.mkdir(parents=True, exist_ok=True)
        return vault_path

    def get_database_path(self) -> Path:
        """Get the absolute path of the store file inside the vault."""
        return self.get_vault_path() / self.database_name

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        return f"sqlite:///{self.get_database_path()}"


# Create a global config instance
config = KnowledgeConfig()
