"""Common test fixtures for the knowledge layer."""

import tempfile
from pathlib import Path

import pytest

from knowledge_layer.config import KnowledgeConfig
from knowledge_layer.models.db_models import init_db
from knowledge_layer.observability import metrics
from knowledge_layer.services.knowledge_service import KnowledgeService
from knowledge_layer.services.tool_facade import KnowledgeTools
from knowledge_layer.storage.note_repository import NoteRepository


@pytest.fixture
def vault_dir():
    """Create a temporary vault directory."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


@pytest.fixture
def test_config(vault_dir):
    """Configuration pointing at the temporary vault, with no startup scan."""
    return KnowledgeConfig(
        base_dir=vault_dir,
        vault_dir=vault_dir,
        database_name="knowledge.db",
        scan_on_startup=False,
    )


@pytest.fixture
def engine(vault_dir):
    """Create a store file inside the vault."""
    engine = init_db(f"sqlite:///{vault_dir / 'knowledge.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def note_repository(vault_dir, engine):
    """Create a test note repository."""
    return NoteRepository(vault_dir=vault_dir, engine=engine)


@pytest.fixture
def knowledge_service(test_config):
    """Create an initialized KnowledgeService, closed after the test."""
    with KnowledgeService(test_config) as service:
        yield service


@pytest.fixture
def tools(knowledge_service):
    """Create the agent tool facade over the test service."""
    return KnowledgeTools(knowledge_service)


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Start every test with empty operation metrics."""
    metrics.reset()
    yield
