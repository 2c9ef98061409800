"""Tests for the KnowledgeService context."""

from pathlib import Path

import pytest

from knowledge_layer.config import KnowledgeConfig
from knowledge_layer.exceptions import KnowledgeError, NoteNotFoundError
from knowledge_layer.observability import metrics
from knowledge_layer.services.knowledge_service import KnowledgeService


class TestLifecycle:
    """Tests for initialize/close."""

    def test_initialize_creates_vault_and_store(self, tmp_path):
        vault = tmp_path / "vault"
        settings = KnowledgeConfig(base_dir=tmp_path, vault_dir=vault, scan_on_startup=False)
        with KnowledgeService(settings) as service:
            assert vault.is_dir()
            assert (vault / settings.database_name).exists()
            assert service.list_notes() == []

    def test_startup_scan(self, tmp_path):
        """Existing vault files are imported when the service starts."""
        vault = tmp_path / "vault"
        vault.mkdir()
        (vault / "Preexisting.md").write_text("from before", encoding="utf-8")
        settings = KnowledgeConfig(base_dir=tmp_path, vault_dir=vault, scan_on_startup=True)

        with KnowledgeService(settings) as service:
            assert service.read_note("preexisting").content == "from before"

    def test_closed_service_refuses_work(self, test_config):
        service = KnowledgeService(test_config).initialize()
        service.close()
        with pytest.raises(KnowledgeError):
            service.create_note("Too late")

    def test_uninitialized_service(self, test_config):
        with pytest.raises(KnowledgeError):
            KnowledgeService(test_config).list_notes()

    def test_initialize_is_idempotent(self, knowledge_service):
        repository = knowledge_service.repository
        assert knowledge_service.initialize().repository is repository

    def test_two_services_are_independent(self, tmp_path):
        first = KnowledgeConfig(base_dir=tmp_path, vault_dir=tmp_path / "one", scan_on_startup=False)
        second = KnowledgeConfig(base_dir=tmp_path, vault_dir=tmp_path / "two", scan_on_startup=False)
        with KnowledgeService(first) as a, KnowledgeService(second) as b:
            a.create_note("Only In A")
            assert b.read_note("only-in-a") is None

    def test_relative_paths_use_service_base_dir(self, tmp_path):
        """Relative vault and scan paths resolve against the service's base_dir."""
        base = tmp_path / "base"
        (base / "inbox").mkdir(parents=True)
        (base / "inbox" / "Inbox Item.md").write_text("triage me", encoding="utf-8")
        settings = KnowledgeConfig(
            base_dir=base, vault_dir=Path("vault"), scan_on_startup=False
        )

        with KnowledgeService(settings) as service:
            assert service.repository.vault_dir == (base / "vault").resolve()
            result = service.scan_and_index_vault("inbox")
            assert result.imported == ["inbox-item"]
            assert service.read_note("inbox-item").path == str(
                (base / "vault").resolve() / "Inbox Item.md"
            )


class TestOperations:
    """End-to-end operations through the service."""

    def test_note_lifecycle(self, knowledge_service):
        created = knowledge_service.create_note("Lifecycle", "v1 [[Peer]]", ["x"])
        assert knowledge_service.read_note("lifecycle").content == "v1 [[Peer]]"

        updated = knowledge_service.update_note("lifecycle", content="v2")
        assert updated.created_at == created.created_at
        assert knowledge_service.search("v2")[0].note_id == "lifecycle"
        assert knowledge_service.get_links("lifecycle").links == []

        assert knowledge_service.delete_note("lifecycle") is True
        assert knowledge_service.read_note("lifecycle") is None
        assert knowledge_service.delete_note("lifecycle") is False

    def test_update_missing(self, knowledge_service):
        with pytest.raises(NoteNotFoundError):
            knowledge_service.update_note("missing", content="x")

    def test_search_with_tags(self, knowledge_service):
        knowledge_service.create_note("Tagged", "term", ["keep"])
        knowledge_service.create_note("Untagged", "term")
        results = knowledge_service.search("term", tags=["keep"])
        assert [r.note_id for r in results] == ["tagged"]

    def test_scan_through_service(self, knowledge_service, vault_dir):
        (vault_dir / "Dropped In.md").write_text("added by hand", encoding="utf-8")
        result = knowledge_service.scan_and_index_vault()
        assert result.imported == ["dropped-in"]
        knowledge_service.watch_vault()

    def test_operations_are_traced(self, knowledge_service):
        """Each service call is recorded in the operation metrics."""
        knowledge_service.create_note("Traced")
        knowledge_service.read_note("traced")
        with pytest.raises(NoteNotFoundError):
            knowledge_service.update_note("ghost", content="x")

        snapshot = metrics.get_metrics()
        assert snapshot["create_note"]["success_count"] == 1
        assert snapshot["read_note"]["count"] == 1
        assert snapshot["update_note"]["error_count"] == 1

    def test_status_reports_store_and_metrics(self, knowledge_service):
        knowledge_service.create_note("Counted", "words")
        knowledge_service.search("words")

        status = knowledge_service.get_status()
        assert status["note_count"] == 1
        assert status["search_entries"] == 1
        assert status["search_available"] is True
        assert status["metrics"]["total_operations"] == 2
        assert status["metrics"]["total_errors"] == 0
        assert status["operations"]["search"]["count"] == 1

    def test_status_requires_initialize(self, test_config):
        with pytest.raises(KnowledgeError):
            KnowledgeService(test_config).get_status()
