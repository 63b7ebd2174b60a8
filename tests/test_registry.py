"""Tests for RegistryStore."""

import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from conftest import FakeRunner, write_skill
from skillforks.errors import SourceNotFoundError
from skillforks.models.registry import ProvenanceRecord
from skillforks.registry import RegistryStore
from skillforks.sources import SourceCache

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(registry_root: Path) -> RegistryStore:
    return RegistryStore(registry_root)


@pytest.fixture
def cache(registry_root: Path) -> SourceCache:
    return SourceCache(registry_root, FakeRunner())


class TestLoad:
    """Tests for loading the two registry files."""

    def test_missing_files_are_empty(self, store):
        assert store.load_records() == {}
        assert store.load_tracked() == set()

    def test_corrupt_registry_is_empty(self, store, registry_root):
        registry_root.mkdir()
        (registry_root / "registry.json").write_text("{not json")
        assert store.load_records() == {}

    def test_wrong_shape_is_empty(self, store, registry_root):
        registry_root.mkdir()
        (registry_root / "registry.json").write_text('["a", "b"]')
        (registry_root / "sources.json").write_text('{"a": 1}')
        assert store.load_records() == {}
        assert store.load_tracked() == set()

    def test_reads_camel_case_records(self, store, registry_root):
        registry_root.mkdir()
        (registry_root / "registry.json").write_text(
            json.dumps(
                {
                    "pdf-tools": {
                        "originalSource": "acme/toolkit",
                        "relativeForkPath": "repos/acme-toolkit",
                        "installedDate": "2026-01-01T12:00:00Z",
                        "updateAvailable": True,
                    }
                }
            )
        )
        record = store.get_record("pdf-tools")
        assert record.original_source == "acme/toolkit"
        assert record.is_repo
        assert record.installed_date == T0
        assert record.last_checked is None
        assert record.update_available is True


class TestRecords:
    """Tests for provenance record mutation."""

    def test_record_install_persists(self, store, registry_root):
        """Installing from a shorthand source records its repos/ cache path."""
        store.record_install(["X"], "acme/toolkit", "repos/acme-toolkit", now=T0)

        data = json.loads((registry_root / "registry.json").read_text())
        assert data == {
            "X": {
                "originalSource": "acme/toolkit",
                "relativeForkPath": "repos/acme-toolkit",
                "installedDate": "2026-01-01T12:00:00Z",
                "lastChecked": "2026-01-01T12:00:00Z",
                "updateAvailable": False,
            }
        }

    def test_record_install_replaces(self, store):
        store.record_install(["X"], "acme/old", "repos/acme-old", now=T0)
        store.record_install(["X"], "acme/new", "repos/acme-new", now=T0)
        assert store.get_record("X").original_source == "acme/new"

    def test_mark_checked_and_clear(self, store):
        store.record_install(["a", "b"], "acme/toolkit", "repos/acme-toolkit", now=T0)
        later = T0 + timedelta(hours=1)
        store.mark_checked(["a", "missing"], True, later)

        records = store.load_records()
        assert records["a"].update_available is True
        assert records["a"].last_checked == later
        assert records["b"].update_available is False
        assert "missing" not in records

        store.clear_updates(["a"])
        assert store.get_record("a").update_available is False

    def test_forget(self, store):
        store.record_install(["a", "b"], "acme/toolkit", "repos/acme-toolkit", now=T0)
        assert store.forget(["a", "zzz"]) == ["a"]
        assert set(store.load_records()) == {"b"}

    def test_records_for_source(self, store):
        store.record_install(["a"], "acme/one", "repos/acme-one", now=T0)
        store.record_install(["b", "c"], "acme/two", "repos/acme-two", now=T0)
        assert sorted(store.records_for_source("acme/two")) == ["b", "c"]


class TestTracked:
    """Tests for tracked sources."""

    def test_add_and_remove(self, store, registry_root):
        store.add_tracked("acme/b")
        store.add_tracked("acme/a")
        store.add_tracked("acme/a")
        assert json.loads((registry_root / "sources.json").read_text()) == ["acme/a", "acme/b"]

        store.remove_tracked("acme/b")
        assert store.load_tracked() == {"acme/a"}

    def test_remove_keeps_records(self, store):
        store.record_install(["a"], "acme/a", "repos/acme-a", now=T0)
        store.add_tracked("acme/a")
        store.remove_tracked("acme/a")
        assert store.get_record("a") is not None

    def test_all_sources(self, store):
        store.add_tracked("acme/tracked")
        store.record_install(["a"], "acme/installed", "repos/acme-installed", now=T0)
        assert store.all_sources() == {"acme/tracked", "acme/installed"}

    def test_prune_sources(self, store):
        store.add_tracked("acme/a")
        store.add_tracked("acme/b")
        store.record_install(["x", "y"], "acme/a", "repos/acme-a", now=T0)
        store.record_install(["z"], "acme/b", "repos/acme-b", now=T0)

        assert store.prune_sources(["acme/a"]) == ["x", "y"]
        assert store.load_tracked() == {"acme/b"}
        assert set(store.load_records()) == {"z"}


class TestListSources:
    """Tests for RegistryStore.list_sources()."""

    def test_installed_shorthand_is_git(self, store, cache, registry_root):
        """A skill installed from acme/toolkit makes that source a Git source."""
        store.record_install(["X"], "acme/toolkit", "repos/acme-toolkit", now=T0)
        write_skill(registry_root / "repos" / "acme-toolkit" / "skills" / "X", "X")

        sources = store.list_sources(cache)
        assert [s.id for s in sources] == ["acme/toolkit"]
        assert sources[0].type == "Git"
        assert sources[0].path == "acme/toolkit"
        assert sources[0].skills == ["X"]

    def test_local_source(self, store, cache, skill_tree):
        store.add_tracked(str(skill_tree))
        sources = store.list_sources(cache)
        assert sources[0].type == "Local"
        assert sources[0].skills == ["csv-tools", "pdf-tools", "reviewer"]

    def test_aggregates_flags_and_timestamps(self, store, cache):
        store.record_install(["a", "b"], "acme/toolkit", "repos/acme-toolkit", now=T0)
        later = T0 + timedelta(days=1)
        store.mark_checked(["b"], True, later)

        view = store.list_sources(cache)[0]
        assert view.update_available is True
        assert view.last_checked == later
        assert view.skills == []

    def test_sorted_union(self, store, cache):
        store.add_tracked("zeta/repo")
        store.record_install(["a"], "alpha/repo", "repos/alpha-repo", now=T0)
        store.add_tracked("alpha/repo")
        assert [s.id for s in store.list_sources(cache)] == ["alpha/repo", "zeta/repo"]


class TestDeleteSource:
    """Tests for RegistryStore.delete_source()."""

    def test_local_keeps_files(self, store, cache, skill_tree):
        source = str(skill_tree)
        store.add_tracked(source)
        store.record_install(["pdf-tools"], source, "", now=T0)

        assert store.delete_source(source, cache) == ["pdf-tools"]
        assert store.load_records() == {}
        assert store.load_tracked() == set()
        assert (skill_tree / "skills" / "pdf-tools" / "SKILL.md").is_file()

    def test_remote_removes_clone(self, store, cache, registry_root):
        clone = registry_root / "repos" / "acme-toolkit"
        write_skill(clone / "skills" / "X", "X")
        store.add_tracked("acme/toolkit")
        store.record_install(["X"], "acme/toolkit", "repos/acme-toolkit", now=T0)

        assert store.delete_source("acme/toolkit", cache) == ["X"]
        assert not clone.exists()
        assert store.load_records() == {}

    def test_vanished_local_source(self, store, cache, tmp_path):
        """A local path that no longer exists is still deleted as local."""
        gone = str(tmp_path / "gone")
        store.add_tracked(gone)
        assert store.list_sources(cache)[0].type == "Local"
        assert store.delete_source(gone, cache) == []
        assert store.load_tracked() == set()

    def test_remote_without_clone_still_cleans_registry(self, store, cache):
        store.add_tracked("acme/toolkit")
        store.record_install(["X"], "acme/toolkit", "repos/acme-toolkit", now=T0)

        with pytest.raises(SourceNotFoundError):
            store.delete_source("acme/toolkit", cache)
        assert store.load_records() == {}
        assert store.load_tracked() == set()


class TestTransaction:
    """Tests for serialized read-modify-write."""

    def test_reentrant(self, store):
        with store.transaction():
            with store.transaction():
                store.add_tracked("acme/a")
        assert store.load_tracked() == {"acme/a"}
        assert store._depth == 0

    def test_concurrent_writers_keep_every_update(self, store):
        """Parallel record_install calls never drop each other's records."""

        def install(index: int) -> None:
            store.record_install([f"skill-{index}"], "acme/toolkit", "repos/acme-toolkit")

        threads = [threading.Thread(target=install, args=(i,)) for i in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store.load_records()) == 20

    def test_separate_stores_share_file_lock(self, registry_root):
        """Two store instances on one root serialize through the lock file."""
        first, second = RegistryStore(registry_root), RegistryStore(registry_root)

        def install(store: RegistryStore, prefix: str) -> None:
            for i in range(10):
                store.record_install([f"{prefix}-{i}"], "acme/toolkit", "repos/acme-toolkit")

        threads = [
            threading.Thread(target=install, args=(first, "a")),
            threading.Thread(target=install, args=(second, "b")),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(first.load_records()) == 20
