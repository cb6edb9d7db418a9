"""
Tests for the client-side identity cache.
"""
import json

import pytest

from devicehub.client import identity_cache as identity_cache_module
from devicehub.client.identity_cache import CachedIdentity, IdentityCache, ReadOnlyIdentityCache

API_BASE = "https://api.example.com"


@pytest.fixture
def paths(tmp_path):
    return tmp_path / "identity.json", tmp_path / "legacy" / "device.json"


def write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


def test_empty_cache_loads_none(paths):
    primary, legacy = paths
    cache = IdentityCache(primary, legacy, default_api_base=API_BASE)

    assert cache.load() is None
    assert not primary.exists()


def test_save_then_load(paths):
    primary, _ = paths
    cache = IdentityCache(primary, default_api_base=API_BASE)
    identity = CachedIdentity(id="dev-1", name="Phone", credential="tok", api_base=API_BASE)

    cache.save(identity)

    assert cache.load() == identity
    assert list(primary.parent.glob("*.tmp")) == []


def test_legacy_copy_is_migrated(paths):
    primary, legacy = paths
    write_json(legacy, {"id": "dev-legacy", "name": "Phone", "apiBaseURL": API_BASE})
    cache = IdentityCache(primary, legacy, default_api_base=API_BASE)

    identity = cache.load()

    assert identity.id == "dev-legacy"
    assert identity.credential is None
    assert identity.is_registered is False
    assert primary.exists()
    assert not legacy.exists()
    assert json.loads(primary.read_text())["id"] == "dev-legacy"


def test_primary_copy_wins_over_legacy(paths):
    primary, legacy = paths
    write_json(primary, {"id": "dev-new", "name": "Phone", "credential": "tok", "api_base": API_BASE})
    write_json(legacy, {"id": "dev-old", "name": "Phone", "apiBaseURL": API_BASE})
    cache = IdentityCache(primary, legacy, default_api_base=API_BASE)

    assert cache.load().id == "dev-new"
    assert legacy.exists()


def test_legacy_kept_when_primary_save_fails(paths, monkeypatch):
    primary, legacy = paths
    write_json(legacy, {"id": "dev-legacy", "name": "Phone", "apiBaseURL": API_BASE})
    cache = IdentityCache(primary, legacy, default_api_base=API_BASE)

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(identity_cache_module.os, "replace", failing_replace)

    with pytest.raises(OSError):
        cache.load()

    assert legacy.exists()
    assert not primary.exists()
    assert list(primary.parent.glob("*.tmp")) == []


def test_stale_api_base_is_rewritten(paths):
    primary, _ = paths
    write_json(primary, {"id": "dev-1", "name": "Phone", "credential": "tok", "api_base": "https://old.example.com"})
    cache = IdentityCache(primary, default_api_base=API_BASE)

    identity = cache.load()

    assert identity.api_base == API_BASE
    assert identity.credential == "tok"
    assert json.loads(primary.read_text())["api_base"] == API_BASE


def test_corrupt_primary_reads_as_empty(paths):
    primary, _ = paths
    primary.write_text("{truncated")
    cache = IdentityCache(primary, default_api_base=API_BASE)

    assert cache.load() is None


def test_clear_removes_both_copies(paths):
    primary, legacy = paths
    write_json(primary, {"id": "dev-1", "credential": "tok", "api_base": API_BASE})
    write_json(legacy, {"id": "dev-1", "apiBaseURL": API_BASE})
    cache = IdentityCache(primary, legacy, default_api_base=API_BASE)

    cache.clear()

    assert not primary.exists()
    assert not legacy.exists()


def test_read_only_view_never_writes(paths):
    primary, legacy = paths
    write_json(legacy, {"id": "dev-legacy", "apiBaseURL": "https://old.example.com"})
    view = ReadOnlyIdentityCache(primary)

    assert view.load() is None
    assert not primary.exists()
    assert legacy.exists()

    write_json(primary, {"id": "dev-1", "credential": "tok", "api_base": "https://old.example.com"})
    before = primary.read_text()

    identity = view.load()

    assert identity.credential == "tok"
    assert primary.read_text() == before
