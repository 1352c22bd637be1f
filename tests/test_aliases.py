import os

import pytest

from parrepo.domain.errors import UnsupportedPlatform
from parrepo.services.aliases import ERROR_PRIVILEGE_NOT_HELD, symlinks_supported

REAL = "Kit-0.02-linux-5.8.7.par"
ALIAS = "Kit-0.02-any_arch-5.8.7.par"


@pytest.fixture
def aliases(repo):
    return repo.aliases


def test_create_alias_links_relative_to_real_file(aliases, repo_path):
    assert aliases.create_alias(REAL, ALIAS) is True

    alias_path = repo_path / "any_arch" / "5.8.7" / ALIAS
    assert alias_path.is_symlink()
    assert os.readlink(alias_path) == os.path.join("..", "..", "linux", "5.8.7", REAL)
    assert aliases.aliases_of(REAL) == [ALIAS]


def test_caller_paths_are_ignored(aliases, repo_path):
    assert aliases.create_alias(f"/tmp/{REAL}", f"somewhere/{ALIAS}") is True
    assert (repo_path / "any_arch" / "5.8.7" / ALIAS).is_symlink()


def test_existing_alias_needs_overwrite(aliases):
    aliases.create_alias(REAL, ALIAS)
    assert aliases.create_alias(REAL, ALIAS) is False
    assert aliases.create_alias(REAL, ALIAS, overwrite=True) is True
    assert aliases.aliases_of(REAL) == [ALIAS]


def test_real_file_is_never_replaced(aliases, repo_path):
    cell = repo_path / "any_arch" / "5.8.7"
    cell.mkdir(parents=True)
    (cell / ALIAS).write_bytes(b"real")
    assert aliases.create_alias(REAL, ALIAS, overwrite=True) is False
    assert not (cell / ALIAS).is_symlink()
    assert aliases.aliases_of(REAL) == []


def test_remove_alias_cleans_index(aliases, repo_path):
    other = "Kit-0.02-linux-any_version.par"
    aliases.create_alias(REAL, ALIAS)
    aliases.create_alias(REAL, other)

    assert aliases.remove_alias(ALIAS) is True
    assert not (repo_path / "any_arch" / "5.8.7" / ALIAS).is_symlink()
    assert aliases.aliases_of(REAL) == [other]

    assert aliases.remove_alias(other) is True
    assert REAL not in aliases._alias_index()


def test_remove_missing_alias(aliases):
    assert aliases.remove_alias(ALIAS) is False


@pytest.fixture
def fresh_symlink_probe():
    symlinks_supported.cache_clear()
    yield
    symlinks_supported.cache_clear()


def refused_symlink(winerror=None):
    def _symlink(*args, **kwargs):
        error = OSError("A required privilege is not held by the client")
        if winerror is not None:
            error.winerror = winerror
        raise error

    return _symlink


def test_symlink_probe(fresh_symlink_probe, monkeypatch):
    assert symlinks_supported() is True

    symlinks_supported.cache_clear()
    monkeypatch.setattr(os, "symlink", refused_symlink())
    assert symlinks_supported() is False


def test_missing_privilege_is_unsupported_platform(aliases, monkeypatch):
    monkeypatch.setattr("parrepo.services.aliases.symlinks_supported", lambda: True)
    monkeypatch.setattr(os, "symlink", refused_symlink(ERROR_PRIVILEGE_NOT_HELD))
    with pytest.raises(UnsupportedPlatform):
        aliases.create_alias(REAL, ALIAS)
    assert aliases.aliases_of(REAL) == []


def test_other_link_errors_propagate(aliases, monkeypatch):
    monkeypatch.setattr("parrepo.services.aliases.symlinks_supported", lambda: True)
    monkeypatch.setattr(os, "symlink", refused_symlink())
    with pytest.raises(OSError):
        aliases.create_alias(REAL, ALIAS)
