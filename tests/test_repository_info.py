import pytest
import yaml

from parrepo.data.repository_info import info_path, load_repository_info
from parrepo.domain.errors import IncompatibleFormat, PathConflict
from parrepo.domain.models import FORMAT_VERSION
from parrepo.services.repository import Repository


def write_info(root, text):
    info_path(root).write_text(text, encoding="utf-8")


def test_create_writes_layout(repo, repo_path):
    for index_id in ("provider_index", "executable_index", "alias_index"):
        assert (repo_path / f"{index_id}.zip").is_file()
    assert yaml.safe_load(info_path(repo_path).read_text()) == {"format_version": FORMAT_VERSION}
    assert repo.info.format_version == FORMAT_VERSION


def test_reopen_existing_repository(repo, repo_path):
    repo.close()
    again = Repository.open_or_create(repo_path)
    assert again.info.format_version == FORMAT_VERSION
    again.close()


def test_existing_non_repository_path_is_refused(tmp_path):
    (tmp_path / "occupied").mkdir()
    (tmp_path / "occupied" / "notes.txt").write_text("hello")
    with pytest.raises(PathConflict):
        Repository.open_or_create(tmp_path / "occupied")

    (tmp_path / "plain-file").write_text("x")
    with pytest.raises(PathConflict):
        Repository.open_or_create(tmp_path / "plain-file")


def test_incompatible_format_is_refused(repo, repo_path):
    repo.close()
    write_info(repo_path, "format_version: '9.99'\n")
    with pytest.raises(IncompatibleFormat):
        Repository.open_or_create(repo_path)


def test_invalid_info_file_is_a_path_conflict(repo, repo_path):
    repo.close()
    write_info(repo_path, "- just\n- a list\n")
    with pytest.raises(PathConflict):
        Repository.open_or_create(repo_path)


def test_legacy_format_is_upgraded_in_place(repo, repo_path):
    repo.close()
    write_info(repo_path, "format_version: '0.03'\n")
    again = Repository.open_or_create(repo_path)
    assert again.info.format_version == FORMAT_VERSION
    assert load_repository_info(repo_path).format_version == FORMAT_VERSION
    again.close()


def test_missing_executable_index_is_recreated(repo, repo_path):
    repo.close()
    write_info(repo_path, "format_version: '0.10'\n")
    (repo_path / "executable_index.zip").unlink()

    again = Repository.open_or_create(repo_path)
    assert (repo_path / "executable_index.zip").is_file()
    assert again.info.format_version == FORMAT_VERSION
    assert again.query_executable("anything") == []
    again.close()


def test_unquoted_format_version_is_read_as_text(repo, repo_path):
    repo.close()
    write_info(repo_path, "format_version: 0.10\n")
    assert load_repository_info(repo_path).format_version == "0.10"
    write_info(repo_path, "format_version: 0.13\nowner: builds\n")
    info = load_repository_info(repo_path)
    assert info.format_version == "0.13"
    assert info.model_extra == {"owner": "builds"}
