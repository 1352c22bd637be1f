"""
Pytest fixtures shared by the test suite.

Artifacts are built on the fly as zip files so every test controls exactly
which modules, scripts and metadata an artifact carries.
"""

import zipfile
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

from parrepo.services.repository import Repository


def module_source(package: str, version: Optional[str] = None) -> str:
    lines = [f"package {package};", "use strict;"]
    if version is not None:
        lines.append(f"our $VERSION = '{version}';")
    lines.append("1;")
    return "\n".join(lines) + "\n"


def build_artifact(path: Path, files: Dict[str, str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return path


@pytest.fixture
def make_artifact(tmp_path) -> Callable[..., Path]:
    """Factory: make_artifact("Kit-0.02-any_arch-any_version.par", {"lib/Kit.pm": ...})."""
    source_dir = tmp_path / "incoming"

    def _make(file_name: str, files: Optional[Dict[str, str]] = None) -> Path:
        if files is None:
            files = {"lib/Kit.pm": module_source("Kit", "0.02")}
        return build_artifact(source_dir / file_name, files)

    return _make


@pytest.fixture
def repo_path(tmp_path) -> Path:
    return tmp_path / "repo"


@pytest.fixture
def repo(repo_path):
    repository = Repository.open_or_create(repo_path)
    yield repository
    repository.close()


@pytest.fixture
def kit_artifact(make_artifact) -> Path:
    return make_artifact(
        "Kit-0.02-any_arch-any_version.par",
        {
            "lib/Kit.pm": module_source("Kit", "0.02"),
            "lib/Kit/Util.pm": module_source("Kit::Util"),
            "script/kit-tool": "#!/usr/bin/perl\nour $VERSION = '1.5';\nprint 1;\n",
            "script/main.pl": "print 1;\n",
        },
    )


@pytest.fixture
def native_artifact(make_artifact) -> Path:
    return make_artifact(
        "Foo-Bar-1.10-x86_64-linux-5.8.7.par",
        {
            "lib/Foo/Bar.pm": module_source("Foo::Bar", "1.10"),
            "bin/foobar": "#!/usr/bin/perl\n$VERSION = '0.3';\n",
        },
    )
