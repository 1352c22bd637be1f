from pathlib import Path
from typing import Optional
import logging
import os

from parrepo.domain.models import Verbosity
from parrepo.services.repository import Repository

REPOSITORY_PATH_ENV_VAR = "PARREPO_PATH"
VERBOSITY_ENV_VAR = "PARREPO_VERBOSITY"
_DEFAULT_REPOSITORY_PATH = Path("repository")

_repository: Optional[Repository] = None


def get_repository_path() -> Path:
    env_path = os.environ.get(REPOSITORY_PATH_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return _DEFAULT_REPOSITORY_PATH


def get_verbosity() -> Verbosity:
    raw = os.environ.get(VERBOSITY_ENV_VAR)
    if not raw:
        return Verbosity.ERROR
    try:
        return Verbosity.clamp(int(raw))
    except ValueError:
        logging.getLogger(__name__).warning(f"Ignoring invalid {VERBOSITY_ENV_VAR}={raw!r}")
        return Verbosity.ERROR


def get_repository(path: Optional[Path] = None) -> Repository:
    global _repository
    if _repository is None or (path is not None and Path(path) != _repository.root):
        if _repository is not None:
            _repository.close()
        _repository = Repository.open_or_create(path or get_repository_path())
    return _repository


def reset_repository() -> None:
    global _repository
    if _repository is not None:
        _repository.close()
    _repository = None
