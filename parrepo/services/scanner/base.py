from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict

from parrepo.domain.models import ProvidedName


class ProviderScanner(ABC):
    """
    Abstract base class for discovering the names an artifact provides.
    """

    @abstractmethod
    def scan(self, artifact: Path) -> Dict[str, ProvidedName]:
        """
        Return the provided names found in ``artifact``.

        Keys are the provided names; values record the declaring file inside
        the artifact and the name's own version, if any.
        """
        pass


class ExecutableScanner(ABC):
    """
    Abstract base class for discovering the executables an artifact ships.
    """

    @abstractmethod
    def scan(self, artifact: Path) -> Dict[str, ProvidedName]:
        """Return executable base names mapped to their source file and version."""
        pass
