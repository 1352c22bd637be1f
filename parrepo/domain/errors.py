"""
Exception taxonomy for repository operations.

Precondition and resource failures raise one of these. "Not found" and
"refused because overwrite is not set" are ordinary ``False`` returns and
never show up here.
"""


class RepositoryError(Exception):
    """Base class for all repository failures."""


class IdentityError(RepositoryError, ValueError):
    """Not enough information to name an artifact."""


class SourceMissing(RepositoryError, FileNotFoundError):
    """The artifact to inject does not exist."""


class IndexMissing(RepositoryError, FileNotFoundError):
    """A compressed index file is absent from the repository root."""


class NoProvidersFound(RepositoryError):
    """Neither the embedded manifest nor the scanner yielded provided names."""


class UnsupportedPlatform(RepositoryError):
    """The host cannot create symbolic links."""


class IncompatibleFormat(RepositoryError):
    """The repository was written by an incompatible format version."""


class PathConflict(RepositoryError):
    """The repository path exists but is not a repository."""


class RepositoryCorruption(RepositoryError):
    """
    A file operation failed half way through an inject or remove.

    Index state already written is not rolled back. The repository must be
    repaired by hand (re-inject with overwrite, or strip the orphaned file
    name from the indices) before it is used again.
    """
