import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from parrepo.core.dependencies import get_repository, get_verbosity, reset_repository
from parrepo.domain.errors import RepositoryCorruption, RepositoryError
from parrepo.domain.matching import MATCH_TYPES
from parrepo.domain.models import Verbosity

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FULL_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s at %(pathname)s line %(lineno)d"


def configure_logging(verbosity: Verbosity) -> None:
    """
    Configure root logging for the command-line front end.

    FULL sends everything to stderr with the source location of each record.
    """
    logging.basicConfig(
        level=verbosity.logging_level,
        format=FULL_LOG_FORMAT if verbosity is Verbosity.FULL else LOG_FORMAT,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="parrepo",
        description="Create and maintain a local artifact repository.",
    )
    parser.add_argument(
        "-r", "--repository", type=Path, default=None,
        help="Path to the repository (default: $PARREPO_PATH or ./repository)",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=None,
        help="Increase verbosity (repeat up to three times)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("create", help="Create the repository if it does not exist")

    inject = sub.add_parser("inject", help="Inject artifacts into the repository")
    inject.add_argument("files", nargs="+", type=Path)
    inject.add_argument("--name")
    inject.add_argument("--version", dest="artifact_version")
    inject.add_argument("--platform")
    inject.add_argument("--runtime-version")
    inject.add_argument("--overwrite", action="store_true")
    inject.add_argument("--no-scripts", action="store_true")
    inject.add_argument("--any-arch", action="store_true", help="Also link the artifact into the any_arch cell")
    inject.add_argument("--any-version", action="store_true", help="Also link the artifact into the any_version cell")

    remove = sub.add_parser("remove", help="Remove artifacts or aliases from the repository")
    remove.add_argument("files", nargs="*")
    remove.add_argument("--name")
    remove.add_argument("--version", dest="artifact_version")
    remove.add_argument("--platform")
    remove.add_argument("--runtime-version")

    query = sub.add_parser("query", help="Look up provided names, executables or artifacts")
    query.add_argument("kind", choices=["provider", "executable", "artifact"])
    query.add_argument("pattern")
    query.add_argument("--match", choices=MATCH_TYPES, default="Exact")

    sub.add_parser("list", help="List every artifact and alias in the repository")
    return parser


def run(args: argparse.Namespace) -> int:
    repository = get_repository(args.repository)

    if args.command == "create":
        print(f"Repository ready at {repository.root}")
        return 0

    if args.command == "inject":
        status = 0
        for file in args.files:
            injected = repository.inject(
                file,
                name=args.name,
                version=args.artifact_version,
                platform=args.platform,
                runtime_version=args.runtime_version,
                overwrite=args.overwrite,
                no_scripts=args.no_scripts,
                any_platform=args.any_arch,
                any_runtime_version=args.any_version,
            )
            if not injected:
                logger.warning(f"Not injected: {file}")
                status = 1
        return status

    if args.command == "remove":
        targets: List[Optional[str]] = list(args.files) or [None]
        status = 0
        for target in targets:
            removed = repository.remove(
                target,
                name=args.name,
                version=args.artifact_version,
                platform=args.platform,
                runtime_version=args.runtime_version,
            )
            if not removed:
                logger.warning(f"Not in repository: {target or args.name}")
                status = 1
        return status

    if args.command == "query":
        if args.kind == "artifact":
            for artifact in repository.query_artifact(args.pattern, args.match):
                print(artifact.file)
                for name, version in sorted(artifact.provides.items()):
                    print(f"    {name} {version or ''}".rstrip())
            return 0
        lookup = repository.query_provider if args.kind == "provider" else repository.query_executable
        for match in lookup(args.pattern, args.match):
            print(f"{match.name}\t{match.file}\t{match.version or ''}".rstrip())
        return 0

    if args.command == "list":
        for stored in repository.list_artifacts():
            suffix = f" -> {stored.target}" if stored.is_alias else ""
            print(f"{stored.path}{suffix}")
        return 0

    return 2


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    verbosity = get_verbosity() if args.verbose is None else Verbosity.clamp(args.verbose)
    configure_logging(verbosity)

    try:
        return run(args)
    except RepositoryCorruption as e:
        logger.critical(f"Repository left inconsistent: {e}")
        return 2
    except RepositoryError as e:
        logger.error(str(e))
        return 1
    finally:
        reset_repository()


if __name__ == "__main__":
    sys.exit(main())
