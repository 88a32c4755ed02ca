"""CLI for Registry Pruner."""

import argparse
import os
import sys
from pathlib import Path
from typing import Any

import structlog

from .config import PrunerConfig
from .exceptions import ConfigurationError, RegistryError
from .factory import Factory

ENV_PREFIX = "REGISTRY_PRUNER_"


def _env(name: str) -> str | None:
    return os.getenv(ENV_PREFIX + name) or None


def _env_flag(name: str) -> bool:
    value = _env(name)
    return value is not None and value.lower() in ("1", "true", "yes", "on")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Every option falls back to an environment variable named after it,
    e.g. ``REGISTRY_PRUNER_HOST`` for ``--host``.
    """
    parser = argparse.ArgumentParser(
        description="Prune stale manifests from a container registry.",
        epilog=(
            f"Each option can also be given as an environment variable with"
            f" the prefix {ENV_PREFIX}, for example {ENV_PREFIX}USER=bert."
        ),
    )
    parser.add_argument(
        "-c",
        "--config-file",
        type=Path,
        help="pruner config file (YAML)",
        default=_env("CONFIG_FILE"),
    )
    parser.add_argument(
        "--host",
        help="address of the registry (default: http://localhost:5000)",
        default=_env("HOST"),
    )
    parser.add_argument(
        "--user",
        help="username for the registry API; omit to skip authentication",
        default=_env("USER"),
    )
    parser.add_argument(
        "--pass",
        dest="password",
        help="password for the registry API",
        default=_env("PASS"),
    )
    parser.add_argument(
        "--repos",
        help="regular expression matching all repositories to delete from",
        default=_env("REPOS"),
    )
    parser.add_argument(
        "--tags",
        help="regular expression matching all tags to delete",
        default=_env("TAGS"),
    )
    parser.add_argument(
        "--min-age",
        help=(
            "minimum age of manifests to delete, e.g. '30d' or '4h30m';"
            " '0' disables the check (default: 30d)"
        ),
        default=_env("MIN_AGE"),
    )
    parser.add_argument(
        "-x",
        "--dry-run",
        action="store_true",
        help="Dry run only: do not delete any manifests",
        default=_env_flag("DRY_RUN"),
    )
    parser.add_argument(
        "--page-size",
        help="number of repositories to request per catalog page",
        default=_env("PAGE_SIZE"),
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
        default=_env_flag("DEBUG"),
    )
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    simple = {
        "registry": args.host,
        "repositories": args.repos,
        "tags": args.tags,
        "minAge": args.min_age,
        "pageSize": args.page_size,
    }
    overrides.update({k: v for k, v in simple.items() if v is not None})
    auth = {"username": args.user, "password": args.password}
    auth = {k: v for k, v in auth.items() if v is not None}
    if auth:
        overrides["auth"] = auth
    # Flags can only switch these on.
    if args.dry_run:
        overrides["dryRun"] = True
    if args.debug:
        overrides["debug"] = True
    return overrides


def _load_config(args: argparse.Namespace) -> PrunerConfig:
    overrides = _overrides(args)
    if args.config_file:
        return PrunerConfig.from_file(Path(args.config_file), overrides)
    return PrunerConfig.from_dict(overrides)


def main(argv: list[str] | None = None) -> None:
    """Prune the registry, then report what was (or would be) deleted."""
    args = _parse_args(argv)
    try:
        cfg = _load_config(args)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    with Factory.standalone(cfg) as factory:
        logger = structlog.get_logger("registry_pruner")
        logger.info("Configuration:\n" + cfg.summary())
        logger.info("Starting")
        pruner = factory.create_pruner()
        try:
            pruner.run()
        except RegistryError as e:
            logger.error(f"Cannot list repositories: {e}")
            sys.exit(1)
        pruner.report()
