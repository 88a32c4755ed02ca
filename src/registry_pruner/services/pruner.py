"""Provides pruning services for a container registry."""

import datetime
from collections.abc import Iterable

import structlog
from structlog.stdlib import BoundLogger

from ..config import PrunerConfig
from ..exceptions import RegistryError
from ..models.manifest import ManifestGroup, PruneDecision, PruneOutcome
from ..storage.registry import RegistryClient


class PruneEngine:
    """Decides, per manifest group, whether to delete it, and does so.

    A manifest is deleted only if its repository matches the repository
    pattern, every one of its tags matches the tag pattern, and (if a
    minimum age is configured) it is older than that age.  A single tag
    that does not match protects the whole manifest.

    Parameters
    ----------
    cfg
        Pruner configuration.
    client
        Registry client used for age lookups and deletion.
    logger
        Logger to use for messages.
    """

    def __init__(
        self,
        cfg: PrunerConfig,
        client: RegistryClient,
        logger: BoundLogger | None = None,
    ) -> None:
        self._repositories = cfg.repositories
        self._tags = cfg.tags
        self._min_age = cfg.min_age if cfg.age_check_enabled else None
        self._dry_run = cfg.dry_run
        self._client = client
        self._logger = logger or structlog.get_logger(__name__)

    def repository_matches(self, repository: str) -> bool:
        return self._repositories.search(repository) is not None

    def tags_match(self, tags: Iterable[str]) -> bool:
        """Return whether every tag matches the tag pattern.

        An empty tag set never matches: with no tag we have no way to ask
        the registry how old the manifest is, and untagged manifests are
        none of our business anyway.
        """
        tags = list(tags)
        if not tags:
            return False
        return all(self._tags.search(t) is not None for t in tags)

    def evaluate(
        self, repository: str, groups: Iterable[ManifestGroup]
    ) -> list[PruneDecision]:
        """Decide on, and if not a dry run delete, each group in order."""
        if not self.repository_matches(repository):
            self._logger.debug(f"Skipping repository {repository}")
            return []
        now = datetime.datetime.now(tz=datetime.UTC)
        return [self._evaluate_group(group, now) for group in groups]

    def _evaluate_group(
        self, group: ManifestGroup, now: datetime.datetime
    ) -> PruneDecision:
        if not self.tags_match(group.tags):
            self._logger.debug(f"Keeping {group}: not all tags match")
            return PruneDecision(group, PruneOutcome.SKIPPED_POLICY)
        try:
            if self._min_age is not None and self._too_young(group, now):
                return PruneDecision(group, PruneOutcome.SKIPPED_AGE)
        except RegistryError as e:
            self._logger.error(
                f"Cannot determine age of {group}: {e}",
                repository=group.repository,
                digest=group.digest,
                operation="get_manifest_created",
            )
            return PruneDecision(group, PruneOutcome.FAILED, error=str(e))
        return self._delete(group)

    def _too_young(self, group: ManifestGroup, now: datetime.datetime) -> bool:
        tag = group.representative_tag
        if tag is None or self._min_age is None:
            return False
        digest, created = self._client.get_manifest_created(
            group.repository, tag
        )
        if digest != group.digest:
            self._logger.warning(
                f"Tag {group.repository}:{tag} now points at {digest}, not"
                f" {group.digest}; the tag moved since the scan"
            )
        group.created = created
        if created > now - self._min_age:
            self._logger.debug(f"Keeping {group}: created {created}")
            return True
        return False

    def _delete(self, group: ManifestGroup) -> PruneDecision:
        tags = group.sorted_tags()
        if self._dry_run:
            self._logger.info(
                f"Would have deleted {group.repository} manifest with digest"
                f" {group.digest} and tags {tags}"
            )
            return PruneDecision(group, PruneOutcome.WOULD_DELETE)
        self._logger.info(
            f"Deleting {group.repository} manifest with digest"
            f" {group.digest} and tags {tags}"
        )
        try:
            self._client.delete_manifest(group.repository, group.digest)
        except RegistryError as e:
            self._logger.error(
                f"Cannot delete {group}: {e}",
                repository=group.repository,
                digest=group.digest,
                operation="delete_manifest",
            )
            return PruneDecision(group, PruneOutcome.FAILED, error=str(e))
        return PruneDecision(group, PruneOutcome.DELETED)


class Pruner:
    """Walks the registry catalog and prunes each repository in turn.

    Parameters
    ----------
    client
        Registry client.
    engine
        Decision engine.
    logger
        Logger to use for messages.
    """

    def __init__(
        self,
        client: RegistryClient,
        engine: PruneEngine,
        logger: BoundLogger | None = None,
    ) -> None:
        self._client = client
        self._engine = engine
        self._logger = logger or structlog.get_logger(__name__)
        self.decisions: list[PruneDecision] = []

    def run(self) -> list[PruneDecision]:
        """Prune every matching repository.

        Failures within one repository are logged and the run moves on to
        the next one.  Failing to list the catalog is not caught: without
        it there is nothing to do.
        """
        self.decisions = []
        for repository in self._client.list_repositories():
            if not self._engine.repository_matches(repository):
                continue
            self._logger.info(f"Inspecting repository {repository}")
            try:
                groups = self.scan(repository)
            except RegistryError as e:
                self._logger.error(
                    f"Cannot list manifests of {repository}: {e}",
                    repository=repository,
                    operation="group_tags_by_digest",
                )
                continue
            self.decisions.extend(self._engine.evaluate(repository, groups))
        self._logger.info("Done")
        return self.decisions

    def scan(self, repository: str) -> list[ManifestGroup]:
        index = self._client.group_tags_by_digest(repository)
        return [
            ManifestGroup(repository=repository, digest=digest, tags=tags)
            for digest, tags in index.items()
        ]

    def counts(self) -> dict[PruneOutcome, int]:
        retval = dict.fromkeys(PruneOutcome, 0)
        for decision in self.decisions:
            retval[decision.outcome] += 1
        return retval

    def report(self) -> None:
        """Print the decisions reached by the last run."""
        headline = "Manifest pruning decisions:"
        print(headline)
        print("-" * len(headline))
        if not self.decisions:
            print("(none)\n")
            return
        maxlen = max(len(x.outcome.value) for x in self.decisions)
        for decision in self.decisions:
            outcome, rest = str(decision).split(" ", 1)
            print(f"{outcome:<{maxlen}}  {rest}")
        summary = ", ".join(
            f"{k.value}: {v}" for k, v in self.counts().items() if v
        )
        print(f"\n{summary}\n")
