"""Model for the manifests the pruner reasons about."""

import datetime
from dataclasses import dataclass, field
from enum import Enum

DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


class PruneOutcome(Enum):
    """What happened (or would have happened) to a manifest group."""

    DELETED = "deleted"
    WOULD_DELETE = "would-delete"
    SKIPPED_POLICY = "skipped-policy"
    SKIPPED_AGE = "skipped-age"
    FAILED = "failed"


def short_digest(digest: str) -> str:
    """Abbreviate a digest for humans: drop the algorithm, keep 12 hex
    characters.
    """
    colon_pos = digest.find(":")
    dig = digest
    if colon_pos > -1:
        dig = digest[1 + colon_pos :]
    if len(dig) > 12:
        dig = dig[:12] + "..."
    return dig


@dataclass
class ManifestGroup:
    """A digest in one repository together with every tag pointing at it.

    The tag set is a snapshot taken while scanning the repository.  Nothing
    stops the registry from moving a tag between the scan and a later
    delete, which is why deletion is always done by digest.

    ``created`` is filled in lazily, and only if an age check needs it.
    """

    repository: str
    digest: str
    tags: set[str] = field(default_factory=set)
    created: datetime.datetime | None = None

    @property
    def representative_tag(self) -> str | None:
        """Tag used to look up the creation time of the manifest.

        Any tag in the group resolves to the same manifest, so we take the
        lexicographically smallest to keep runs reproducible.
        """
        if not self.tags:
            return None
        return min(self.tags)

    def sorted_tags(self) -> list[str]:
        return sorted(self.tags)

    def __str__(self) -> str:
        tags = ",".join(self.sorted_tags()) or "<untagged>"
        return f"{self.repository}@<{short_digest(self.digest)}> [{tags}]"


@dataclass
class PruneDecision:
    """The verdict reached for a single manifest group."""

    group: ManifestGroup
    outcome: PruneOutcome
    error: str | None = None

    @property
    def repository(self) -> str:
        return self.group.repository

    @property
    def digest(self) -> str:
        return self.group.digest

    @property
    def created(self) -> datetime.datetime | None:
        return self.group.created

    def __str__(self) -> str:
        text = f"{self.outcome.value} {self.group}"
        if self.group.created is not None:
            text += f" created {self.group.created.strftime(DATEFMT)}"
        if self.error:
            text += f" ({self.error})"
        return text
