from enum import Enum


class ManifestVersion(Enum):
    """The two manifest schema versions we ask the registry for.

    Schema v1 is only needed because its history entries carry the image
    creation time.  Everything else (digest lookup, deletion, listing) is
    done with schema v2, whose digests match what the registry stores.
    """

    V1 = "application/vnd.docker.distribution.manifest.v1+prettyjws"
    V2 = "application/vnd.docker.distribution.manifest.v2+json"

    @property
    def content_type(self) -> str:
        return self.value
