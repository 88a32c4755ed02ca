"""Configuration for the container registry pruner."""

from __future__ import annotations

import datetime
import re
from pathlib import Path
from typing import Annotated, Any, Self

import yaml
from pydantic import (
    BaseModel,
    BeforeValidator,
    Field,
    HttpUrl,
    SecretStr,
    ValidationError,
)
from safir.pydantic import CamelCaseModel, HumanTimedelta

from .exceptions import ConfigurationError


def _empty_str_is_none(inp: Any) -> Any:
    if isinstance(inp, str) and inp == "":
        return None
    return inp


def _merge(data: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(data)
    for key, value in overrides.items():
        if key == "auth" and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


class RegistryAuth(BaseModel):
    """Basic credentials for the registry (and its token service)."""

    username: Annotated[
        str | None,
        Field(
            title="Username",
            description="Username (if any) for authentication.",
            examples=["fbooth"],
        ),
    ] = None

    password: Annotated[
        SecretStr | None,
        Field(
            title="Password",
            description="Secret (password or token) for authentication.",
            examples=["hunter2"],
        ),
    ] = None


class PrunerConfig(CamelCaseModel):
    """Configuration to prune one container registry."""

    registry: Annotated[
        HttpUrl,
        Field(
            title="Registry",
            description="URL of registry host",
            examples=[HttpUrl("https://registry.example.com/")],
        ),
    ] = HttpUrl("http://localhost:5000")

    auth: Annotated[
        RegistryAuth | None,
        Field(
            title="Registry Auth",
            description="Credentials; omit to skip authentication.",
        ),
    ] = None

    repositories: Annotated[
        re.Pattern[str],
        Field(
            title="Repositories",
            description=(
                "Regular expression matching all repositories to delete from."
            ),
            examples=["^team/.*"],
        ),
    ] = re.compile(".*")

    tags: Annotated[
        re.Pattern[str],
        Field(
            title="Tags",
            description=(
                "Regular expression matching all tags to delete.  A manifest"
                " is only deleted if every one of its tags matches."
            ),
            examples=["^v.*"],
        ),
    ] = re.compile(".*")

    min_age: Annotated[
        HumanTimedelta | None,
        BeforeValidator(_empty_str_is_none),
        Field(
            title="Minimum age",
            description=(
                "Manifests newer than this will not be deleted.  Zero or"
                " unset disables the age check."
            ),
            examples=["30d", "4h30m"],
        ),
    ] = datetime.timedelta(days=30)

    dry_run: Annotated[
        bool,
        Field(
            title="Dry run",
            description="Do not actually delete any manifests.",
        ),
    ] = False

    page_size: Annotated[
        int | None,
        BeforeValidator(_empty_str_is_none),
        Field(
            title="Page size",
            description="Catalog page size; unset uses the registry default.",
            gt=0,
        ),
    ] = None

    timeout: Annotated[
        float,
        Field(
            title="Timeout",
            description="Per-request HTTP timeout in seconds.",
            gt=0,
        ),
    ] = 30.0

    debug: Annotated[
        bool,
        Field(
            title="Debug",
            description="Much more verbose logging.",
        ),
    ] = False

    @property
    def age_check_enabled(self) -> bool:
        return self.min_age is not None and self.min_age > datetime.timedelta(0)

    @classmethod
    def from_file(
        cls, path: Path, overrides: dict[str, Any] | None = None
    ) -> Self:
        """Load configuration from a YAML file.

        Parameters
        ----------
        path
            YAML file, with camelCase keys.
        overrides
            Settings (also with camelCase keys) that take precedence over
            the file.  ``auth`` is merged key by key.
        """
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} does not contain a mapping")
        if overrides:
            data = _merge(data, overrides)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Validate a configuration, reporting problems as
        `ConfigurationError`.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

    def summary(self) -> str:
        """Return a human-readable description of what this run will do."""
        result = f"Connecting to registry at '{self.registry}'.\n"
        if self.auth and self.auth.username:
            result += f"Authenticating as user '{self.auth.username}'.\n"
        else:
            result += "Not authenticating.\n"
        result += (
            f"Manifests from repositories matching '{self.repositories.pattern}'"
            f" where all tags of the manifest match '{self.tags.pattern}' are"
            " up for deletion.\n"
        )
        if self.age_check_enabled:
            result += (
                f"Manifests created within the last {self.min_age} will not"
                " be deleted.\n"
            )
        if self.dry_run:
            result += "This is a dry-run, so nothing will be deleted.\n"
        return result
