"""Models for Docker Distribution API response bodies."""

import datetime
import re
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    Field,
    field_validator,
)

# Registries report nanoseconds; datetime only goes to microseconds.
_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


def _truncate_fraction(inp: Any) -> Any:
    if isinstance(inp, str):
        return _EXCESS_FRACTION.sub(r"\1", inp)
    return inp


def _assume_utc(dt: datetime.datetime) -> datetime.datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.UTC)
    return dt


class CatalogPage(BaseModel):
    """One page of ``GET /v2/_catalog``."""

    repositories: Annotated[
        list[str],
        Field(title="Repositories", description="Repository names"),
    ] = []

    @field_validator("repositories", mode="before")
    @classmethod
    def _null_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class TagList(BaseModel):
    """Body of ``GET /v2/<name>/tags/list``."""

    name: Annotated[
        str | None, Field(title="Name", description="Repository name")
    ] = None

    tags: Annotated[
        list[str],
        Field(
            title="Tags",
            description="Tags in repository; null when there are none",
        ),
    ] = []

    @field_validator("tags", mode="before")
    @classmethod
    def _null_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class HistoryEntry(BaseModel):
    """Schema v1 history item.  The payload is itself JSON, in a string."""

    v1_compatibility: Annotated[
        str,
        Field(
            alias="v1Compatibility",
            title="v1 compatibility",
            description="JSON-encoded legacy image configuration",
        ),
    ]


class ManifestV1(BaseModel):
    """The parts of a schema v1 manifest we care about."""

    history: Annotated[
        list[HistoryEntry],
        Field(title="History", description="Newest entry first"),
    ]


class V1Compatibility(BaseModel):
    """Decoded contents of a ``v1Compatibility`` string."""

    created: Annotated[
        datetime.datetime,
        BeforeValidator(_truncate_fraction),
        AfterValidator(_assume_utc),
        Field(title="Created", description="Image creation time"),
    ]


class TokenResponse(BaseModel):
    """Body returned by the token service."""

    token: Annotated[
        str, Field(title="Token", description="Bearer token", min_length=1)
    ]
