"""Canonical query strings for listing events."""
from pydantic import BaseModel, ConfigDict, field_validator
from typing import Any, Mapping
from urllib.parse import quote
import pydantic

from .errors import normalize_error
from .timestamps import to_epoch_ms

# Fixed output order
_FIELDS = ("slug", "before", "after", "failed")


class ListFilters(BaseModel):
    """Optional filters for listing events."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    slug: str | None = None
    before: int | None = None
    after: int | None = None
    failed: bool | None = None

    @field_validator("before", "after", mode="before")
    @classmethod
    def _epoch_ms(cls, v: Any) -> int | None:
        return None if v is None else to_epoch_ms(v)

    @field_validator("failed", mode="before")
    @classmethod
    def _strict_flag(cls, v: Any) -> bool | None:
        if v is None or isinstance(v, bool):
            return v
        if isinstance(v, str) and v.lower() in ("true", "false"):
            return v.lower() == "true"
        raise ValueError("failed must be a boolean or 'true'/'false'")


def build_query(filters: ListFilters | Mapping[str, Any] | None = None) -> str:
    """
    Encode list filters as a query string.

    Fields appear in the order slug, before, after, failed, and only when
    supplied. No filters gives an empty string.

    Raises:
        ValidationError: If a filter value is not acceptable
    """
    if filters is None:
        return ""
    if not isinstance(filters, ListFilters):
        try:
            filters = ListFilters.model_validate(dict(filters))
        except pydantic.ValidationError as exc:
            raise normalize_error(exc) from exc

    parts = []
    for name in _FIELDS:
        value = getattr(filters, name)
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        parts.append(f"{quote(name, safe='')}={quote(str(value), safe='')}")
    return "&".join(parts)
