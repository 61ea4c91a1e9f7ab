"""Event data model and normalization of raw event data."""
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
)
from typing import Any, Literal, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit
import pydantic

from .errors import TransportError, ValidationError, missing_slug, normalize_error
from .timestamps import to_epoch_ms

RequestFormat = Literal["host", "href"]

_DEFAULT_PORTS = {"http:": 80, "https:": 443}


class HostRequest(BaseModel):
    """Deferred call addressed by host/port/path."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    host: str | None = None
    protocol: str = "http:"
    port: int = 80
    headers: dict[str, Any] = Field(default_factory=dict)
    method: str = "GET"
    path: str = "/"
    data: Any = None

    @field_validator("protocol", mode="before")
    @classmethod
    def _protocol_ends_with_colon(cls, v: Any) -> str:
        if not v:
            return "http:"
        v = str(v)
        return v if v.endswith(":") else v + ":"

    @field_validator("path", mode="before")
    @classmethod
    def _path_starts_with_slash(cls, v: Any) -> str:
        if not v:
            return "/"
        v = str(v)
        return v if v.startswith("/") else "/" + v

    @field_validator("port", mode="before")
    @classmethod
    def _default_port(cls, v: Any) -> Any:
        return 80 if v is None else v

    @field_validator("method", mode="before")
    @classmethod
    def _method_upper(cls, v: Any) -> str:
        return str(v).upper() if v else "GET"

    @field_validator("headers", mode="before")
    @classmethod
    def _headers_default(cls, v: Any) -> Any:
        return {} if v is None else v


class HrefRequest(BaseModel):
    """Deferred call addressed by a single URL."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    href: str = Field(..., min_length=1)
    headers: dict[str, Any] = Field(default_factory=dict)
    method: str = "GET"
    body: Any = None
    querystring: dict[str, Any] = Field(default_factory=dict)

    @field_validator("method", mode="before")
    @classmethod
    def _method_upper(cls, v: Any) -> str:
        return str(v).upper() if v else "GET"

    @field_validator("headers", "querystring", mode="before")
    @classmethod
    def _mapping_default(cls, v: Any) -> Any:
        return {} if v is None else v


def host_to_href(req: HostRequest) -> HrefRequest:
    """Adapt a host/port/path descriptor to the href form."""
    netloc = req.host or "localhost"
    if _DEFAULT_PORTS.get(req.protocol) != req.port:
        netloc = f"{netloc}:{req.port}"
    return HrefRequest(
        href=f"{req.protocol}//{netloc}{req.path}",
        headers=req.headers,
        method=req.method,
        body=req.data,
    )


def href_to_host(req: HrefRequest) -> HostRequest:
    """Adapt an href descriptor to the host/port/path form."""
    parts = urlsplit(req.href)
    protocol = f"{parts.scheme or 'http'}:"
    path = parts.path or "/"
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((k, str(v)) for k, v in req.querystring.items())
    if query:
        path = f"{path}?{urlencode(query)}"
    return HostRequest(
        host=parts.hostname,
        protocol=protocol,
        port=parts.port or _DEFAULT_PORTS.get(protocol, 80),
        headers=req.headers,
        method=req.method,
        path=path,
        data=req.body,
    )


def coerce_request(raw: Any, request_format: RequestFormat = "host") -> HostRequest | HrefRequest | None:
    """
    Build the canonical request descriptor for a deployment.

    Input given in the other form is converted, so a client never mixes
    both shapes.
    """
    if raw is None:
        return HostRequest() if request_format == "host" else None

    if isinstance(raw, (HostRequest, HrefRequest)):
        req = raw
    elif isinstance(raw, Mapping):
        req = HrefRequest.model_validate(raw) if "href" in raw else HostRequest.model_validate(raw)
    else:
        raise ValueError(f"Request descriptor must be a mapping, got {type(raw).__name__}")

    if request_format == "href" and isinstance(req, HostRequest):
        return host_to_href(req)
    if request_format == "host" and isinstance(req, HrefRequest):
        return href_to_host(req)
    return req


class EventRef(BaseModel):
    """Logical identity of an event."""
    model_config = ConfigDict(frozen=True)

    slug: str
    key: str = ""


class Event(BaseModel):
    """Snapshot of a scheduled event as reported by the service.

    Fields the model doesn't define are kept, so a snapshot can be
    written back without losing them.
    """
    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    slug: str = Field(..., min_length=1, description="Primary grouping identifier")
    key: str = Field(default="", description="Disambiguates events sharing a slug")
    request: HostRequest | HrefRequest | None = Field(default=None, validate_default=True)
    run_at: int | None = Field(default=None, description="Fire time, epoch milliseconds")
    recurring: Any = False
    failed: bool = False
    failed_code: int | None = None
    failed_response: Any = Field(
        default=None,
        validation_alias=AliasChoices("failed_response", "failed_reason"),
    )

    @field_validator("key", mode="before")
    @classmethod
    def _key_default(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("run_at", mode="before")
    @classmethod
    def _run_at_epoch_ms(cls, v: Any) -> int | None:
        if v is None:
            return None
        return to_epoch_ms(v)

    @field_validator("recurring", mode="before")
    @classmethod
    def _recurring_default(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("request", mode="before")
    @classmethod
    def _canonical_request(cls, v: Any, info: ValidationInfo) -> Any:
        request_format = (info.context or {}).get("request_format", "host")
        return coerce_request(v, request_format)

    @property
    def ref(self) -> EventRef:
        return EventRef(slug=self.slug, key=self.key)

    def to_params(self, include_failure: bool = False) -> dict[str, Any]:
        """
        Wire body that recreates this event's state at its identity.

        Args:
            include_failure: Also carry the server-populated failure fields
        """
        params = dict(self.model_extra or {})
        params.update({
            "request": self.request.model_dump(mode="json") if self.request else None,
            "run_at": self.run_at,
            "recurring": self.recurring,
        })
        if include_failure:
            params.update(
                failed=self.failed,
                failed_code=self.failed_code,
                failed_response=self.failed_response,
            )
        return params


def normalize(data: Any, request_format: RequestFormat = "host") -> Event:
    """
    Turn loosely-structured event data into a canonical Event.

    Raises:
        ValidationError: If slug is missing or any field fails validation
    """
    if isinstance(data, Event):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError(f"Event data must be a mapping, got {type(data).__name__}")
    if not data.get("slug"):
        raise missing_slug()
    try:
        return Event.model_validate(dict(data), context={"request_format": request_format})
    except pydantic.ValidationError as exc:
        raise normalize_error(exc) from exc


def from_response(body: Any, request_format: RequestFormat = "host") -> Event | None:
    """
    Rebuild an Event from a response payload.

    An absent body is a legitimate outcome and yields None.

    Raises:
        TransportError: If the payload is not a well-formed event
    """
    if body is None or body == {}:
        return None
    if not isinstance(body, Mapping):
        raise TransportError(f"Malformed event in response: {body!r}")
    try:
        return Event.model_validate(dict(body), context={"request_format": request_format})
    except pydantic.ValidationError as exc:
        raise TransportError(f"Malformed event in response: {exc}") from exc


def to_update_body(updates: Mapping[str, Any] | None, request_format: RequestFormat = "host") -> dict[str, Any]:
    """
    Wire body for a partial update.

    Only fields present are sent; run_at and request are normalized,
    identity fields are dropped so an update never moves an event.
    """
    body = {k: v for k, v in (updates or {}).items() if k not in ("slug", "key")}
    try:
        if body.get("run_at") is not None:
            body["run_at"] = to_epoch_ms(body["run_at"])
        if body.get("request") is not None:
            body["request"] = coerce_request(body["request"], request_format).model_dump(mode="json")
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    return body
