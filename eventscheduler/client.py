"""Asynchronous client for the remote event-scheduling service."""
from typing import Any, Mapping
from urllib.parse import quote
import functools
import time

import orjson
import structlog

from .config import SchedulerSettings, get_settings
from .errors import (
    RemoteError,
    SchedulerError,
    TransportError,
    missing_slug,
    normalize_error,
)
from .event_models import Event, EventRef, from_response, normalize, to_update_body
from .metrics import ClientMetrics
from .query import ListFilters, build_query
from .transactions import (
    CompensationErrorHook,
    TransactionCoordinator,
    TransactionHandle,
)
from .transport import HttpxTransport, Transport, TransportResponse

log = structlog.get_logger()

_JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}
_FAILURE_FIELDS = frozenset({"failed", "failed_code", "failed_response", "failed_reason"})


def _observed(operation: str):
    """Count and log every SchedulerError an operation raises."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self: "SchedulerClient", *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except SchedulerError as exc:
                if self._metrics:
                    self._metrics.record_error(operation, exc.kind)
                log.warning(
                    "scheduler.operation_failed",
                    operation=operation,
                    kind=exc.kind,
                    status=exc.status,
                    error=exc.message,
                )
                raise
        return wrapper
    return decorator


class SchedulerClient:
    """
    Client for the scheduler service.

    Wire protocol, relative to the configured endpoint:
    - add:    POST   /{slug}/{key}
    - get:    GET    /{slug}/{key}
    - list:   GET    /list?{query}
    - remove: DELETE /{slug}/{key}
    - update: PUT    /{slug}/{key}

    Responses carry ``{"result": ...}`` on success and ``{"error": {...}}``
    on logical failure. Every failure is raised as a SchedulerError.
    """

    def __init__(
        self,
        settings: SchedulerSettings | None = None,
        transport: Transport | None = None,
        metrics: ClientMetrics | None = None,
        on_compensation_error: CompensationErrorHook | None = None,
    ):
        """
        Initialize the client.

        Args:
            settings: Endpoint and behaviour settings (defaults from environment)
            transport: Request/response exchange (defaults to httpx)
            metrics: Optional prometheus metrics sink
            on_compensation_error: Diagnostic hook for failed undo callbacks
        """
        self.settings = settings or SchedulerSettings()
        self.endpoint = self.settings.base_url
        self._transport = transport or HttpxTransport(timeout=self.settings.TIMEOUT_SECONDS)
        self._metrics = metrics
        self._format = self.settings.REQUEST_FORMAT
        self._coordinator = TransactionCoordinator(
            fetch=self.get,
            restore={"remove": self._recreate, "update": self._reapply},
            policy=self.settings.COMPENSATION_POLICY,
            on_error=on_compensation_error,
            metrics=metrics,
        )

    async def __aenter__(self) -> "SchedulerClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._transport.close()

    @_observed("add")
    async def add(self, slug: str, key: str = "", params: Mapping[str, Any] | None = None) -> Event | None:
        """
        Create a new event.

        Returns:
            The created event, or None when the service accepts without a body

        Raises:
            ValidationError: If slug is missing or params are invalid
        """
        if not slug:
            raise missing_slug()
        key = key or ""
        params = dict(params or {})
        event = normalize({**params, "slug": slug, "key": key}, self._format)

        # Failure fields only travel when the caller supplies them, e.g. on a restore
        body = event.to_params(include_failure=bool(_FAILURE_FIELDS.intersection(params)))

        result = await self._exchange("add", "POST", self._event_url(slug, key), body)
        return from_response(result, self._format)

    @_observed("get")
    async def get(self, slug: str, key: str = "") -> Event | None:
        """Get the event stored at (slug, key), or None if there is none."""
        if not slug:
            raise missing_slug()
        key = key or ""
        result = await self._exchange("get", "GET", self._event_url(slug, key), allow_missing=True)
        return from_response(result, self._format)

    async def get_event(self, event: Event | EventRef) -> Event | None:
        """Re-fetch a previously returned event by its identity."""
        return await self.get(event.slug, event.key)

    @_observed("list")
    async def list(self, filters: ListFilters | Mapping[str, Any] | None = None) -> list[Event]:
        """
        List events matching the filters, in the order the service reports.

        Args:
            filters: Any of slug, before, after, failed
        """
        query = build_query(filters)
        url = f"{self.endpoint}/list"
        if query:
            url = f"{url}?{query}"

        result = await self._exchange("list", "GET", url)
        if result is None:
            return []
        if not isinstance(result, list):
            raise TransportError(f"Malformed event list in response: {result!r}")
        events = (from_response(item, self._format) for item in result)
        return [e for e in events if e is not None]

    @_observed("remove")
    async def remove(self, slug: str, key: str = "", transaction: TransactionHandle | None = None) -> Any:
        """
        Remove the event at (slug, key).

        With a transaction, the current event is captured first and an undo
        that re-adds it is registered before the delete is issued.

        Returns:
            The deleted count/flag the service reports

        Raises:
            NotFoundError: In a transaction, if there is nothing to remove
        """
        if not slug:
            raise missing_slug()
        key = key or ""

        async def mutate() -> Any:
            result = await self._exchange("remove", "DELETE", self._event_url(slug, key))
            if isinstance(result, Mapping):
                return result.get("deleted")
            return result

        return await self._coordinator.with_compensation(transaction, slug, key, mutate, operation="remove")

    @_observed("update")
    async def update(
        self,
        slug: str,
        key: str = "",
        updates: Mapping[str, Any] | None = None,
        transaction: TransactionHandle | None = None,
    ) -> Event | None:
        """
        Apply a partial update to the event at (slug, key).

        With a transaction, the current event is captured first and an undo
        that re-applies it is registered before the update is issued.

        Raises:
            NotFoundError: In a transaction, if there is nothing to update
        """
        if not slug:
            raise missing_slug()
        key = key or ""
        body = to_update_body(updates, self._format)

        async def mutate() -> Event | None:
            result = await self._exchange("update", "PUT", self._event_url(slug, key), body)
            return from_response(result, self._format)

        return await self._coordinator.with_compensation(transaction, slug, key, mutate, operation="update")

    async def _recreate(self, snapshot: Event) -> Event | None:
        return await self.add(snapshot.slug, snapshot.key, snapshot.to_params(include_failure=True))

    async def _reapply(self, snapshot: Event) -> Event | None:
        return await self.update(snapshot.slug, snapshot.key, snapshot.to_params(include_failure=True))

    def _event_url(self, slug: str, key: str) -> str:
        return f"{self.endpoint}/{quote(slug, safe='')}/{quote(key, safe='')}"

    async def _exchange(
        self,
        operation: str,
        method: str,
        url: str,
        payload: Any = None,
        allow_missing: bool = False,
    ) -> Any:
        """Issue one request and unwrap the envelope's result."""
        start_time = time.perf_counter()
        content = orjson.dumps(payload) if payload is not None else None
        try:
            response = await self._transport.request(method, url, content=content, headers=dict(_JSON_HEADERS))
            result = self._unwrap(response, allow_missing)
        except Exception as exc:
            self._record(operation, "error", start_time)
            error = normalize_error(exc)
            if error is exc:
                raise
            raise error from exc

        self._record(operation, "ok", start_time)
        log.info(
            "scheduler.request",
            operation=operation,
            method=method,
            url=url,
            status_code=response.status_code,
        )
        return result

    @staticmethod
    def _unwrap(response: TransportResponse, allow_missing: bool = False) -> Any:
        status = response.status_code
        error_status = status if status >= 400 else None

        if allow_missing and status == 404:
            return None

        if not response.content:
            if error_status:
                raise RemoteError(f"Scheduler responded with HTTP {status}", status)
            return None

        try:
            body = orjson.loads(response.content)
        except orjson.JSONDecodeError as exc:
            raise TransportError(f"Malformed response body (HTTP {status})", error_status) from exc

        if isinstance(body, dict) and body.get("error"):
            raise normalize_error(body, error_status)
        if error_status:
            raise RemoteError(f"Scheduler responded with HTTP {status}", status)
        if not isinstance(body, dict):
            raise TransportError(f"Malformed response envelope: {body!r}")
        return body.get("result")

    def _record(self, operation: str, outcome: str, start_time: float) -> None:
        if self._metrics:
            self._metrics.record_request(operation, outcome, time.perf_counter() - start_time)


def create_client(settings: SchedulerSettings | None = None, **overrides: Any) -> SchedulerClient:
    """
    Build a client from settings.

    Keyword overrides use setting names in any case, e.g.
    ``create_client(endpoint="http://scheduler:5665")`` or
    ``create_client(host="scheduler", port=6000)``.
    Client collaborators (transport, metrics, on_compensation_error) are
    passed through to SchedulerClient.
    """
    client_kwargs = {
        name: overrides.pop(name)
        for name in ("transport", "metrics", "on_compensation_error")
        if name in overrides
    }
    if settings is None:
        if overrides:
            settings = SchedulerSettings(**{k.upper(): v for k, v in overrides.items()})
        else:
            settings = get_settings()
    elif overrides:
        settings = SchedulerSettings(**{**settings.model_dump(), **{k.upper(): v for k, v in overrides.items()}})
    return SchedulerClient(settings, **client_kwargs)
