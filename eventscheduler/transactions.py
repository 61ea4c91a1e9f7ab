"""
Compensating-transaction support.

A caller-owned transaction handle only needs ``add_undo(callback)``. Before
a compensated remove/update, the coordinator snapshots the event, registers
exactly one undo callback that restores the snapshot, and only then runs the
mutation. Undo callbacks are expected to run most-recent first on abort;
``UndoLog`` is a handle that does exactly that.
"""
from pydantic import BaseModel, ConfigDict
from typing import Any, Awaitable, Callable, Literal, Protocol
import inspect
import uuid
import structlog

from .errors import NotFoundError
from .event_models import Event
from .metrics import ClientMetrics

log = structlog.get_logger()

UndoCallback = Callable[[], Any]
CompensatedOperation = Literal["remove", "update"]
CompensationPolicy = Literal["best_effort", "raise"]


class TransactionHandle(Protocol):
    """What the client needs from a caller's transaction."""

    def add_undo(self, callback: UndoCallback) -> None:
        ...


class Compensation(BaseModel):
    """A registered undo: which mutation it reverses and the captured state."""
    model_config = ConfigDict(frozen=True)

    operation: CompensatedOperation
    slug: str
    key: str
    snapshot: Event


CompensationErrorHook = Callable[[BaseException, Compensation], None]


def log_compensation_error(exc: BaseException, compensation: Compensation) -> None:
    """Default diagnostic hook: report the failed undo."""
    log.error(
        "compensation.failed",
        operation=compensation.operation,
        slug=compensation.slug,
        key=compensation.key,
        error=str(exc),
        error_type=exc.__class__.__name__,
    )


class TransactionCoordinator:
    """Registers and runs undo callbacks for compensated mutations."""

    def __init__(
        self,
        fetch: Callable[[str, str], Awaitable[Event | None]],
        restore: dict[CompensatedOperation, Callable[[Event], Awaitable[Any]]],
        policy: CompensationPolicy = "best_effort",
        on_error: CompensationErrorHook | None = None,
        metrics: ClientMetrics | None = None,
    ):
        """
        Initialize the coordinator.

        Args:
            fetch: Reads the event currently stored at (slug, key)
            restore: Per operation, how to put a snapshot back
                ("remove" re-adds it, "update" re-applies it)
            policy: "best_effort" reports and swallows undo failures,
                "raise" reports and re-raises them
            on_error: Diagnostic hook for undo failures
            metrics: Optional metrics sink
        """
        self._fetch = fetch
        self._restore = restore
        self.policy = policy
        self._on_error = on_error or log_compensation_error
        self._metrics = metrics

    async def with_compensation(
        self,
        transaction: TransactionHandle | None,
        slug: str,
        key: str,
        mutate: Callable[[], Awaitable[Any]],
        *,
        operation: CompensatedOperation,
    ) -> Any:
        """
        Run a mutation, registering its undo with the transaction first.

        Without a transaction the mutation just runs.

        Raises:
            NotFoundError: If there is no event at (slug, key); the
                mutation is not attempted
        """
        if transaction is None:
            return await mutate()

        snapshot = await self._fetch(slug, key)
        if snapshot is None:
            raise NotFoundError(f"No event at {slug}/{key} to compensate")

        compensation = Compensation(operation=operation, slug=slug, key=key, snapshot=snapshot)
        transaction.add_undo(self._make_undo(compensation))
        if self._metrics:
            self._metrics.record_compensation(operation, "registered")
        log.debug("compensation.registered", operation=operation, slug=slug, key=key)

        return await mutate()

    def _make_undo(self, compensation: Compensation) -> Callable[[], Awaitable[None]]:
        restore = self._restore[compensation.operation]

        async def undo() -> None:
            try:
                await restore(compensation.snapshot)
            except Exception as exc:
                if self._metrics:
                    self._metrics.record_compensation(compensation.operation, "failed")
                self._report(exc, compensation)
                if self.policy == "raise":
                    raise
                return
            if self._metrics:
                self._metrics.record_compensation(compensation.operation, "executed")
            log.info(
                "compensation.executed",
                operation=compensation.operation,
                slug=compensation.slug,
                key=compensation.key,
            )

        return undo

    def _report(self, exc: BaseException, compensation: Compensation) -> None:
        try:
            self._on_error(exc, compensation)
        except Exception as hook_exc:
            log.error("compensation.hook_failed", error=str(hook_exc), original_error=str(exc))


class UndoLog:
    """
    In-process transaction handle with a stack of undo callbacks.

    Use as ``async with UndoLog() as trx:``; leaving the block with an
    exception rolls back, leaving it normally commits.
    """

    def __init__(self):
        self.id = str(uuid.uuid4())
        self.state: Literal["open", "committed", "rolled_back"] = "open"
        self._undos: list[UndoCallback] = []

    def add_undo(self, callback: UndoCallback) -> None:
        if self.state != "open":
            raise RuntimeError(f"Transaction {self.id} is already {self.state}")
        self._undos.append(callback)

    def __len__(self) -> int:
        return len(self._undos)

    def commit(self) -> None:
        """Forget all undo callbacks."""
        self._undos.clear()
        self.state = "committed"
        log.debug("transaction.committed", transaction_id=self.id)

    async def rollback(self) -> list[Exception]:
        """
        Run undo callbacks, most recently registered first.

        A failing callback does not stop the others.

        Returns:
            Errors raised by undo callbacks, in execution order
        """
        errors: list[Exception] = []
        undos, self._undos = self._undos, []
        self.state = "rolled_back"
        for callback in reversed(undos):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                errors.append(exc)
        log.info("transaction.rolled_back", transaction_id=self.id, undone=len(undos), failed=len(errors))
        return errors

    async def __aenter__(self) -> "UndoLog":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if self.state == "open":
            if exc_type is None:
                self.commit()
            else:
                await self.rollback()
        return False
