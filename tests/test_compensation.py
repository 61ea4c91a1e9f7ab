"""Tests for compensated remove/update through the client."""
import pytest
from fastapi.responses import JSONResponse

from eventscheduler.errors import NotFoundError
from eventscheduler.metrics import ClientMetrics
from eventscheduler.transactions import UndoLog


@pytest.mark.asyncio
async def test_remove_undo_recreates_event(fake):
    """Test rolling back re-creates the removed event with its fields."""
    metrics = ClientMetrics()
    client = fake.client(metrics=metrics)
    fake.seed("s", "k", run_at=1000, recurring={"every": "1h"}, request={"host": "h", "path": "/run"})
    trx = UndoLog()

    assert await client.remove("s", "k", transaction=trx) == 1
    assert ("s", "k") not in fake.events
    assert len(trx) == 1

    assert await trx.rollback() == []

    restored = await client.get("s", "k")
    assert restored.run_at == 1000
    assert restored.recurring == {"every": "1h"}
    assert restored.request.host == "h"
    assert restored.request.path == "/run"
    assert metrics.sample("eventscheduler_compensations_registered_total", operation="remove") == 1
    assert metrics.sample("eventscheduler_compensations_executed_total", operation="remove") == 1


@pytest.mark.asyncio
async def test_remove_missing_in_transaction_is_not_found(client, fake):
    """Test nothing is deleted when there is nothing to snapshot."""
    trx = UndoLog()

    with pytest.raises(NotFoundError) as exc_info:
        await client.remove("s", "k", transaction=trx)

    assert exc_info.value.status == 404
    assert len(trx) == 0
    assert not any(method == "DELETE" for method, _ in fake.requests)


@pytest.mark.asyncio
async def test_update_undo_restores_prior_state(client, fake):
    """Test rolling back an update puts the old fields back."""
    fake.seed("s", "k", run_at=1000, failed=True, failed_code=500)
    trx = UndoLog()

    updated = await client.update("s", "k", {"run_at": 2000, "failed": False}, transaction=trx)
    assert updated.run_at == 2000

    await trx.rollback()

    restored = await client.get("s", "k")
    assert restored.run_at == 1000
    assert restored.failed is True
    assert restored.failed_code == 500


@pytest.mark.asyncio
async def test_update_missing_in_transaction_is_not_found(client, fake):
    """Test update in a transaction needs an existing event."""
    with pytest.raises(NotFoundError):
        await client.update("s", "k", {"run_at": 1}, transaction=UndoLog())
    assert not any(method == "PUT" for method, _ in fake.requests)


@pytest.mark.asyncio
async def test_undo_runs_in_reverse_registration_order(client, fake):
    """Test the remove's undo runs before the earlier update's undo."""
    fake.seed("s1", "k1", run_at=1)
    fake.seed("s2", "k2", run_at=2)

    with pytest.raises(RuntimeError):
        async with UndoLog() as trx:
            await client.update("s1", "k1", {"run_at": 10}, transaction=trx)
            await client.remove("s2", "k2", transaction=trx)
            mark = len(fake.requests)
            raise RuntimeError("abort")

    undo_requests = fake.requests[mark:]
    assert undo_requests == [("POST", "/s2/k2"), ("PUT", "/s1/k1")]
    assert fake.events[("s1", "k1")]["run_at"] == 1
    assert fake.events[("s2", "k2")]["run_at"] == 2


@pytest.mark.asyncio
async def test_same_event_updated_then_removed_unwinds_fully(client, fake):
    """Test stacked compensations on one identity restore the original."""
    fake.seed("s", "k", run_at=1)

    async with UndoLog() as trx:
        await client.update("s", "k", {"run_at": 2}, transaction=trx)
        await client.remove("s", "k", transaction=trx)
        errors = await trx.rollback()

    assert errors == []
    assert fake.events[("s", "k")]["run_at"] == 1


@pytest.mark.asyncio
async def test_failed_undo_is_best_effort_by_default(fake):
    """Test a failing re-add is reported but doesn't fail the rollback."""
    reported = []
    client = fake.client(on_compensation_error=lambda exc, comp: reported.append((exc, comp)))
    fake.seed("s", "k", run_at=1)
    trx = UndoLog()

    await client.remove("s", "k", transaction=trx)
    fake.fail_next["POST"] = JSONResponse(status_code=500, content={"error": {"message": "disk full"}})

    assert await trx.rollback() == []
    assert len(reported) == 1
    assert reported[0][0].message == "disk full"
    assert reported[0][1].operation == "remove"


@pytest.mark.asyncio
async def test_failed_undo_raises_with_raise_policy(fake):
    """Test the raise policy hands undo failures to the transaction owner."""
    client = fake.client(COMPENSATION_POLICY="raise")
    fake.seed("s", "k", run_at=1)
    trx = UndoLog()

    await client.remove("s", "k", transaction=trx)
    fake.fail_next["POST"] = JSONResponse(status_code=500, content={"error": {"message": "disk full"}})

    errors = await trx.rollback()
    assert len(errors) == 1
    assert errors[0].status == 500


@pytest.mark.asyncio
async def test_commit_discards_compensation(client, fake):
    """Test committed transactions never undo."""
    fake.seed("s", "k", run_at=1)

    async with UndoLog() as trx:
        await client.remove("s", "k", transaction=trx)

    assert trx.state == "committed"
    assert ("s", "k") not in fake.events


@pytest.mark.asyncio
async def test_remove_undo_restores_failure_state_and_extra_fields(client, fake):
    """Test a rolled-back remove brings back failure fields and passthrough params."""
    await client.add("s", "k", {"run_at": 1000, "priority": "high"})
    fake.events[("s", "k")].update(failed=True, failed_code=502, failed_response="bad gateway")
    trx = UndoLog()

    await client.remove("s", "k", transaction=trx)
    assert await trx.rollback() == []

    stored = fake.events[("s", "k")]
    assert stored["priority"] == "high"
    assert stored["failed"] is True
    assert stored["failed_code"] == 502
    assert stored["failed_response"] == "bad gateway"
    assert stored["run_at"] == 1000
