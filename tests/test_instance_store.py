"""Tests for instance creation, usage tracking and retirement."""

from __future__ import annotations

import asyncio
import json
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest

from directory_service.app.core.db import to_db_time
from directory_service.app.core.errors import (
    ConflictError,
    NotFoundError,
    OrphanPendingError,
    StorageError,
)
from directory_service.app.schemas.instance import HealthStatus, InstanceCreate, UsageReport
from directory_service.app.services.instance_store import compose_history


def _block_deletes(db) -> None:
    conn = db.connect()
    try:
        conn.execute(
            """
            CREATE TRIGGER block_instance_delete BEFORE DELETE ON service_instances
            BEGIN
                SELECT RAISE(ABORT, 'deletes blocked');
            END
            """
        )
    finally:
        conn.close()


def _allow_deletes(db) -> None:
    conn = db.connect()
    try:
        conn.execute("DROP TRIGGER block_instance_delete")
    finally:
        conn.close()


def _insert_orphan(db, record) -> None:
    """Write a history record straight into the table, leaving the instance live."""
    conn = db.connect()
    try:
        conn.execute(
            """
            INSERT INTO service_instance_history (
                history_id, service_id, instance_id, version, url, metrics, started_at, stopped_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.history_id,
                record.service_id,
                record.instance_id,
                record.version,
                record.url,
                json.dumps(record.metrics),
                to_db_time(record.started_at),
                to_db_time(record.stopped_at),
            ),
        )
    finally:
        conn.close()


async def _is_live(directory, instance_id: str) -> bool:
    try:
        await directory.instances.get(instance_id)
    except NotFoundError:
        return False
    return True


@pytest.mark.asyncio
async def test_create_starts_in_starting_state(directory, service):
    created = await directory.instances.create(
        InstanceCreate(
            service_id=service.service_id,
            host="10.0.0.1",
            port=9090,
            url="http://10.0.0.1:9090/health",
            latitude=52.5,
            longitude=13.4,
            api_spec="openapi: 3.0.0",
        )
    )

    assert created.service_id == service.service_id
    assert created.health_status is HealthStatus.STARTING
    assert created.created_at == created.last_checked
    assert created.transaction_count == 0
    assert (await directory.instances.get(created.instance_id)) == created


@pytest.mark.asyncio
async def test_create_requires_existing_service(directory):
    with pytest.raises(NotFoundError):
        await directory.instances.create(InstanceCreate(service_id=uuid.uuid4(), host="h", port=80))


@pytest.mark.asyncio
async def test_list_for_service(directory, service, instance):
    second = await directory.instances.create(
        InstanceCreate(service_id=service.service_id, host="10.0.0.3", port=9091)
    )
    listed = await directory.instances.list_for_service(service.service_id)
    assert [i.instance_id for i in listed] == [instance.instance_id, second.instance_id]

    with pytest.raises(NotFoundError):
        await directory.instances.list_for_service(str(uuid.uuid4()))


@pytest.mark.asyncio
async def test_lifecycle_scenario(directory, service, instance):
    assert instance.health_status is HealthStatus.STARTING

    await directory.health.update_health(instance.instance_id, "up")
    assert (await directory.instances.get(instance.instance_id)).health_status is HealthStatus.UP

    record = await directory.instances.retire(instance.instance_id)

    with pytest.raises(NotFoundError):
        await directory.instances.get(instance.instance_id)
    history = await directory.archive.list_for_instance(instance.instance_id)
    assert history == [record]
    assert record.metrics["health_status"] == "up"
    assert record.started_at == instance.created_at
    assert record.stopped_at >= record.started_at
    assert record.service_id == service.service_id
    assert record.version == "1.0.0"

    with pytest.raises(NotFoundError):
        await directory.instances.retire(instance.instance_id)
    assert len(await directory.archive.list_for_instance(instance.instance_id)) == 1


@pytest.mark.asyncio
async def test_instance_is_either_live_or_archived(directory, instance):
    assert await _is_live(directory, instance.instance_id)
    assert await directory.archive.list_for_instance(instance.instance_id) == []

    await directory.instances.retire(instance.instance_id)

    assert not await _is_live(directory, instance.instance_id)
    assert len(await directory.archive.list_for_instance(instance.instance_id)) == 1


@pytest.mark.asyncio
async def test_concurrent_retires_archive_once(directory, instance):
    workers = 8
    barrier = threading.Barrier(workers)

    def retire_in_thread():
        # Each thread runs its own event loop and its own connection.
        barrier.wait()
        try:
            return asyncio.run(directory.instances.retire(instance.instance_id))
        except NotFoundError as exc:
            return exc

    loop = asyncio.get_running_loop()
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = await asyncio.gather(*(loop.run_in_executor(pool, retire_in_thread) for _ in range(workers)))

    retired = [r for r in results if not isinstance(r, NotFoundError)]
    assert len(retired) == 1
    assert sum(isinstance(r, NotFoundError) for r in results) == workers - 1
    assert await directory.archive.list_for_instance(instance.instance_id) == retired
    assert not await _is_live(directory, instance.instance_id)


@pytest.mark.asyncio
async def test_failed_delete_leaves_instance_live_and_unarchived(db, directory, instance):
    _block_deletes(db)

    with pytest.raises(StorageError) as excinfo:
        await directory.instances.retire(instance.instance_id)
    assert not isinstance(excinfo.value, OrphanPendingError)
    assert excinfo.value.retryable

    assert await _is_live(directory, instance.instance_id)
    assert await directory.archive.list_for_instance(instance.instance_id) == []

    _allow_deletes(db)
    await directory.instances.retire(instance.instance_id)
    assert len(await directory.archive.list_for_instance(instance.instance_id)) == 1


@pytest.mark.asyncio
async def test_retire_reuses_existing_archive_record(db, directory, instance):
    orphan = compose_history(instance)
    _insert_orphan(db, orphan)

    record = await directory.instances.retire(instance.instance_id)

    assert record.history_id == orphan.history_id
    assert not await _is_live(directory, instance.instance_id)
    assert await directory.archive.list_for_instance(instance.instance_id) == [orphan]


@pytest.mark.asyncio
async def test_orphan_pending_is_reported_and_retry_completes(db, directory, instance):
    orphan = compose_history(instance)
    _insert_orphan(db, orphan)
    _block_deletes(db)

    with pytest.raises(OrphanPendingError) as excinfo:
        await directory.instances.retire(instance.instance_id)
    assert excinfo.value.retryable
    assert excinfo.value.history_id == orphan.history_id
    assert await _is_live(directory, instance.instance_id)

    _allow_deletes(db)
    record = await directory.instances.retire(instance.instance_id)

    assert record.history_id == orphan.history_id
    assert not await _is_live(directory, instance.instance_id)
    assert len(await directory.archive.list_for_instance(instance.instance_id)) == 1


@pytest.mark.asyncio
async def test_append_refuses_live_instance(directory, instance):
    with pytest.raises(ConflictError):
        await directory.archive.append(compose_history(instance))

    assert await _is_live(directory, instance.instance_id)
    assert await directory.archive.list_for_instance(instance.instance_id) == []


@pytest.mark.asyncio
async def test_append_imports_instance_that_is_not_live(directory, instance):
    imported = compose_history(instance).model_copy(update={"instance_id": str(uuid.uuid4())})

    await directory.archive.append(imported)

    assert await directory.archive.list_for_instance(imported.instance_id) == [imported]
    with pytest.raises(ConflictError):
        await directory.archive.append(imported.model_copy(update={"history_id": str(uuid.uuid4())}))


@pytest.mark.asyncio
async def test_record_usage_keeps_weighted_means(directory, service, instance):
    await directory.instances.record_usage(instance.instance_id, UsageReport(transactions=100, average_response_time=10.0))
    updated = await directory.instances.record_usage(
        instance.instance_id, UsageReport(transactions=300, average_response_time=30.0)
    )

    assert updated.transaction_count == 400
    assert updated.average_response_time == pytest.approx(25.0)

    owner = await directory.services.get(service.service_id)
    assert owner.transaction_count == 400
    assert owner.average_response_time == pytest.approx(25.0)


@pytest.mark.asyncio
async def test_retired_instance_keeps_usage_in_history(directory, instance):
    await directory.instances.record_usage(instance.instance_id, UsageReport(transactions=5, average_response_time=12.0))
    record = await directory.instances.retire(instance.instance_id)

    assert record.metrics == {
        "health_status": "starting",
        "transaction_count": 5,
        "average_response_time": 12.0,
    }

    with pytest.raises(NotFoundError):
        await directory.instances.record_usage(
            instance.instance_id, UsageReport(transactions=1, average_response_time=1.0)
        )
