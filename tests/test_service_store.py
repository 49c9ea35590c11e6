"""Tests for service registration and maintenance."""

from __future__ import annotations

import uuid

import pytest

from directory_service.app.core.errors import ConflictError, NotFoundError, ValidationError
from directory_service.app.schemas.instance import InstanceCreate
from directory_service.app.schemas.service import ServiceCreate, ServiceUpdate


@pytest.mark.asyncio
async def test_register_generates_id_and_timestamps(directory):
    service = await directory.services.register(ServiceCreate(name="Acme API"))

    assert service.service_id
    uuid.UUID(service.service_id)
    assert service.created_at == service.updated_at
    assert service.transaction_count == 0
    assert service.average_response_time == 0.0


@pytest.mark.asyncio
async def test_register_keeps_caller_supplied_id(directory):
    service_id = uuid.uuid4()
    service = await directory.services.register(ServiceCreate(service_id=service_id, name="Billing"))
    assert service.service_id == str(service_id)


@pytest.mark.asyncio
async def test_register_duplicate_id_conflicts_without_new_row(directory):
    service_id = uuid.uuid4()
    await directory.services.register(ServiceCreate(service_id=service_id, name="First"))

    with pytest.raises(ConflictError):
        await directory.services.register(ServiceCreate(service_id=service_id, name="Second"))

    services = await directory.services.list()
    assert [s.name for s in services] == ["First"]


@pytest.mark.asyncio
async def test_register_rejects_blank_name(directory):
    with pytest.raises(ValidationError):
        await directory.services.register(ServiceCreate(name="   "))
    assert await directory.services.list() == []


@pytest.mark.asyncio
async def test_update_replaces_mutable_fields(directory, service):
    updated = await directory.services.update(
        service.service_id,
        ServiceUpdate(
            name="Acme API v2",
            description="new description",
            owner_info="payments team",
            industry_category="retail",
            client_rating=3.5,
        ),
    )

    assert updated.service_id == service.service_id
    assert updated.name == "Acme API v2"
    assert updated.owner_info == "payments team"
    assert updated.industry_category == "retail"
    assert updated.client_rating == 3.5
    assert updated.created_at == service.created_at
    assert updated.updated_at >= updated.created_at


@pytest.mark.asyncio
async def test_update_unknown_service(directory):
    with pytest.raises(NotFoundError):
        await directory.services.update(str(uuid.uuid4()), ServiceUpdate(name="ghost"))


@pytest.mark.asyncio
async def test_get_and_list(directory, service):
    fetched = await directory.services.get(service.service_id)
    assert fetched == service

    other = await directory.services.register(ServiceCreate(name="Other"))
    listed = await directory.services.list()
    assert {s.service_id for s in listed} == {service.service_id, other.service_id}


@pytest.mark.asyncio
async def test_get_unknown_service(directory):
    with pytest.raises(NotFoundError):
        await directory.services.get(str(uuid.uuid4()))


@pytest.mark.asyncio
async def test_delete_removes_service(directory, service):
    await directory.services.delete(service.service_id)

    with pytest.raises(NotFoundError):
        await directory.services.get(service.service_id)
    with pytest.raises(NotFoundError):
        await directory.services.delete(service.service_id)


@pytest.mark.asyncio
async def test_delete_refused_while_instances_or_history_exist(directory, service):
    created = await directory.instances.create(
        InstanceCreate(service_id=service.service_id, host="10.0.0.2", port=8000)
    )
    with pytest.raises(ConflictError):
        await directory.services.delete(service.service_id)

    await directory.instances.retire(created.instance_id)
    with pytest.raises(ConflictError):
        await directory.services.delete(service.service_id)

    assert (await directory.services.get(service.service_id)).name == "Acme API"
