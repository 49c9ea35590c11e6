from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from directory_service.app.core.config import Settings
from directory_service.app.core.db import Database
from directory_service.app.main import create_app
from directory_service.app.schemas.instance import InstanceCreate
from directory_service.app.schemas.service import ServiceCreate
from directory_service.app.services import Directory
from directory_service.app.services.health_monitor import HealthProbe


def mock_probe(status_code: int = 200) -> HealthProbe:
    """A probe whose every request is answered with ``status_code``."""
    return HealthProbe(
        timeout=1.0,
        transport=httpx.MockTransport(lambda request: httpx.Response(status_code)),
    )


@pytest.fixture
def db(tmp_path) -> Database:
    database = Database(str(tmp_path / "directory.db"))
    database.init_db()
    return database


@pytest.fixture
def directory(db) -> Directory:
    return Directory.build(db, probe=mock_probe())


@pytest.fixture
async def service(directory):
    return await directory.services.register(ServiceCreate(name="Acme API", owner_info="acme"))


@pytest.fixture
async def instance(directory, service):
    return await directory.instances.create(
        InstanceCreate(service_id=service.service_id, host="10.0.0.1", port=9090, version="1.0.0")
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(database_url=str(tmp_path / "api.db"), request_timeout=5)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
