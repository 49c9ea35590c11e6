"""
Service layer for registered services.

``ServiceStore`` owns the ``services`` table: registration, update,
lookup, listing and deletion.  Identity is a UUID string assigned once
at registration (generated when the caller does not supply one) and
never reused.

Deletion does not cascade.  A service that is still referenced by live
instances or by history records cannot be deleted; retire its
instances first.  History rows keep referencing the service, so a
service with archived instances stays registered.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from typing import List, Optional

from directory_service.app.core.db import Database, to_db_time, utcnow
from directory_service.app.core.errors import ConflictError, NotFoundError, ValidationError
from directory_service.app.schemas.service import ServiceCreate, ServiceRead, ServiceUpdate

logger = logging.getLogger(__name__)


class ServiceStore:
    """Registration and maintenance of ``Service`` records."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def register(self, data: ServiceCreate, timeout: Optional[float] = None) -> ServiceRead:
        """Insert a new service and return the stored record.

        ``created_at`` and ``updated_at`` are set to the same instant.
        Raises ``ConflictError`` when ``data.service_id`` is already
        registered; no row is written in that case.
        """
        if not data.name.strip():
            raise ValidationError("service name must not be empty")
        service_id = str(data.service_id) if data.service_id is not None else str(uuid.uuid4())
        now = to_db_time(utcnow())
        with self.db.transaction("register service", timeout) as cursor:
            if _fetch(cursor, service_id) is not None:
                raise ConflictError(f"service {service_id} is already registered")
            cursor.execute(
                """
                INSERT INTO services (
                    service_id, name, description, owner_info, industry_category,
                    client_rating, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    service_id,
                    data.name,
                    data.description,
                    data.owner_info,
                    data.industry_category,
                    data.client_rating,
                    now,
                    now,
                ),
            )
            row = _fetch(cursor, service_id)
        logger.info("Registered service %s (%s)", service_id, data.name)
        return _row_to_service(row)

    async def update(
        self,
        service_id: str,
        data: ServiceUpdate,
        timeout: Optional[float] = None,
    ) -> ServiceRead:
        """Replace all mutable fields of a service and bump ``updated_at``."""
        if not data.name.strip():
            raise ValidationError("service name must not be empty")
        with self.db.transaction("update service", timeout) as cursor:
            current = _fetch(cursor, service_id)
            if current is None:
                raise NotFoundError("service", service_id)
            # Never let a clock step backwards put updated_at before created_at.
            updated_at = max(utcnow(), datetime.fromisoformat(current["created_at"]))
            cursor.execute(
                """
                UPDATE services
                SET name = ?, description = ?, owner_info = ?, industry_category = ?,
                    client_rating = ?, updated_at = ?
                WHERE service_id = ?
                """,
                (
                    data.name,
                    data.description,
                    data.owner_info,
                    data.industry_category,
                    data.client_rating,
                    to_db_time(updated_at),
                    service_id,
                ),
            )
            row = _fetch(cursor, service_id)
        logger.info("Updated service %s", service_id)
        return _row_to_service(row)

    async def get(self, service_id: str, timeout: Optional[float] = None) -> ServiceRead:
        """Retrieve a single service by its ID."""
        with self.db.transaction("get service", timeout, write=False) as cursor:
            row = _fetch(cursor, service_id)
        if row is None:
            raise NotFoundError("service", service_id)
        return _row_to_service(row)

    async def list(self, timeout: Optional[float] = None) -> List[ServiceRead]:
        """Return all registered services, oldest first."""
        with self.db.transaction("list services", timeout, write=False) as cursor:
            rows = cursor.execute("SELECT * FROM services ORDER BY created_at ASC, service_id ASC").fetchall()
        return [_row_to_service(row) for row in rows]

    async def delete(self, service_id: str, timeout: Optional[float] = None) -> None:
        """Delete a service.

        Raises ``NotFoundError`` if the service does not exist and
        ``ConflictError`` while instances or history records reference it.
        """
        with self.db.transaction("delete service", timeout) as cursor:
            if _fetch(cursor, service_id) is None:
                raise NotFoundError("service", service_id)
            live = cursor.execute(
                "SELECT COUNT(*) FROM service_instances WHERE service_id = ?",
                (service_id,),
            ).fetchone()[0]
            archived = cursor.execute(
                "SELECT COUNT(*) FROM service_instance_history WHERE service_id = ?",
                (service_id,),
            ).fetchone()[0]
            if live or archived:
                raise ConflictError(
                    f"service {service_id} is referenced by {live} live instance(s) "
                    f"and {archived} history record(s)"
                )
            cursor.execute("DELETE FROM services WHERE service_id = ?", (service_id,))
        logger.info("Deleted service %s", service_id)


def _fetch(cursor: sqlite3.Cursor, service_id: str) -> Optional[sqlite3.Row]:
    return cursor.execute("SELECT * FROM services WHERE service_id = ?", (service_id,)).fetchone()


def _row_to_service(row: sqlite3.Row) -> ServiceRead:
    return ServiceRead.model_validate(dict(row))
