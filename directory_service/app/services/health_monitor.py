"""
Health state machine and probes for service instances.

Every instance starts in ``starting`` (set by ``InstanceStore.create``)
and afterwards moves freely between ``up``, ``down`` and ``unknown``.
Nothing moves an instance back to ``starting``.

``HealthProbe`` performs one HTTP GET against an instance and classifies
the outcome:

* a response with status below 400 means ``up``;
* a response with status 400 or above, or a refused connection, means
  ``down``;
* a timeout or any other failure of the probe itself means ``unknown``;
  it says nothing about the instance's health.

Concurrent probes of the same instance may race; the most recently
completed one wins.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Iterable, Optional, Union

import httpx

from directory_service.app.core.errors import DeadlineExceededError, NotFoundError, ValidationError
from directory_service.app.schemas.instance import HealthReport, HealthStatus, InstanceRead
from directory_service.app.services.instance_store import InstanceStore

logger = logging.getLogger(__name__)


class HealthProbe:
    """HTTP probe of a single instance endpoint."""

    def __init__(
        self,
        timeout: float = 5.0,
        health_path: str = "/health",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self.health_path = health_path
        # Injected in tests (``httpx.MockTransport``); ``None`` means real network I/O.
        self.transport = transport

    def target(self, instance: InstanceRead) -> str:
        """URL probed for ``instance``: its own URL, else ``http://host:port`` + health path."""
        if instance.url:
            return instance.url
        path = self.health_path if self.health_path.startswith("/") else f"/{self.health_path}"
        return f"http://{instance.host}:{instance.port}{path}"

    async def probe(self, instance: InstanceRead, timeout: Optional[float] = None) -> HealthStatus:
        """Probe ``instance`` once.

        ``timeout`` caps the probe below the configured per-probe timeout,
        e.g. to the time left before a caller's deadline.
        """
        url = self.target(instance)
        limit = self.timeout if timeout is None else min(self.timeout, timeout)
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(limit),
                transport=self.transport,
            ) as client:
                resp = await client.get(url)
        except httpx.TimeoutException:
            logger.warning("Health probe of instance %s timed out (%s)", instance.instance_id, url)
            return HealthStatus.UNKNOWN
        except httpx.ConnectError as exc:
            logger.info("Health probe of instance %s refused (%s): %s", instance.instance_id, url, exc)
            return HealthStatus.DOWN
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Health probe of instance %s failed (%s): %s", instance.instance_id, url, exc)
            return HealthStatus.UNKNOWN
        if resp.status_code < 400:
            return HealthStatus.UP
        logger.info("Health probe of instance %s returned HTTP %s", instance.instance_id, resp.status_code)
        return HealthStatus.DOWN


def combine_statuses(statuses: Iterable[HealthStatus]) -> HealthStatus:
    """Reduce instance states to one service state.

    Any ``up`` instance makes the service ``up``; a service whose
    instances are all ``down`` is ``down``; anything else, including a
    service without instances, is ``unknown``.
    """
    statuses = list(statuses)
    if HealthStatus.UP in statuses:
        return HealthStatus.UP
    if statuses and all(status is HealthStatus.DOWN for status in statuses):
        return HealthStatus.DOWN
    return HealthStatus.UNKNOWN


class HealthMonitor:
    """Applies health updates and probe results to live instances."""

    def __init__(self, instances: InstanceStore, probe: HealthProbe) -> None:
        self.instances = instances
        self.probe = probe

    async def update_health(
        self,
        instance_id: str,
        status: Union[HealthStatus, str],
        timeout: Optional[float] = None,
    ) -> InstanceRead:
        """Set the health of a live instance.

        Raises ``NotFoundError`` for retired or unknown instances and
        ``ValidationError`` for an unknown state or ``starting``.
        """
        return await self.instances.set_health(instance_id, _coerce(status), timeout)

    async def perform_health_check(self, instance_id: str, timeout: Optional[float] = None) -> HealthStatus:
        """Probe one instance, store the result and return it.

        ``timeout`` bounds the whole call: the lookup, the network probe
        and the store update share one deadline.
        """
        deadline = _deadline(timeout)
        instance = await self.instances.get(instance_id, _remaining(deadline, "health check"))
        status = await self.probe.probe(instance, _remaining(deadline, "health check"))
        await self.update_health(instance_id, status, _remaining(deadline, "health check"))
        return status

    async def update_service_health(
        self,
        service_id: str,
        status: Union[HealthStatus, str],
        timeout: Optional[float] = None,
    ) -> HealthReport:
        """Set the same health on every live instance of a service."""
        status = _coerce(status)
        if status is HealthStatus.STARTING:
            raise ValidationError("an instance cannot return to the 'starting' state")
        deadline = _deadline(timeout)
        instances = await self.instances.list_for_service(service_id, _remaining(deadline, "service health update"))
        updated = 0
        for instance in instances:
            try:
                await self.instances.set_health(
                    instance.instance_id, status, _remaining(deadline, "service health update")
                )
            except NotFoundError:
                logger.debug("Instance %s retired before its health update", instance.instance_id)
                continue
            updated += 1
        return HealthReport(status=combine_statuses([status] * updated), checked=updated)

    async def check_service(self, service_id: str, timeout: Optional[float] = None) -> HealthReport:
        """Probe every live instance of a service and reduce the results."""
        deadline = _deadline(timeout)
        instances = await self.instances.list_for_service(service_id, _remaining(deadline, "service health check"))
        probe_timeout = _remaining(deadline, "service health check")
        results = await asyncio.gather(*(self.probe.probe(instance, probe_timeout) for instance in instances))
        statuses = []
        for instance, status in zip(instances, results):
            try:
                await self.instances.set_health(
                    instance.instance_id, status, _remaining(deadline, "service health check")
                )
            except NotFoundError:
                logger.debug("Instance %s retired while being probed", instance.instance_id)
                continue
            statuses.append(status)
        return HealthReport(status=combine_statuses(statuses), checked=len(statuses))


def _deadline(timeout: Optional[float]) -> Optional[float]:
    return time.monotonic() + timeout if timeout is not None else None


def _remaining(deadline: Optional[float], operation: str) -> Optional[float]:
    """Seconds left before ``deadline``; raises once it has passed."""
    if deadline is None:
        return None
    left = deadline - time.monotonic()
    if left <= 0:
        raise DeadlineExceededError(operation)
    return left


def _coerce(status: Union[HealthStatus, str]) -> HealthStatus:
    try:
        return HealthStatus(status)
    except ValueError as exc:
        raise ValidationError(f"unknown health status {status!r}") from exc
