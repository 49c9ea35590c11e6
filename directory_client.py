"""Service directory client.

This module defines a client for service owners that register with the
directory.  It wraps the REST API served by ``directory_service`` and
uses the ``requests`` library internally.

The client exposes the operations of the registry contract:

* :meth:`RegistryClient.register_service` – register a service.
* :meth:`RegistryClient.deregister_service` – remove a service.
* :meth:`RegistryClient.update_service_health` – set the health of all
  live instances of a service.
* :meth:`RegistryClient.perform_health_check` – ask the directory to probe
  the service's instances.
* :meth:`RegistryClient.retrieve_statistics` – fetch usage statistics.

plus :meth:`RegistryClient.register_instance` and
:meth:`RegistryClient.retire_instance` for the instances a service runs.

Failures are raised as :class:`RegistryClientError`.  Its ``retryable``
flag is set for responses the directory marks as safe to retry (storage
failures and half‑finished retirements) and for network errors.

The client supports optional authentication via an API key which will
be sent in the ``Authorization`` header.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

import requests

from directory_service.app.schemas.instance import HealthStatus
from directory_service.app.schemas.statistics import ServiceStatistics

logger = logging.getLogger(__name__)


class RegistryClientError(Exception):
    """A request to the directory failed.

    Attributes:
        status_code: HTTP status of the response, ``None`` for network errors.
        code: Error code reported by the directory (e.g. ``not_found``).
        retryable: Whether repeating the same request may succeed.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.retryable = retryable


class RegistryClient:
    """Client for the service directory REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 15,
    ) -> None:
        """Initialise the client.

        Args:
            base_url: Base URL of the directory, e.g. ``http://registry:8080``.
                The ``/api/v1`` prefix is added by the client.
            api_key: Optional API key sent as ``Authorization: Bearer <key>``.
            session: Optional requests session.  If not supplied a session
                will be created automatically.
            timeout: Seconds to wait for each response.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Low level HTTP helper
    # ------------------------------------------------------------------
    def _request(self, method: str, path: str, *, json_body: Any | None = None) -> Optional[Any]:
        """Perform an HTTP request and return the decoded JSON body.

        Returns ``None`` for responses without content.  Raises
        :class:`RegistryClientError` on HTTP and network errors.
        """
        url = f"{self.base_url}/api/v1{path}"
        headers: Dict[str, str] = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            logger.debug("Sending %s request to %s", method, url)
            response = self.session.request(
                method=method,
                url=url,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise _http_error(exc) from exc
        except requests.RequestException as exc:
            logger.error("Directory request failed: %s", exc)
            raise RegistryClientError(str(exc), retryable=True) from exc
        if response.content:
            return response.json()
        return None

    # ------------------------------------------------------------------
    # Registry contract
    # ------------------------------------------------------------------
    def register_service(
        self,
        name: str,
        *,
        service_id: Optional[str] = None,
        description: str = "",
        owner_info: str = "",
        industry_category: str = "",
        client_rating: float = 0.0,
    ) -> Dict[str, Any]:
        """Register a service and return the stored record.

        A ``service_id`` that is already registered fails with status 409.
        """
        payload: Dict[str, Any] = {
            "name": name,
            "description": description,
            "owner_info": owner_info,
            "industry_category": industry_category,
            "client_rating": client_rating,
        }
        if service_id is not None:
            payload["service_id"] = service_id
        return self._request("POST", "/services/", json_body=payload)

    def deregister_service(self, service_id: str) -> None:
        self._request("DELETE", f"/services/{service_id}")

    def update_service_health(self, service_id: str, status: Union[HealthStatus, str]) -> HealthStatus:
        """Set ``status`` on every live instance of the service."""
        data = self._request(
            "PUT",
            f"/services/{service_id}/health",
            json_body={"status": HealthStatus(status).value},
        )
        return HealthStatus(data["status"])

    def perform_health_check(self, service_id: str) -> HealthStatus:
        """Have the directory probe the service's instances; return the combined status."""
        data = self._request("POST", f"/services/{service_id}/health-check")
        return HealthStatus(data["status"])

    def retrieve_statistics(self, service_id: str) -> ServiceStatistics:
        data = self._request("GET", f"/services/{service_id}/statistics")
        return ServiceStatistics.model_validate(data)

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------
    def register_instance(self, service_id: str, host: str, port: int, **fields: Any) -> Dict[str, Any]:
        """Create an instance of ``service_id``.

        Extra keyword arguments (``version``, ``url``, ``latitude``,
        ``longitude``, ``api_spec``) are passed through.
        """
        payload = {"service_id": service_id, "host": host, "port": port, **fields}
        return self._request("POST", "/service-instances/", json_body=payload)

    def retire_instance(self, instance_id: str) -> None:
        """Retire an instance.  Safe to call again when ``retryable`` errors occur."""
        self._request("DELETE", f"/service-instances/{instance_id}")


def _http_error(exc: requests.HTTPError) -> RegistryClientError:
    response = exc.response
    status = response.status_code if response is not None else None
    message = ""
    code = None
    retryable = status == 503
    if response is not None:
        try:
            body = response.json()
        except ValueError:
            message = response.text
        else:
            if isinstance(body, dict):
                message = str(body.get("detail") or "")
                code = body.get("code")
                retryable = bool(body.get("retryable", retryable))
            else:
                message = str(body)
    if not message:
        message = str(exc)
    logger.error("Directory request failed (%s): %s", status, message)
    return RegistryClientError(message, status_code=status, code=code, retryable=retryable)
