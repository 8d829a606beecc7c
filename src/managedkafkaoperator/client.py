"""HTTP client submitting ManagedKafka resources to the control plane API."""

from __future__ import annotations

__all__ = ("MAX_RESEND", "ManagedKafkaClient", "retry")

import time
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

import httpx
import structlog

T = TypeVar("T")

MAX_RESEND = 10
"""Number of attempts of a request before its failure is propagated."""

RESEND_DELAY = 1.0
"""Seconds between two attempts of a request."""

REQUEST_TIMEOUT = 120.0

logger = structlog.getLogger(__name__)


class ManagedKafkaClient:
    """Creates and deletes ManagedKafka resources through the control plane
    API of an agent cluster.

    Parameters
    ----------
    endpoint : `str`
        Base URL of the API, such as ``http://localhost:8080``.
    cluster_id : `str`
        Identifier of the agent cluster the ManagedKafka resources are
        submitted to.
    transport : `httpx.BaseTransport`, optional
        Transport of the underlying `httpx.Client`, mostly for testing.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        cluster_id: str,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.cluster_id = cluster_id
        self._client = httpx.Client(timeout=REQUEST_TIMEOUT, transport=transport)

    def __enter__(self) -> ManagedKafkaClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    @property
    def kafkas_url(self) -> str:
        return (
            f"{self.endpoint}/api/managed-services-api/v1/agent-clusters/"
            f"{self.cluster_id}/kafkas/"
        )

    def create_managed_kafka(
        self, managed_kafka: Mapping[str, Any]
    ) -> httpx.Response:
        """POST a ManagedKafka resource."""
        logger.info(
            f"Create managed kafka {managed_kafka['metadata']['name']}"
        )
        url = self.kafkas_url
        logger.info(f"Sending POST request to {url}")
        return retry(
            lambda: self._client.post(url, json=dict(managed_kafka))
        )

    def delete_managed_kafka(self, name: str) -> httpx.Response:
        """DELETE a ManagedKafka resource by name."""
        logger.info(f"Delete managed kafka {name}")
        url = f"{self.kafkas_url}{name}"
        logger.info(f"Sending DELETE request to {url}")
        return retry(lambda: self._client.delete(url))


def retry(
    api_request: Callable[[], T],
    *,
    attempts: int = MAX_RESEND,
    delay: float = RESEND_DELAY,
) -> T:
    """Call ``api_request``, retrying when the connection fails.

    The request is attempted up to ``attempts`` times with a fixed ``delay``
    between attempts. The result or exception of the last attempt is always
    propagated.
    """
    for i in range(1, attempts):
        try:
            return api_request()
        except httpx.TransportError as e:
            logger.warning(
                f"Request failed {e}, going to retry {i}/{attempts}"
            )
            time.sleep(delay)
    # last try
    return api_request()
