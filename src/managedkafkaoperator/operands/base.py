"""The contract every operand implements."""

from __future__ import annotations

__all__ = ("Operand",)

import abc
from collections.abc import Mapping
from typing import Any

import structlog


class Operand(abc.ABC):
    """Reconciles one family of resources derived from a ManagedKafka.

    Parameters
    ----------
    cache
        The watch cache (see `managedkafkaoperator.watchcache.WatchCache`).
        Status predicates only ever read from it.
    k8s_client
        A Kubernetes client (see `managedkafkaoperator.k8s.create_k8sclient`),
        used for writes.
    logger : optional
        Logger; a structlog logger is used by default.

    Notes
    -----
    ``is_installing``, ``is_ready`` and ``is_error`` classify the resources
    into exactly one bucket once they have reported a status. All three are
    `False` while nothing has been reported yet, which callers treat as
    installing.
    """

    name = "operand"

    def __init__(self, *, cache: Any, k8s_client: Any, logger: Any = None):
        self.cache = cache
        self.k8s_client = k8s_client
        if logger is None:
            logger = structlog.getLogger(__name__)
        self.logger = logger

    @abc.abstractmethod
    def create_or_update(self, managed_kafka: Mapping[str, Any]) -> None:
        """Create or replace the resources so they match ``spec``.

        Raises
        ------
        managedkafkaoperator.exceptions.ManagedKafkaSpecError
            Raised if ``spec`` is not valid for this operand.
        """

    @abc.abstractmethod
    def delete(self, managed_kafka: Mapping[str, Any]) -> None:
        """Delete the resources. Missing resources are not an error."""

    @abc.abstractmethod
    def is_installing(self, managed_kafka: Mapping[str, Any]) -> bool: ...

    @abc.abstractmethod
    def is_ready(self, managed_kafka: Mapping[str, Any]) -> bool: ...

    @abc.abstractmethod
    def is_error(self, managed_kafka: Mapping[str, Any]) -> bool: ...

    @abc.abstractmethod
    def is_deleted(self, managed_kafka: Mapping[str, Any]) -> bool:
        """Whether the cache no longer shows any of the resources."""

    def error_message(self, managed_kafka: Mapping[str, Any]) -> str:
        """Describe why `is_error` holds."""
        return f"{self.name} reported an error"
