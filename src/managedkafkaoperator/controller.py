"""Reconciliation of a ManagedKafka across its operands."""

from __future__ import annotations

__all__ = ("ManagedKafkaController", "ReconcileResult")

import threading
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import structlog

from managedkafkaoperator.conditions import ManagedKafkaState
from managedkafkaoperator.exceptions import (
    CacheNotReadyError,
    ManagedKafkaSpecError,
)
from managedkafkaoperator.operands.base import Operand


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a reconciliation pass."""

    state: ManagedKafkaState
    message: str = ""


class ManagedKafkaController:
    """Drives reconciliation passes of ManagedKafka resources.

    Parameters
    ----------
    cache
        The watch cache (see `managedkafkaoperator.watchcache.WatchCache`).
    operands : sequence of `Operand`
        The operands, in the order they are reconciled. Later operands may
        rely on resources created by earlier ones.
    logger : optional
        Logger; a structlog logger is used by default.

    Notes
    -----
    Passes for the same ManagedKafka are serialized. Passes for different
    ManagedKafka resources may run concurrently; they only share the watch
    cache, which they read.
    """

    def __init__(
        self,
        *,
        cache: Any,
        operands: Sequence[Operand],
        logger: Any = None,
    ) -> None:
        self.cache = cache
        self.operands = list(operands)
        if logger is None:
            logger = structlog.getLogger(__name__)
        self.logger = logger
        self._locks: dict[str, threading.Lock] = {}
        self._locks_lock = threading.Lock()

    @contextmanager
    def _serialized(self, managed_kafka: Mapping[str, Any]) -> Iterator[None]:
        metadata = managed_kafka["metadata"]
        key = metadata.get("uid") or (
            f"{metadata.get('namespace')}/{metadata['name']}"
        )
        with self._locks_lock:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield

    def forget(self, managed_kafka: Mapping[str, Any]) -> None:
        """Drop the bookkeeping of a ManagedKafka that no longer exists."""
        key = managed_kafka["metadata"].get("uid")
        with self._locks_lock:
            self._locks.pop(key, None)

    def reconcile(self, managed_kafka: Mapping[str, Any]) -> ReconcileResult:
        """Run one reconciliation pass.

        Every operand recomputes its resources from ``spec``, so a pass can
        be replayed any number of times.

        Raises
        ------
        managedkafkaoperator.exceptions.CacheNotReadyError
            Raised, before any operand runs, if the watch cache has not
            completed its initial sync.
        kubernetes.client.exceptions.ApiException
            Raised if a call to the Kubernetes API fails. The pass is
            retried on the next trigger.
        """
        if not self.cache.is_ready():
            raise CacheNotReadyError("The watch cache has not synced yet")

        with self._serialized(managed_kafka):
            problems = []
            for operand in self.operands:
                try:
                    operand.create_or_update(managed_kafka)
                except ManagedKafkaSpecError as e:
                    self.logger.warning(f"{operand.name}: {e}")
                    problems.append(str(e))
            return self.evaluate(managed_kafka, problems=problems)

    def evaluate(
        self,
        managed_kafka: Mapping[str, Any],
        *,
        problems: Sequence[str] = (),
    ) -> ReconcileResult:
        """Aggregate the status of every operand.

        The state is ``Error`` if ``spec`` has problems or any operand
        reports an error, otherwise ``Installing`` if any operand is still
        installing or has not reported a status yet, otherwise ``Ready``.
        """
        errors = list(problems)
        installing = False
        for operand in self.operands:
            if operand.is_error(managed_kafka):
                message = operand.error_message(managed_kafka)
                if message not in errors:
                    errors.append(message)
            elif not operand.is_ready(managed_kafka):
                installing = True

        if errors:
            return ReconcileResult(ManagedKafkaState.ERROR, "; ".join(errors))
        if installing:
            return ReconcileResult(ManagedKafkaState.INSTALLING)
        return ReconcileResult(ManagedKafkaState.READY)

    def finalize(self, managed_kafka: Mapping[str, Any]) -> bool:
        """Delete the resources of every operand.

        Returns
        -------
        deleted : `bool`
            `True` once the cache confirms every operand's resources are
            gone.
        """
        with self._serialized(managed_kafka):
            for operand in self.operands:
                operand.delete(managed_kafka)
            pending = [
                operand.name
                for operand in self.operands
                if not operand.is_deleted(managed_kafka)
            ]
        if pending:
            self.logger.info(f"Waiting for deletion of {', '.join(pending)}")
            return False
        return True
