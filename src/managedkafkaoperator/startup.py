"""Code intended to run on start-up, before running any handlers."""

from __future__ import annotations

__all__ = ("build_operands", "start_operator", "stop_operator")

from typing import Any

import kopf
import structlog
from prometheus_client import CollectorRegistry

from managedkafkaoperator import config
from managedkafkaoperator.controller import ManagedKafkaController
from managedkafkaoperator.exceptions import CacheSyncError
from managedkafkaoperator.k8s import create_k8sclient, is_openshift
from managedkafkaoperator.kinds import KAFKAS, build_kinds
from managedkafkaoperator.metrics import MetricsProjector, start_metrics_server
from managedkafkaoperator.operands import (
    KafkaClusterOperand,
    Operand,
    SecretOperand,
)
from managedkafkaoperator.version import get_version
from managedkafkaoperator.watchcache import WatchCache


def build_operands(
    *, cache: Any, k8s_client: Any, openshift: bool, logger: Any = None
) -> list[Operand]:
    """Build the operands in the order they are reconciled.

    The Kafka resource comes before the secrets its listeners refer to.
    """
    return [
        KafkaClusterOperand(
            cache=cache,
            k8s_client=k8s_client,
            openshift=openshift,
            logger=logger,
        ),
        SecretOperand(cache=cache, k8s_client=k8s_client, logger=logger),
    ]


def start_operator(memo: kopf.Memo, logger: Any = None) -> None:
    """Start up the operator: sync the watch cache and build the controller.

    This blocks until every watched kind has completed its initial list.
    The cache, metrics projector and controller are stored on ``memo`` so
    that handlers can reach them.

    Raises
    ------
    managedkafkaoperator.exceptions.CacheSyncError
        Raised if the watch cache cannot complete its initial sync.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    logger.info(f"Starting managed-kafka-operator {get_version()}")
    k8s_client = create_k8sclient()

    openshift = is_openshift(k8s_client)
    if not openshift:
        logger.warning(
            "Not running on OpenShift cluster, Routes are not available"
        )

    cache = WatchCache(
        build_kinds(k8s_client, openshift=openshift),
        label_selector=config.label_selector(),
        list_timeout=config.cache_sync_timeout,
    )

    # A registry per start-up, so a retried start does not register the
    # gauges twice.
    projector = MetricsProjector(CollectorRegistry())
    cache.add_listener(KAFKAS, projector)

    try:
        cache.start()
    except CacheSyncError:
        logger.exception("Could not sync the watch cache")
        raise

    memo.cache = cache
    memo.metrics = projector
    memo.controller = ManagedKafkaController(
        cache=cache,
        operands=build_operands(
            cache=cache, k8s_client=k8s_client, openshift=openshift
        ),
    )

    if config.metrics_port:
        start_metrics_server(config.metrics_port, registry=projector.registry)
        logger.info(f"Serving metrics on port {config.metrics_port}")


def stop_operator(memo: kopf.Memo, logger: Any = None) -> None:
    """Stop the watch cache. In-flight reconciliations finish on their own."""
    if logger is None:
        logger = structlog.getLogger(__name__)

    cache = getattr(memo, "cache", None)
    if cache is not None:
        cache.stop()
        logger.info("Stopped the watch cache")
