"""Prometheus gauges describing the limits of each Kafka instance.

`MetricsProjector` listens to the watch cache for Kafka resources and keeps
one set of gauges per instance. It only reads cached resources and never
takes part in reconciliation.
"""

from __future__ import annotations

__all__ = ("MetricsProjector", "start_metrics_server")

import math
import sys
import threading
from collections.abc import Mapping
from typing import Any

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Gauge, start_http_server

from managedkafkaoperator.operands.kafkacluster import (
    EXTERNAL_LISTENER,
    MAX_PARTITIONS,
    MESSAGE_MAX_BYTES,
)

KAFKA_INSTANCE_BROKERS_DESIRED_COUNT = "kafka_instance_brokers_desired_count"
KAFKA_INSTANCE_PARTITION_LIMIT = "kafka_instance_partition_limit"
KAFKA_INSTANCE_MAX_MESSAGE_SIZE_LIMIT = "kafka_instance_max_message_size_limit"
KAFKA_INSTANCE_CONNECTION_LIMIT = "kafka_instance_connection_limit"
KAFKA_INSTANCE_CONNECTION_CREATION_RATE_LIMIT = (
    "kafka_instance_connection_creation_rate_limit"
)

OWNER = "KafkaInstanceMetricsManager"

INSTANCE_LABELS = ("namespace", "name", "owner")
LISTENER_LABELS = (*INSTANCE_LABELS, "broker", "listener")

# Listener limits that are not configured are unlimited.
UNLIMITED = sys.float_info.max


def start_metrics_server(port: int, registry: CollectorRegistry = REGISTRY) -> None:
    """Expose ``registry`` on ``port`` from a background thread."""
    start_http_server(port, registry=registry)


class MetricsProjector:
    """Derives gauges from the cached Kafka resources.

    Parameters
    ----------
    registry : `prometheus_client.CollectorRegistry`, optional
        Registry of the gauges. The default global registry is used if not
        set.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        if registry is None:
            registry = REGISTRY
        self.registry = registry
        self.brokers_desired = Gauge(
            KAFKA_INSTANCE_BROKERS_DESIRED_COUNT,
            "Number of brokers desired for the Kafka instance",
            INSTANCE_LABELS,
            registry=registry,
        )
        self.partition_limit = Gauge(
            KAFKA_INSTANCE_PARTITION_LIMIT,
            "Maximum number of partitions of the Kafka instance",
            INSTANCE_LABELS,
            registry=registry,
        )
        self.max_message_size_limit = Gauge(
            KAFKA_INSTANCE_MAX_MESSAGE_SIZE_LIMIT,
            "Maximum message size of the Kafka instance",
            INSTANCE_LABELS,
            registry=registry,
        )
        self.connection_limit = Gauge(
            KAFKA_INSTANCE_CONNECTION_LIMIT,
            "Maximum number of connections per broker and listener",
            LISTENER_LABELS,
            registry=registry,
        )
        self.connection_creation_rate_limit = Gauge(
            KAFKA_INSTANCE_CONNECTION_CREATION_RATE_LIMIT,
            "Maximum connection creation rate per broker and listener",
            LISTENER_LABELS,
            registry=registry,
        )
        self._lock = threading.Lock()
        # (namespace, name) -> [(gauge, label values)] currently exported
        self._series: dict[tuple[str, str], list[tuple[Gauge, tuple[str, ...]]]] = {}
        self._logger = structlog.getLogger(__name__)

    def on_add(self, kafka: Mapping[str, Any]) -> None:
        self._guarded(self.update, kafka)

    def on_update(self, old: Mapping[str, Any], new: Mapping[str, Any]) -> None:
        self._guarded(self.update, new)

    def on_delete(self, kafka: Mapping[str, Any]) -> None:
        self._guarded(self.remove, kafka)

    def _guarded(self, method: Any, kafka: Mapping[str, Any]) -> None:
        try:
            method(kafka)
        except Exception:
            metadata = kafka.get("metadata") or {}
            self._logger.exception(
                f"Could not project metrics of Kafka "
                f"{metadata.get('namespace')}/{metadata.get('name')}"
            )

    def update(self, kafka: Mapping[str, Any]) -> None:
        """(Re)compute every gauge of a Kafka instance."""
        key = _instance_key(kafka)
        instance_labels = (*key, OWNER)
        kafka_spec = (kafka.get("spec") or {}).get("kafka")

        series: list[tuple[Gauge, tuple[str, ...]]] = []

        def set_gauge(gauge: Gauge, labels: tuple[str, ...], value: float) -> None:
            gauge.labels(*labels).set(value)
            series.append((gauge, labels))

        set_gauge(self.brokers_desired, instance_labels, _replicas(kafka_spec))
        set_gauge(
            self.partition_limit,
            instance_labels,
            _config_value(kafka_spec, MAX_PARTITIONS),
        )
        set_gauge(
            self.max_message_size_limit,
            instance_labels,
            _config_value(kafka_spec, MESSAGE_MAX_BYTES),
        )

        if kafka_spec is not None:
            listeners = [
                listener
                for listener in kafka_spec.get("listeners") or []
                if listener.get("name") == EXTERNAL_LISTENER
            ]
            for ordinal in range(int(kafka_spec.get("replicas") or 0)):
                for listener in listeners:
                    labels = (*instance_labels, str(ordinal), listener["name"])
                    configuration = listener.get("configuration")
                    set_gauge(
                        self.connection_limit,
                        labels,
                        _listener_limit(configuration, "maxConnections"),
                    )
                    set_gauge(
                        self.connection_creation_rate_limit,
                        labels,
                        _listener_limit(
                            configuration, "maxConnectionCreationRate"
                        ),
                    )

        with self._lock:
            stale = set(self._series.get(key, [])) - set(series)
            self._series[key] = series
        for gauge, labels in stale:
            _remove_series(gauge, labels)

    def remove(self, kafka: Mapping[str, Any]) -> None:
        """Remove every gauge of a Kafka instance."""
        with self._lock:
            series = self._series.pop(_instance_key(kafka), [])
        for gauge, labels in series:
            _remove_series(gauge, labels)


def _instance_key(kafka: Mapping[str, Any]) -> tuple[str, str]:
    metadata = kafka["metadata"]
    return metadata.get("namespace") or "", metadata["name"]


def _remove_series(gauge: Gauge, labels: tuple[str, ...]) -> None:
    try:
        gauge.remove(*labels)
    except KeyError:
        pass


def _replicas(kafka_spec: Mapping[str, Any] | None) -> float:
    if kafka_spec is None or kafka_spec.get("replicas") is None:
        return math.nan
    return float(kafka_spec["replicas"])


def _config_value(kafka_spec: Mapping[str, Any] | None, key: str) -> float:
    if kafka_spec is None:
        return math.nan
    value = (kafka_spec.get("config") or {}).get(key)
    if value is None:
        return math.nan
    return float(value)


def _listener_limit(configuration: Mapping[str, Any] | None, key: str) -> float:
    if configuration is None or configuration.get(key) is None:
        return UNLIMITED
    return float(configuration[key])
