"""Kopf handlers for the managed-kafka-operator."""

__all__ = (
    "delete_managed_kafka",
    "reconcile_managed_kafka",
    "resync_managed_kafka",
    "start",
    "stop",
)

from managedkafkaoperator.handlers.lifecycle import start, stop
from managedkafkaoperator.handlers.managedkafka import (
    delete_managed_kafka,
    reconcile_managed_kafka,
    resync_managed_kafka,
)
