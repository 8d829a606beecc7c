"""Exceptions raised by the managed-kafka-operator."""

__all__ = (
    "CacheNotReadyError",
    "CacheSyncError",
    "ManagedKafkaOperatorError",
    "ManagedKafkaSpecError",
)


class ManagedKafkaOperatorError(Exception):
    """Base class for errors raised by the operator."""


class CacheSyncError(ManagedKafkaOperatorError):
    """A watch subscription failed to complete its initial list.

    The operator must not reconcile against an incomplete view of the
    cluster, so this error is fatal at startup.
    """

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(f"Could not sync {kind}: {message}")
        self.kind = kind


class CacheNotReadyError(ManagedKafkaOperatorError):
    """A reconciliation pass was requested before the watch cache synced."""


class ManagedKafkaSpecError(ManagedKafkaOperatorError):
    """The spec of a ManagedKafka is malformed or incomplete.

    This is a per-object problem reported through the ``Ready`` condition,
    never a reason to crash the operator.
    """
