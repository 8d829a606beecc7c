"""Operator configuration as module-level attributes."""

import os

managed_by = os.environ.get("MKO_MANAGED_BY", "managed-kafka-operator")
"""Value of the ``app.kubernetes.io/managed-by`` label carried by every
resource the operator creates, and used to filter its watches.
"""

resync_interval = float(os.environ.get("MKO_RESYNC_INTERVAL", "60"))
"""Seconds between periodic reconciliation passes of a ManagedKafka."""

cache_sync_timeout = int(os.environ.get("MKO_CACHE_SYNC_TIMEOUT", "120"))
"""Server-side timeout, in seconds, of each initial list of the watch
cache.
"""

delete_check_delay = float(os.environ.get("MKO_DELETE_CHECK_DELAY", "5"))
"""Seconds to wait before checking again whether dependent resources are
gone while a ManagedKafka is being deleted.
"""

metrics_port = int(os.environ.get("MKO_METRICS_PORT", "8080"))
"""Port of the Prometheus metrics endpoint. ``0`` disables it."""

log_level = os.environ.get("MKO_LOG_LEVEL", "info")
"""Minimum level of the structlog output."""


def default_labels() -> dict[str, str]:
    """Labels identifying resources managed by this operator."""
    return {"app.kubernetes.io/managed-by": managed_by}


def label_selector() -> str:
    """Label selector matching resources managed by this operator."""
    return ",".join(f"{key}={value}" for key, value in default_labels().items())
