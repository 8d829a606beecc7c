"""Kopf handlers for starting and stopping the operator."""

__all__ = ("start", "stop")

from typing import Any

import kopf

from managedkafkaoperator import config
from managedkafkaoperator.exceptions import CacheSyncError
from managedkafkaoperator.logconfig import setup_logging
from managedkafkaoperator.resources import GROUP
from managedkafkaoperator.startup import start_operator, stop_operator


@kopf.on.startup()  # type: ignore[arg-type]
def start(
    *,
    settings: kopf.OperatorSettings,
    memo: kopf.Memo,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Sync the watch cache before any ManagedKafka is handled.

    A watch that cannot complete its initial sync is fatal: the operator
    must not reconcile against an incomplete view of the cluster.

    Parameters
    ----------
    settings : `kopf.OperatorSettings`
        The operator settings, adjusted in place.
    memo : `kopf.Memo`
        Operator-wide memo where the watch cache and controller are stored.
    logger : `Any`
        The kopf logger.
    **kwargs : `Any`
        Additional keyword arguments provided by kopf.
    """
    setup_logging(config.log_level)
    settings.persistence.finalizer = f"{GROUP}/finalizer"
    try:
        start_operator(memo, logger=logger)
    except CacheSyncError as e:
        raise kopf.PermanentError(str(e)) from e


@kopf.on.cleanup()  # type: ignore[arg-type]
def stop(*, memo: kopf.Memo, logger: Any, **kwargs: Any) -> None:
    """Stop the watch cache."""
    stop_operator(memo, logger=logger)
