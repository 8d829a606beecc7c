"""Kopf handlers reconciling ManagedKafka resources."""

__all__ = (
    "delete_managed_kafka",
    "reconcile_managed_kafka",
    "resync_managed_kafka",
)

from collections.abc import Mapping
from typing import Any

import kopf
from kubernetes.client.exceptions import ApiException

from managedkafkaoperator import config
from managedkafkaoperator.conditions import (
    READY,
    ManagedKafkaState,
    build_condition,
    set_condition,
    state_condition,
)
from managedkafkaoperator.exceptions import CacheNotReadyError
from managedkafkaoperator.resources import GROUP, PLURAL, VERSION

CACHE_RETRY_DELAY = 10


@kopf.on.resume(GROUP, VERSION, PLURAL)  # type: ignore[arg-type]
@kopf.on.create(GROUP, VERSION, PLURAL)  # type: ignore[arg-type]
@kopf.on.update(GROUP, VERSION, PLURAL)  # type: ignore[arg-type]
def reconcile_managed_kafka(
    *,
    body: Mapping[str, Any],
    status: Mapping[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Reconcile a ManagedKafka when it is created, changed, or found at
    operator startup.

    Parameters
    ----------
    body : `dict`
        The full body of the ``ManagedKafka`` as a read-only dict.
    status : `dict`
        The ``status`` field of the ``ManagedKafka``.
    patch : `kopf.Patch`
        Patch applied to the ``ManagedKafka`` after the handler returns.
    memo : `kopf.Memo`
        Operator-wide memo holding the watch cache and controller.
    logger : `Any`
        The kopf logger.
    **kwargs : `Any`
        Additional keyword arguments provided by kopf.
    """
    run_reconcile(
        body=body, status=status, patch=patch, memo=memo, logger=logger
    )


@kopf.timer(  # type: ignore[arg-type]
    GROUP, VERSION, PLURAL, interval=config.resync_interval
)
def resync_managed_kafka(
    *,
    body: Mapping[str, Any],
    meta: Mapping[str, Any],
    status: Mapping[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Periodically reconcile a ManagedKafka, which also picks up changes
    of its dependent resources and retries failed passes.
    """
    if meta.get("deletionTimestamp"):
        return
    run_reconcile(
        body=body, status=status, patch=patch, memo=memo, logger=logger
    )


@kopf.on.delete(GROUP, VERSION, PLURAL)  # type: ignore[arg-type]
def delete_managed_kafka(
    *,
    body: Mapping[str, Any],
    status: Mapping[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Delete the dependent resources of a ManagedKafka.

    The kopf finalizer is only released once the watch cache shows that
    every dependent resource is gone.
    """
    controller = memo.controller
    write_condition(
        patch, status, state_condition(ManagedKafkaState.DELETING)
    )
    if not controller.finalize(body):
        raise kopf.TemporaryError(
            "Waiting for dependent resources to be deleted",
            delay=config.delete_check_delay,
        )
    controller.forget(body)
    logger.info("Dependent resources are deleted")


def run_reconcile(
    *,
    body: Mapping[str, Any],
    status: Mapping[str, Any],
    patch: kopf.Patch,
    memo: kopf.Memo,
    logger: Any,
) -> None:
    """Run one reconciliation pass and write the aggregate ``Ready``
    condition into ``patch``.

    Raises
    ------
    kopf.TemporaryError
        Raised if the watch cache is not synced yet; no operand has run.
    """
    cache = getattr(memo, "cache", None)
    controller = getattr(memo, "controller", None)
    try:
        if cache is None or controller is None or not cache.is_ready():
            raise CacheNotReadyError("The watch cache has not synced yet")
        result = controller.reconcile(body)
    except CacheNotReadyError as e:
        if not status.get("conditions"):
            write_condition(
                patch, status, state_condition(ManagedKafkaState.ACCEPTED)
            )
        raise kopf.TemporaryError(str(e), delay=CACHE_RETRY_DELAY) from e
    except ApiException as e:
        logger.exception("Reconciliation failed")
        write_condition(
            patch,
            status,
            build_condition(
                condition_type=READY,
                status="Unknown",
                reason="ReconcileFailed",
                message=f"{e.status} {e.reason}",
            ),
        )
        return

    write_condition(patch, status, state_condition(result.state, result.message))
    logger.info(f"ManagedKafka is {result.state.value}")


def write_condition(
    patch: kopf.Patch,
    status: Mapping[str, Any],
    condition: Mapping[str, Any],
) -> None:
    patch.status["conditions"] = set_condition(
        status.get("conditions"), condition
    )
