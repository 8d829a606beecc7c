"""Status conditions: reading them off dependent resources and writing the
aggregate ``Ready`` condition of a ManagedKafka.
"""

from __future__ import annotations

__all__ = (
    "NOT_READY",
    "READY",
    "ManagedKafkaState",
    "build_condition",
    "now_iso",
    "select_condition",
    "set_condition",
    "state_condition",
)

import enum
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

READY = "Ready"
NOT_READY = "NotReady"


class ManagedKafkaState(enum.Enum):
    """Aggregate state of a ManagedKafka."""

    ACCEPTED = "Accepted"
    INSTALLING = "Installing"
    READY = "Ready"
    ERROR = "Error"
    DELETING = "Deleting"


# (status, reason) of the Ready condition for each state.
_STATE_CONDITIONS = {
    ManagedKafkaState.ACCEPTED: ("Unknown", "Accepted"),
    ManagedKafkaState.INSTALLING: ("False", "Installing"),
    ManagedKafkaState.READY: ("True", "Ready"),
    ManagedKafkaState.ERROR: ("False", "Error"),
    ManagedKafkaState.DELETING: ("False", "Deleted"),
}


def now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    # Timestamps without an offset are UTC.
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def select_condition(
    resource: Mapping[str, Any] | None,
    types: Iterable[str] = (READY, NOT_READY),
) -> Mapping[str, Any] | None:
    """Select the authoritative readiness condition of a resource.

    Parameters
    ----------
    resource : `dict` or `None`
        A resource body with an optional ``status.conditions`` list.
    types : iterable of `str`
        Condition types that are considered.

    Returns
    -------
    condition : `dict` or `None`
        The condition of a relevant type with the latest
        ``lastTransitionTime``. Conditions earlier in the list win ties, so a
        list without timestamps yields its first relevant condition. `None`
        if the resource has not reported any relevant condition.
    """
    if resource is None:
        return None
    status = resource.get("status") or {}
    conditions = status.get("conditions") or []
    types = set(types)

    selected = None
    selected_time = None
    for condition in conditions:
        if condition.get("type") not in types:
            continue
        transition_time = _parse_timestamp(condition.get("lastTransitionTime"))
        if selected is None or transition_time > selected_time:
            selected = condition
            selected_time = transition_time
    return selected


def build_condition(
    *,
    condition_type: str,
    status: str,
    reason: str,
    message: str = "",
    last_transition_time: str | None = None,
) -> dict[str, str]:
    return {
        "type": condition_type,
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": last_transition_time or now_iso(),
    }


def set_condition(
    conditions: list[dict[str, Any]] | None,
    new_condition: Mapping[str, Any],
) -> list[dict[str, Any]]:
    """Return a copy of ``conditions`` with ``new_condition`` set.

    There is at most one condition per type. ``lastTransitionTime`` is kept
    from the existing condition unless its status changes.
    """
    result = [dict(c) for c in conditions or []]
    for condition in result:
        if condition.get("type") == new_condition["type"]:
            if condition.get("status") != new_condition["status"]:
                condition["lastTransitionTime"] = new_condition[
                    "lastTransitionTime"
                ]
            condition["status"] = new_condition["status"]
            condition["reason"] = new_condition["reason"]
            condition["message"] = new_condition.get("message", "")
            return result
    result.append(dict(new_condition))
    return result


def state_condition(
    state: ManagedKafkaState,
    message: str = "",
    *,
    reason: str | None = None,
) -> dict[str, str]:
    """Build the ``Ready`` condition describing an aggregate state."""
    status, default_reason = _STATE_CONDITIONS[state]
    return build_condition(
        condition_type=READY,
        status=status,
        reason=reason or default_reason,
        message=message,
    )
