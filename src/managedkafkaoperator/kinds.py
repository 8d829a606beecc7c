"""Resource kinds mirrored by the watch cache."""

from __future__ import annotations

__all__ = ("ResourceKind", "build_kinds")

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from managedkafkaoperator.k8s import (
    KAFKA_GROUP,
    KAFKA_PLURAL,
    KAFKA_VERSION,
    ROUTE_GROUP,
)

KAFKAS = KAFKA_PLURAL
DEPLOYMENTS = "deployments"
SERVICES = "services"
CONFIGMAPS = "configmaps"
SECRETS = "secrets"
ROUTES = "routes"


@dataclass(frozen=True)
class ResourceKind:
    """A kind of resource listed and watched across all namespaces.

    ``list_func`` is a ``kubernetes.client`` list method that accepts
    ``label_selector``, ``resource_version`` and ``watch`` keyword arguments,
    so it can be used both for the initial list and with
    ``kubernetes.watch.Watch.stream``. ``list_args`` are passed positionally
    before the keyword arguments.
    """

    name: str
    list_func: Callable[..., Any]
    list_args: tuple[Any, ...] = field(default=())


def build_kinds(k8s_client: Any, *, openshift: bool) -> list[ResourceKind]:
    """Build the kinds watched by the operator.

    Parameters
    ----------
    k8s_client
        A Kubernetes client (see `managedkafkaoperator.k8s.create_k8sclient`).
    openshift : `bool`
        Whether the cluster serves OpenShift Routes. Routes are only watched
        when it does.
    """
    core_api = k8s_client.CoreV1Api()
    apps_api = k8s_client.AppsV1Api()
    custom_api = k8s_client.CustomObjectsApi()

    kinds = [
        ResourceKind(
            name=KAFKAS,
            list_func=custom_api.list_cluster_custom_object,
            list_args=(KAFKA_GROUP, KAFKA_VERSION, KAFKA_PLURAL),
        ),
        ResourceKind(
            name=DEPLOYMENTS,
            list_func=apps_api.list_deployment_for_all_namespaces,
        ),
        ResourceKind(
            name=SERVICES,
            list_func=core_api.list_service_for_all_namespaces,
        ),
        ResourceKind(
            name=CONFIGMAPS,
            list_func=core_api.list_config_map_for_all_namespaces,
        ),
        ResourceKind(
            name=SECRETS,
            list_func=core_api.list_secret_for_all_namespaces,
        ),
    ]
    if openshift:
        kinds.append(
            ResourceKind(
                name=ROUTES,
                list_func=custom_api.list_cluster_custom_object,
                list_args=(ROUTE_GROUP, "v1", ROUTES),
            )
        )
    return kinds
