"""Helpers for interacting with Kubernetes APIs."""

__all__ = (
    "KAFKA_GROUP",
    "KAFKA_PLURAL",
    "KAFKA_VERSION",
    "ROUTE_GROUP",
    "create_k8sclient",
    "create_kafka",
    "create_secret",
    "delete_kafka",
    "delete_secret",
    "get_kafka",
    "get_secret",
    "is_openshift",
    "replace_kafka",
    "replace_secret",
)

import json
from typing import Any

import kubernetes
from kubernetes.client.exceptions import ApiException

KAFKA_GROUP = "kafka.strimzi.io"
KAFKA_VERSION = "v1beta2"
KAFKA_PLURAL = "kafkas"

ROUTE_GROUP = "route.openshift.io"


def create_k8sclient() -> kubernetes.client:
    """Get a Kubernetes client configured with available cluster
    authentication.

    If in-cluster authentication is available, that is used. Otherwise
    this function falls-back to using a kubectl config file, which is
    appropriate for development.
    """
    try:
        kubernetes.config.load_incluster_config()
    except Exception:
        kubernetes.config.load_kube_config()
    kubernetes.client.configuration.assert_hostname = False
    return kubernetes.client


def is_openshift(k8s_client: Any) -> bool:
    """Check whether the cluster serves the OpenShift Route API.

    Parameters
    ----------
    k8s_client
        A Kubernetes client (see `create_k8sclient`).

    Returns
    -------
    openshift : `bool`
        `True` if the ``route.openshift.io`` API group is available.
    """
    api = k8s_client.ApisApi()
    groups = api.get_api_versions().groups or []
    return any(group.name == ROUTE_GROUP for group in groups)


def get_kafka(
    *,
    namespace: str,
    name: str,
    k8s_client: Any,
) -> dict[str, Any] | None:
    """Get a Strimzi Kafka resource.

    Parameters
    ----------
    namespace : `str`
        The Kubernetes namespace of the Kafka resource.
    name : `str`
        The name of the Kafka resource.
    k8s_client
        A Kubernetes client (see `create_k8sclient`).

    Returns
    -------
    kafka : `dict` or `None`
        The raw Kafka resource, or `None` if it does not exist.
    """
    api = k8s_client.CustomObjectsApi()
    try:
        result = api.get_namespaced_custom_object(
            group=KAFKA_GROUP,
            version=KAFKA_VERSION,
            namespace=namespace,
            plural=KAFKA_PLURAL,
            name=name,
            _preload_content=False,
        )
    except ApiException as e:
        if e.status == 404:
            return None
        raise
    return json.loads(result.data)


def create_kafka(*, body: dict[str, Any], k8s_client: Any) -> None:
    api = k8s_client.CustomObjectsApi()
    api.create_namespaced_custom_object(
        group=KAFKA_GROUP,
        version=KAFKA_VERSION,
        namespace=body["metadata"]["namespace"],
        plural=KAFKA_PLURAL,
        body=body,
    )


def replace_kafka(*, body: dict[str, Any], k8s_client: Any) -> None:
    api = k8s_client.CustomObjectsApi()
    api.replace_namespaced_custom_object(
        group=KAFKA_GROUP,
        version=KAFKA_VERSION,
        namespace=body["metadata"]["namespace"],
        plural=KAFKA_PLURAL,
        name=body["metadata"]["name"],
        body=body,
    )


def delete_kafka(*, namespace: str, name: str, k8s_client: Any) -> bool:
    """Delete a Strimzi Kafka resource.

    Returns
    -------
    deleted : `bool`
        `False` if the resource did not exist.
    """
    api = k8s_client.CustomObjectsApi()
    try:
        api.delete_namespaced_custom_object(
            group=KAFKA_GROUP,
            version=KAFKA_VERSION,
            namespace=namespace,
            plural=KAFKA_PLURAL,
            name=name,
        )
    except ApiException as e:
        if e.status == 404:
            return False
        raise
    return True


def get_secret(
    *,
    namespace: str,
    name: str,
    k8s_client: Any,
) -> dict[str, Any] | None:
    """Get a Kubernetes Secret.

    Parameters
    ----------
    namespace : `str`
        The namespace where the Secret is located.
    name : `str`
        The name of the Secret.
    k8s_client
        A Kubernetes client (see `create_k8sclient`).

    Returns
    -------
    secret : `dict` or `None`
        The raw Secret resource, or `None` if it does not exist.
    """
    api = k8s_client.CoreV1Api()
    try:
        result = api.read_namespaced_secret(
            name=name, namespace=namespace, _preload_content=False
        )
    except ApiException as e:
        if e.status == 404:
            return None
        raise
    return json.loads(result.data)


def create_secret(*, body: dict[str, Any], k8s_client: Any) -> None:
    api = k8s_client.CoreV1Api()
    api.create_namespaced_secret(
        namespace=body["metadata"]["namespace"], body=body
    )


def replace_secret(*, body: dict[str, Any], k8s_client: Any) -> None:
    api = k8s_client.CoreV1Api()
    api.replace_namespaced_secret(
        name=body["metadata"]["name"],
        namespace=body["metadata"]["namespace"],
        body=body,
    )


def delete_secret(*, namespace: str, name: str, k8s_client: Any) -> bool:
    """Delete a Kubernetes Secret.

    Parameters
    ----------
    namespace : `str`
        The namespace where the Secret is located.
    name : `str`
        The name of the Secret to delete.
    k8s_client : `Any`
        A Kubernetes client (see `create_k8sclient`).

    Returns
    -------
    deleted : `bool`
        `False` if the Secret did not exist.
    """
    api = k8s_client.CoreV1Api()
    try:
        api.delete_namespaced_secret(name=name, namespace=namespace)
    except ApiException as e:
        if e.status == 404:
            return False
        raise
    return True
