"""Operand for the Strimzi Kafka resource of a ManagedKafka."""

from __future__ import annotations

__all__ = (
    "KafkaClusterOperand",
    "build_kafka",
    "build_kafka_config",
    "build_listeners",
    "get_capacity_limit",
    "get_protocol_version",
)

from collections.abc import Mapping
from typing import Any

import kopf

from managedkafkaoperator import config
from managedkafkaoperator.conditions import select_condition
from managedkafkaoperator.exceptions import ManagedKafkaSpecError
from managedkafkaoperator.k8s import (
    KAFKA_GROUP,
    KAFKA_VERSION,
    create_kafka,
    delete_kafka,
    get_kafka,
    replace_kafka,
)
from managedkafkaoperator.kinds import KAFKAS
from managedkafkaoperator.operands.base import Operand
from managedkafkaoperator.operands.secrets import (
    SSO_CLIENT_SECRET_KEY,
    SSO_TRUSTED_CERT_KEY,
    TLS_CERT_KEY,
    TLS_KEY_KEY,
)
from managedkafkaoperator.resources import (
    get_capacity,
    get_endpoint,
    get_oauth,
    get_spec,
    has_trusted_certificate,
    kafka_cluster_name,
    kafka_cluster_namespace,
    kafka_tls_secret_name,
    sso_client_secret_name,
    sso_tls_secret_name,
)

BROKER_REPLICAS = 3
ZOOKEEPER_REPLICAS = 3

EXTERNAL_LISTENER = "external"

MAX_PARTITIONS = "max.partitions"
MESSAGE_MAX_BYTES = "message.max.bytes"
DEFAULT_MESSAGE_MAX_BYTES = 1048588


def get_protocol_version(kafka_version: Any) -> str:
    """Get the ``major.minor`` protocol version of a Kafka version.

    Parameters
    ----------
    kafka_version : `str`
        A Kafka version such as ``3.1.0``.

    Returns
    -------
    protocol_version : `str`
        The version used for ``inter.broker.protocol.version`` and
        ``log.message.format.version``, such as ``3.1``.

    Raises
    ------
    managedkafkaoperator.exceptions.ManagedKafkaSpecError
        Raised if the version is missing or malformed.
    """
    if not isinstance(kafka_version, str) or not kafka_version:
        raise ManagedKafkaSpecError("spec.versions.kafka is required")
    parts = kafka_version.split(".")
    if len(parts) < 2 or not all(part.isdigit() for part in parts[:2]):
        raise ManagedKafkaSpecError(
            f"spec.versions.kafka {kafka_version!r} is not a valid version"
        )
    return f"{parts[0]}.{parts[1]}"


def get_capacity_limit(
    managed_kafka: Mapping[str, Any], key: str
) -> int | None:
    """Get an integer limit of ``spec.capacity``, or `None` if it is unset.

    Raises
    ------
    managedkafkaoperator.exceptions.ManagedKafkaSpecError
        Raised if the limit is not a non-negative integer.
    """
    value = get_capacity(managed_kafka).get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ManagedKafkaSpecError(
            f"spec.capacity.{key} {value!r} is not an integer"
        )
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise ManagedKafkaSpecError(
            f"spec.capacity.{key} {value!r} is not an integer"
        ) from None
    if limit < 0 or (isinstance(value, float) and limit != value):
        raise ManagedKafkaSpecError(
            f"spec.capacity.{key} {value!r} is not a non-negative integer"
        )
    return limit


def build_kafka_config(
    managed_kafka: Mapping[str, Any], kafka_version: str
) -> dict[str, Any]:
    """Build ``spec.kafka.config`` of the Kafka resource."""
    protocol_version = get_protocol_version(kafka_version)
    max_message_size = get_capacity_limit(managed_kafka, "maxMessageSize")
    max_partitions = get_capacity_limit(managed_kafka, "maxPartitions")

    kafka_config: dict[str, Any] = {
        "offsets.topic.replication.factor": 3,
        "transaction.state.log.replication.factor": 3,
        "transaction.state.log.min.isr": 2,
        "log.message.format.version": protocol_version,
        "inter.broker.protocol.version": protocol_version,
        MESSAGE_MAX_BYTES: (
            DEFAULT_MESSAGE_MAX_BYTES
            if max_message_size is None
            else max_message_size
        ),
    }
    if max_partitions is not None:
        kafka_config[MAX_PARTITIONS] = max_partitions
    return kafka_config


def build_listeners(
    managed_kafka: Mapping[str, Any], *, openshift: bool
) -> list[dict[str, Any]]:
    """Build ``spec.kafka.listeners`` of the Kafka resource.

    The internal plain listener is always present. The external listener is
    only added when ``spec.endpoint.bootstrapServerHost`` is set.
    """
    listeners: list[dict[str, Any]] = [
        {"name": "plain", "port": 9092, "type": "internal", "tls": False}
    ]

    endpoint = get_endpoint(managed_kafka)
    host = endpoint.get("bootstrapServerHost")
    if host:
        listeners.append(
            _build_external_listener(
                managed_kafka, host=host, openshift=openshift
            )
        )
    return listeners


def _build_external_listener(
    managed_kafka: Mapping[str, Any], *, host: str, openshift: bool
) -> dict[str, Any]:
    tls_enabled = get_endpoint(managed_kafka).get("tls") is not None

    configuration: dict[str, Any] = {"bootstrap": {"host": host}}
    if tls_enabled:
        configuration["brokerCertChainAndKey"] = {
            "secretName": kafka_tls_secret_name(managed_kafka),
            "certificate": TLS_CERT_KEY,
            "key": TLS_KEY_KEY,
        }

    # Capacity limits are for the whole cluster; listener limits apply to
    # each broker.
    max_connections = get_capacity_limit(managed_kafka, "totalMaxConnections")
    if max_connections is not None:
        configuration["maxConnections"] = max_connections // BROKER_REPLICAS
    connection_rate = get_capacity_limit(
        managed_kafka, "maxConnectionAttemptsPerSec"
    )
    if connection_rate is not None:
        configuration["maxConnectionCreationRate"] = (
            connection_rate // BROKER_REPLICAS
        )

    listener: dict[str, Any] = {
        "name": EXTERNAL_LISTENER,
        "port": 9094,
        "type": "route" if openshift else "ingress",
        "tls": tls_enabled,
        "configuration": configuration,
    }

    oauth = get_oauth(managed_kafka)
    if oauth is not None:
        listener["authentication"] = _build_oauth_authentication(
            managed_kafka, oauth
        )
    return listener


def _build_oauth_authentication(
    managed_kafka: Mapping[str, Any], oauth: Mapping[str, Any]
) -> dict[str, Any]:
    authentication: dict[str, Any] = {
        "type": "oauth",
        "clientId": oauth.get("clientId"),
        "clientSecret": {
            "secretName": sso_client_secret_name(managed_kafka),
            "key": SSO_CLIENT_SECRET_KEY,
        },
        "validIssuerUri": oauth.get("validIssuerEndpointURI"),
        "jwksEndpointUri": oauth.get("jwksEndpointURI"),
        "introspectionEndpointUri": oauth.get("tokenEndpointURI"),
        "userNameClaim": oauth.get("userNameClaim"),
        "checkAccessTokenType": False,
        "enableOauthBearer": True,
    }
    if has_trusted_certificate(managed_kafka):
        authentication["tlsTrustedCertificates"] = [
            {
                "secretName": sso_tls_secret_name(managed_kafka),
                "certificate": SSO_TRUSTED_CERT_KEY,
            }
        ]
    return {
        key: value for key, value in authentication.items() if value is not None
    }


def build_kafka(
    managed_kafka: Mapping[str, Any], *, openshift: bool = False
) -> dict[str, Any]:
    """Create the JSON resource for the Strimzi Kafka of a ManagedKafka.

    Parameters
    ----------
    managed_kafka : `dict`
        The ManagedKafka resource.
    openshift : `bool`
        Whether the cluster serves OpenShift Routes, which decides the type
        of the external listener.

    Returns
    -------
    kafka : `dict`
        The Kafka resource, owned by the ManagedKafka.

    Raises
    ------
    managedkafkaoperator.exceptions.ManagedKafkaSpecError
        Raised if the ManagedKafka has no valid Kafka version.
    """
    versions = get_spec(managed_kafka).get("versions") or {}
    kafka_version = versions.get("kafka")

    kafka = {
        "apiVersion": f"{KAFKA_GROUP}/{KAFKA_VERSION}",
        "kind": "Kafka",
        "metadata": {
            "name": kafka_cluster_name(managed_kafka),
            "namespace": kafka_cluster_namespace(managed_kafka),
            "labels": config.default_labels(),
        },
        "spec": {
            "kafka": {
                "version": kafka_version,
                "replicas": BROKER_REPLICAS,
                "listeners": build_listeners(
                    managed_kafka, openshift=openshift
                ),
                "storage": {"type": "ephemeral"},
                "config": build_kafka_config(managed_kafka, kafka_version),
            },
            "zookeeper": {
                "replicas": ZOOKEEPER_REPLICAS,
                "storage": {"type": "ephemeral"},
            },
        },
    }

    # The owner reference lets the platform garbage-collect the Kafka and
    # ties its events back to the ManagedKafka.
    kopf.adopt(kafka, owner=managed_kafka)
    return kafka


class KafkaClusterOperand(Operand):
    """Reconciles the Strimzi Kafka resource of a ManagedKafka.

    The Kafka resource has the same name and namespace as the ManagedKafka.
    """

    name = "KafkaCluster"

    def __init__(
        self,
        *,
        cache: Any,
        k8s_client: Any,
        openshift: bool = False,
        logger: Any = None,
    ):
        super().__init__(cache=cache, k8s_client=k8s_client, logger=logger)
        self.openshift = openshift

    def create_or_update(self, managed_kafka: Mapping[str, Any]) -> None:
        kafka = build_kafka(managed_kafka, openshift=self.openshift)
        namespace = kafka["metadata"]["namespace"]
        name = kafka["metadata"]["name"]

        current = get_kafka(
            namespace=namespace, name=name, k8s_client=self.k8s_client
        )
        if current is None:
            self.logger.info(f"Creating Kafka instance {namespace}/{name}")
            create_kafka(body=kafka, k8s_client=self.k8s_client)
            return

        if _is_up_to_date(current, kafka):
            self.logger.debug(f"Kafka instance {namespace}/{name} is up-to-date")
            return

        self.logger.info(
            f"Updating Kafka instance {namespace}/{name} to version "
            f"{kafka['spec']['kafka']['version']}"
        )
        current_metadata = current["metadata"]
        kafka["metadata"]["resourceVersion"] = current_metadata[
            "resourceVersion"
        ]
        for key in ("annotations", "finalizers"):
            if key in current_metadata:
                kafka["metadata"].setdefault(key, current_metadata[key])
        replace_kafka(body=kafka, k8s_client=self.k8s_client)

    def delete(self, managed_kafka: Mapping[str, Any]) -> None:
        namespace = kafka_cluster_namespace(managed_kafka)
        name = kafka_cluster_name(managed_kafka)
        if delete_kafka(
            namespace=namespace, name=name, k8s_client=self.k8s_client
        ):
            self.logger.info(f"Deleted Kafka instance {namespace}/{name}")

    def _cached_kafka(
        self, managed_kafka: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        return self.cache.get(
            KAFKAS,
            kafka_cluster_namespace(managed_kafka),
            kafka_cluster_name(managed_kafka),
        )

    def _condition(
        self, managed_kafka: Mapping[str, Any]
    ) -> Mapping[str, Any] | None:
        return select_condition(self._cached_kafka(managed_kafka))

    def is_installing(self, managed_kafka: Mapping[str, Any]) -> bool:
        condition = self._condition(managed_kafka)
        is_installing = (
            condition is not None
            and condition.get("type") == "NotReady"
            and condition.get("status") == "True"
            and condition.get("reason") == "Creating"
        )
        self.logger.debug(f"KafkaCluster isInstalling = {is_installing}")
        return is_installing

    def is_ready(self, managed_kafka: Mapping[str, Any]) -> bool:
        condition = self._condition(managed_kafka)
        is_ready = (
            condition is not None
            and condition.get("type") == "Ready"
            and condition.get("status") == "True"
        )
        self.logger.debug(f"KafkaCluster isReady = {is_ready}")
        return is_ready

    def is_error(self, managed_kafka: Mapping[str, Any]) -> bool:
        condition = self._condition(managed_kafka)
        is_error = (
            condition is not None
            and condition.get("type") == "NotReady"
            and condition.get("status") == "True"
            and condition.get("reason") != "Creating"
        )
        self.logger.debug(f"KafkaCluster isError = {is_error}")
        return is_error

    def is_deleted(self, managed_kafka: Mapping[str, Any]) -> bool:
        return self._cached_kafka(managed_kafka) is None

    def error_message(self, managed_kafka: Mapping[str, Any]) -> str:
        condition = self._condition(managed_kafka) or {}
        message = f"Kafka cluster is not ready: {condition.get('reason')}"
        if condition.get("message"):
            message = f"{message}: {condition['message']}"
        return message


def _is_up_to_date(current: Mapping[str, Any], desired: Mapping[str, Any]) -> bool:
    current_metadata = current.get("metadata") or {}
    desired_metadata = desired["metadata"]
    current_labels = current_metadata.get("labels") or {}
    current_owners = {
        ref.get("uid") for ref in current_metadata.get("ownerReferences") or []
    }
    return (
        current.get("spec") == desired["spec"]
        and all(
            current_labels.get(key) == value
            for key, value in desired_metadata["labels"].items()
        )
        and all(
            ref["uid"] in current_owners
            for ref in desired_metadata["ownerReferences"]
        )
    )
