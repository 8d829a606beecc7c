"""Tests for the managedkafkaoperator.operands.kafkacluster module."""

from __future__ import annotations

import pytest

from managedkafkaoperator.exceptions import ManagedKafkaSpecError
from managedkafkaoperator.kinds import KAFKAS
from managedkafkaoperator.operands.kafkacluster import (
    KafkaClusterOperand,
    build_kafka,
    build_listeners,
    get_protocol_version,
)


@pytest.mark.parametrize(
    "kafka_version, expected",
    [("3.1.0", "3.1"), ("2.8.1", "2.8"), ("3.0", "3.0")],
)
def test_get_protocol_version(kafka_version: str, expected: str) -> None:
    assert get_protocol_version(kafka_version) == expected


@pytest.mark.parametrize("kafka_version", [None, "", "3", "three.one.0"])
def test_get_protocol_version_invalid(kafka_version: str | None) -> None:
    with pytest.raises(ManagedKafkaSpecError):
        get_protocol_version(kafka_version)


def test_build_kafka(managed_kafka: dict) -> None:
    kafka = build_kafka(managed_kafka)

    assert kafka["apiVersion"] == "kafka.strimzi.io/v1beta2"
    assert kafka["kind"] == "Kafka"
    assert kafka["metadata"]["name"] == "my-kafka"
    assert kafka["metadata"]["namespace"] == "kafka-ns"
    assert (
        kafka["metadata"]["labels"]["app.kubernetes.io/managed-by"]
        == "managed-kafka-operator"
    )
    owner = kafka["metadata"]["ownerReferences"][0]
    assert owner["kind"] == "ManagedKafka"
    assert owner["uid"] == managed_kafka["metadata"]["uid"]

    kafka_spec = kafka["spec"]["kafka"]
    assert kafka_spec["version"] == "3.1.0"
    assert kafka_spec["replicas"] == 3
    assert kafka["spec"]["zookeeper"]["replicas"] == 3

    config = kafka_spec["config"]
    assert config["inter.broker.protocol.version"] == "3.1"
    assert config["log.message.format.version"] == "3.1"
    assert config["max.partitions"] == 1000
    assert config["message.max.bytes"] == 1048588


def test_build_kafka_without_version(managed_kafka: dict) -> None:
    del managed_kafka["spec"]["versions"]
    with pytest.raises(ManagedKafkaSpecError):
        build_kafka(managed_kafka)


def test_build_listeners_external(managed_kafka: dict) -> None:
    listeners = build_listeners(managed_kafka, openshift=False)

    assert [listener["name"] for listener in listeners] == [
        "plain",
        "external",
    ]
    external = listeners[1]
    assert external["type"] == "ingress"
    assert external["tls"] is True

    configuration = external["configuration"]
    assert configuration["bootstrap"]["host"] == "my-kafka.example.com"
    assert configuration["brokerCertChainAndKey"] == {
        "secretName": "my-kafka-tls-secret",
        "certificate": "tls.crt",
        "key": "tls.key",
    }
    # Cluster-wide capacity is divided across the three brokers
    assert configuration["maxConnections"] == 100
    assert configuration["maxConnectionCreationRate"] == 33

    authentication = external["authentication"]
    assert authentication["type"] == "oauth"
    assert authentication["clientId"] == "kafka-client"
    assert authentication["clientSecret"] == {
        "secretName": "my-kafka-sso-secret",
        "key": "ssoClientSecret",
    }
    assert authentication["tlsTrustedCertificates"] == [
        {"secretName": "my-kafka-sso-cert", "certificate": "keycloak.crt"}
    ]


def test_build_listeners_openshift(managed_kafka: dict) -> None:
    listeners = build_listeners(managed_kafka, openshift=True)
    assert listeners[1]["type"] == "route"


def test_build_listeners_internal_only(managed_kafka: dict) -> None:
    del managed_kafka["spec"]["endpoint"]
    del managed_kafka["spec"]["oauth"]

    listeners = build_listeners(managed_kafka, openshift=False)

    assert listeners == [
        {"name": "plain", "port": 9092, "type": "internal", "tls": False}
    ]


def test_build_listeners_without_trusted_certificate(
    managed_kafka: dict,
) -> None:
    del managed_kafka["spec"]["oauth"]["tlsTrustedCertificate"]
    del managed_kafka["spec"]["endpoint"]["tls"]

    external = build_listeners(managed_kafka, openshift=False)[1]

    assert external["tls"] is False
    assert "brokerCertChainAndKey" not in external["configuration"]
    assert "tlsTrustedCertificates" not in external["authentication"]


def test_create_or_update(cache, cluster, managed_kafka: dict) -> None:
    operand = KafkaClusterOperand(cache=cache, k8s_client=cluster)

    operand.create_or_update(managed_kafka)
    assert cluster.writes() == [("create", KAFKAS, "kafka-ns", "my-kafka")]

    # Replaying the pass against an up-to-date cluster writes nothing
    operand.create_or_update(managed_kafka)
    assert cluster.writes() == [("create", KAFKAS, "kafka-ns", "my-kafka")]

    managed_kafka["spec"]["versions"]["kafka"] = "3.2.0"
    operand.create_or_update(managed_kafka)
    assert cluster.writes()[-1] == ("replace", KAFKAS, "kafka-ns", "my-kafka")

    kafka = cluster.get(KAFKAS, "kafka-ns", "my-kafka")
    assert kafka["spec"]["kafka"]["version"] == "3.2.0"
    assert (
        kafka["spec"]["kafka"]["config"]["inter.broker.protocol.version"]
        == "3.2"
    )


def test_delete(cache, cluster, managed_kafka: dict) -> None:
    operand = KafkaClusterOperand(cache=cache, k8s_client=cluster)
    operand.create_or_update(managed_kafka)
    cluster.sync(cache)
    assert operand.is_deleted(managed_kafka) is False

    operand.delete(managed_kafka)
    assert cluster.get(KAFKAS, "kafka-ns", "my-kafka") is None
    # Deletion is only confirmed once the cache catches up
    assert operand.is_deleted(managed_kafka) is False
    cluster.sync(cache)
    assert operand.is_deleted(managed_kafka) is True

    # Deleting again is not an error
    operand.delete(managed_kafka)


@pytest.mark.parametrize(
    "conditions, expected",
    [
        ([], (False, False, False)),
        (
            [{"type": "NotReady", "status": "True", "reason": "Creating"}],
            (True, False, False),
        ),
        ([{"type": "Ready", "status": "True"}], (False, True, False)),
        (
            [
                {
                    "type": "NotReady",
                    "status": "True",
                    "reason": "InvalidResourceException",
                    "message": "bad listener",
                }
            ],
            (False, False, True),
        ),
        (
            [
                {
                    "type": "NotReady",
                    "status": "True",
                    "reason": "Creating",
                    "lastTransitionTime": "2021-05-01T10:00:00Z",
                },
                {
                    "type": "Ready",
                    "status": "True",
                    "lastTransitionTime": "2021-05-01T10:05:00Z",
                },
            ],
            (False, True, False),
        ),
    ],
)
def test_status_classification(
    cache,
    cluster,
    managed_kafka: dict,
    conditions: list[dict],
    expected: tuple[bool, bool, bool],
) -> None:
    operand = KafkaClusterOperand(cache=cache, k8s_client=cluster)
    operand.create_or_update(managed_kafka)
    cluster.sync(cache)
    cache.set_conditions(KAFKAS, "kafka-ns", "my-kafka", conditions)

    assert (
        operand.is_installing(managed_kafka),
        operand.is_ready(managed_kafka),
        operand.is_error(managed_kafka),
    ) == expected


def test_error_message(cache, cluster, managed_kafka: dict) -> None:
    operand = KafkaClusterOperand(cache=cache, k8s_client=cluster)
    operand.create_or_update(managed_kafka)
    cluster.sync(cache)
    cache.set_conditions(
        KAFKAS,
        "kafka-ns",
        "my-kafka",
        [
            {
                "type": "NotReady",
                "status": "True",
                "reason": "InvalidResourceException",
                "message": "bad listener",
            }
        ],
    )

    assert operand.error_message(managed_kafka) == (
        "Kafka cluster is not ready: InvalidResourceException: bad listener"
    )


@pytest.mark.parametrize(
    "key, value",
    [
        ("totalMaxConnections", "lots"),
        ("maxConnectionAttemptsPerSec", -1),
        ("maxPartitions", 10.5),
        ("maxMessageSize", True),
    ],
)
def test_build_kafka_invalid_capacity(
    managed_kafka: dict, key: str, value: object
) -> None:
    managed_kafka["spec"]["capacity"][key] = value

    with pytest.raises(ManagedKafkaSpecError) as excinfo:
        build_kafka(managed_kafka)
    assert f"spec.capacity.{key}" in str(excinfo.value)
