"""Tests for the managedkafkaoperator.controller module."""

from __future__ import annotations

import pytest
from kubernetes.client.exceptions import ApiException

from managedkafkaoperator.conditions import ManagedKafkaState
from managedkafkaoperator.controller import ManagedKafkaController
from managedkafkaoperator.exceptions import (
    CacheNotReadyError,
    ManagedKafkaSpecError,
)
from managedkafkaoperator.kinds import KAFKAS, SECRETS
from managedkafkaoperator.operands import Operand
from managedkafkaoperator.startup import build_operands


class RecordingOperand(Operand):
    """Operand that records calls and reports a fixed status."""

    def __init__(self, name, calls, *, ready=True, error=None, spec_error=None):
        super().__init__(cache=None, k8s_client=None)
        self.name = name
        self.calls = calls
        self.ready = ready
        self.error = error
        self.spec_error = spec_error

    def create_or_update(self, managed_kafka):
        self.calls.append(self.name)
        if self.spec_error:
            raise ManagedKafkaSpecError(self.spec_error)

    def delete(self, managed_kafka):
        self.calls.append(f"delete {self.name}")

    def is_installing(self, managed_kafka):
        return not self.ready and self.error is None

    def is_ready(self, managed_kafka):
        return self.ready and self.error is None

    def is_error(self, managed_kafka):
        return self.error is not None

    def is_deleted(self, managed_kafka):
        return True

    def error_message(self, managed_kafka):
        return self.error


@pytest.fixture
def controller(cache, cluster) -> ManagedKafkaController:
    return ManagedKafkaController(
        cache=cache,
        operands=build_operands(
            cache=cache, k8s_client=cluster, openshift=False
        ),
    )


def set_kafka_ready(cache) -> None:
    cache.set_conditions(
        KAFKAS,
        "kafka-ns",
        "my-kafka",
        [{"type": "Ready", "status": "True"}],
    )


def test_not_ready_cache(cache, cluster, controller, managed_kafka) -> None:
    cache.ready = False

    with pytest.raises(CacheNotReadyError):
        controller.reconcile(managed_kafka)
    assert cluster.calls == []


def test_reconcile_to_ready(cache, cluster, controller, managed_kafka) -> None:
    result = controller.reconcile(managed_kafka)
    assert result.state is ManagedKafkaState.INSTALLING

    # The Kafka comes first, then the secrets its listeners refer to
    assert cluster.writes() == [
        ("create", KAFKAS, "kafka-ns", "my-kafka"),
        ("create", SECRETS, "kafka-ns", "my-kafka-tls-secret"),
        ("create", SECRETS, "kafka-ns", "my-kafka-sso-secret"),
        ("create", SECRETS, "kafka-ns", "my-kafka-sso-cert"),
    ]

    cluster.sync(cache)
    result = controller.reconcile(managed_kafka)
    assert result.state is ManagedKafkaState.INSTALLING

    set_kafka_ready(cache)
    result = controller.reconcile(managed_kafka)
    assert result.state is ManagedKafkaState.READY
    assert result.message == ""


def test_reconcile_is_idempotent(
    cache, cluster, controller, managed_kafka
) -> None:
    controller.reconcile(managed_kafka)
    cluster.sync(cache)
    writes = len(cluster.writes())

    controller.reconcile(managed_kafka)
    controller.reconcile(managed_kafka)

    assert len(cluster.writes()) == writes


def test_kafka_creating(cache, cluster, controller, managed_kafka) -> None:
    controller.reconcile(managed_kafka)
    cluster.sync(cache)
    cache.set_conditions(
        KAFKAS,
        "kafka-ns",
        "my-kafka",
        [{"type": "NotReady", "status": "True", "reason": "Creating"}],
    )

    result = controller.reconcile(managed_kafka)
    assert result.state is ManagedKafkaState.INSTALLING


def test_kafka_error(cache, cluster, controller, managed_kafka) -> None:
    controller.reconcile(managed_kafka)
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

    result = controller.reconcile(managed_kafka)
    assert result.state is ManagedKafkaState.ERROR
    assert "bad listener" in result.message


def test_spec_error_does_not_stop_pass(
    cache, cluster, controller, managed_kafka
) -> None:
    del managed_kafka["spec"]["versions"]

    result = controller.reconcile(managed_kafka)

    assert result.state is ManagedKafkaState.ERROR
    assert "spec.versions.kafka" in result.message
    # Later operands still ran
    assert ("create", SECRETS, "kafka-ns", "my-kafka-sso-secret") in (
        cluster.writes()
    )
    assert cluster.get(KAFKAS, "kafka-ns", "my-kafka") is None


def test_api_error_propagates(cluster, controller, managed_kafka) -> None:
    cluster.error = ApiException(status=500, reason="Internal Server Error")

    with pytest.raises(ApiException):
        controller.reconcile(managed_kafka)


def test_operand_order_and_aggregation(cache, managed_kafka) -> None:
    calls: list[str] = []
    controller = ManagedKafkaController(
        cache=cache,
        operands=[
            RecordingOperand("first", calls, spec_error="first is broken"),
            RecordingOperand("second", calls, ready=False),
            RecordingOperand("third", calls, error="third failed"),
        ],
    )

    result = controller.reconcile(managed_kafka)

    assert calls == ["first", "second", "third"]
    assert result.state is ManagedKafkaState.ERROR
    assert result.message == "first is broken; third failed"


def test_installing_wins_over_ready(cache, managed_kafka) -> None:
    calls: list[str] = []
    controller = ManagedKafkaController(
        cache=cache,
        operands=[
            RecordingOperand("first", calls),
            RecordingOperand("second", calls, ready=False),
        ],
    )

    result = controller.reconcile(managed_kafka)
    assert result.state is ManagedKafkaState.INSTALLING


def test_finalize(cache, cluster, controller, managed_kafka) -> None:
    controller.reconcile(managed_kafka)
    cluster.sync(cache)

    assert controller.finalize(managed_kafka) is False
    assert cluster.objects[KAFKAS] == {}
    assert cluster.objects[SECRETS] == {}

    # Finalization completes once the cache no longer shows any dependent
    cluster.sync(cache)
    assert controller.finalize(managed_kafka) is True
    controller.forget(managed_kafka)


def test_plain_cluster_scenario(cache, cluster, controller, managed_kafka):
    del managed_kafka["spec"]["endpoint"]
    del managed_kafka["spec"]["oauth"]

    result = controller.reconcile(managed_kafka)
    assert result.state is ManagedKafkaState.INSTALLING
    kafka = cluster.get(KAFKAS, "kafka-ns", "my-kafka")
    listeners = kafka["spec"]["kafka"]["listeners"]
    assert [listener["name"] for listener in listeners] == ["plain"]
    assert cluster.objects[SECRETS] == {}

    cluster.sync(cache)
    cache.set_conditions(
        KAFKAS,
        "kafka-ns",
        "my-kafka",
        [{"type": "NotReady", "status": "True", "reason": "Creating"}],
    )
    assert (
        controller.reconcile(managed_kafka).state
        is ManagedKafkaState.INSTALLING
    )

    set_kafka_ready(cache)
    assert controller.reconcile(managed_kafka).state is ManagedKafkaState.READY


def test_oauth_without_trusted_certificate_scenario(
    cache, cluster, controller, managed_kafka
):
    del managed_kafka["spec"]["endpoint"]["tls"]
    del managed_kafka["spec"]["oauth"]["tlsTrustedCertificate"]

    controller.reconcile(managed_kafka)

    assert list(cluster.objects[SECRETS]) == [
        ("kafka-ns", "my-kafka-sso-secret")
    ]


def test_invalid_capacity_is_an_error(
    cache, cluster, controller, managed_kafka
):
    managed_kafka["spec"]["capacity"]["totalMaxConnections"] = "lots"

    result = controller.reconcile(managed_kafka)

    assert result.state is ManagedKafkaState.ERROR
    assert "spec.capacity.totalMaxConnections" in result.message
    assert cluster.get(KAFKAS, "kafka-ns", "my-kafka") is None
