"""Accessors and naming rules for the ManagedKafka custom resource.

A ManagedKafka is handled as the raw ``dict`` that kopf delivers to
handlers. The helpers here are the only place that knows the layout of its
``spec`` and how dependent resources are named after it.
"""

from __future__ import annotations

__all__ = (
    "GROUP",
    "PLURAL",
    "VERSION",
    "get_capacity",
    "get_endpoint",
    "get_oauth",
    "get_spec",
    "get_tls",
    "has_trusted_certificate",
    "is_kafka_authentication_enabled",
    "is_kafka_external_certificate_enabled",
    "kafka_cluster_name",
    "kafka_cluster_namespace",
    "kafka_tls_secret_name",
    "sso_client_secret_name",
    "sso_tls_secret_name",
)

from collections.abc import Mapping
from typing import Any

GROUP = "managedkafka.bf2.org"
VERSION = "v1alpha1"
PLURAL = "managedkafkas"


def kafka_cluster_name(managed_kafka: Mapping[str, Any]) -> str:
    return managed_kafka["metadata"]["name"]


def kafka_cluster_namespace(managed_kafka: Mapping[str, Any]) -> str:
    return managed_kafka["metadata"]["namespace"]


def kafka_tls_secret_name(managed_kafka: Mapping[str, Any]) -> str:
    return f"{kafka_cluster_name(managed_kafka)}-tls-secret"


def sso_client_secret_name(managed_kafka: Mapping[str, Any]) -> str:
    return f"{kafka_cluster_name(managed_kafka)}-sso-secret"


def sso_tls_secret_name(managed_kafka: Mapping[str, Any]) -> str:
    return f"{kafka_cluster_name(managed_kafka)}-sso-cert"


def get_spec(managed_kafka: Mapping[str, Any]) -> Mapping[str, Any]:
    return managed_kafka.get("spec") or {}


def get_endpoint(managed_kafka: Mapping[str, Any]) -> Mapping[str, Any]:
    return get_spec(managed_kafka).get("endpoint") or {}


def get_tls(managed_kafka: Mapping[str, Any]) -> Mapping[str, Any] | None:
    """Get the ``spec.endpoint.tls`` block, or `None` if TLS is not
    requested.
    """
    return get_endpoint(managed_kafka).get("tls")


def get_oauth(managed_kafka: Mapping[str, Any]) -> Mapping[str, Any] | None:
    """Get the ``spec.oauth`` block, or `None` if OAuth is not requested."""
    return get_spec(managed_kafka).get("oauth")


def get_capacity(managed_kafka: Mapping[str, Any]) -> Mapping[str, Any]:
    return get_spec(managed_kafka).get("capacity") or {}


def is_kafka_external_certificate_enabled(
    managed_kafka: Mapping[str, Any],
) -> bool:
    return get_tls(managed_kafka) is not None


def is_kafka_authentication_enabled(managed_kafka: Mapping[str, Any]) -> bool:
    return get_oauth(managed_kafka) is not None


def has_trusted_certificate(managed_kafka: Mapping[str, Any]) -> bool:
    oauth = get_oauth(managed_kafka)
    return oauth is not None and bool(oauth.get("tlsTrustedCertificate"))
