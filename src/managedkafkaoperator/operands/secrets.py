"""Lifecycle of the security secrets of a ManagedKafka.

Three secrets are each gated on the ManagedKafka ``spec``:

``<name>-tls-secret``
    The certificate and key of the external listener. Present while
    ``spec.endpoint.tls`` is set.
``<name>-sso-secret``
    The OAuth client secret. Present while ``spec.oauth`` is set.
``<name>-sso-cert``
    The certificate trusted when talking to the OAuth server. Present while
    ``spec.oauth`` is set and has a ``tlsTrustedCertificate``.
"""

from __future__ import annotations

__all__ = (
    "SSO_CLIENT_SECRET_KEY",
    "SSO_TRUSTED_CERT_KEY",
    "TLS_CERT_KEY",
    "TLS_KEY_KEY",
    "SecretOperand",
    "b64",
    "build_secret",
    "decode_secret_field",
)

import base64
import copy
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import kopf
from kubernetes.client.exceptions import ApiException

from managedkafkaoperator import config
from managedkafkaoperator.exceptions import ManagedKafkaSpecError
from managedkafkaoperator.k8s import (
    create_secret,
    delete_secret,
    get_secret,
    replace_secret,
)
from managedkafkaoperator.kinds import SECRETS
from managedkafkaoperator.operands.base import Operand
from managedkafkaoperator.resources import (
    get_oauth,
    get_tls,
    has_trusted_certificate,
    is_kafka_authentication_enabled,
    is_kafka_external_certificate_enabled,
    kafka_cluster_namespace,
    kafka_tls_secret_name,
    sso_client_secret_name,
    sso_tls_secret_name,
)

TLS_CERT_KEY = "tls.crt"
TLS_KEY_KEY = "tls.key"
SSO_CLIENT_SECRET_KEY = "ssoClientSecret"
SSO_TRUSTED_CERT_KEY = "keycloak.crt"


def b64(data: bytes | str) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("utf-8")


def decode_secret_field(value: str) -> str:
    return base64.b64decode(value).decode("utf-8")


def build_secret(
    *,
    name: str,
    secret_type: str,
    managed_kafka: Mapping[str, Any],
    current: Mapping[str, Any] | None,
    values: Mapping[str, str],
) -> dict[str, Any]:
    """Create the JSON resource for a secret of a ManagedKafka.

    Parameters
    ----------
    name : `str`
        Name of the Secret.
    secret_type : `str`
        Type of the Secret, such as ``Opaque``.
    managed_kafka : `dict`
        The ManagedKafka owning the Secret.
    current : `dict`, optional
        The Secret currently in the cluster. Its metadata is kept so the
        Secret keeps its identity across updates.
    values : `dict`
        Plaintext values, base64-encoded into the ``data`` of the Secret.

    Returns
    -------
    secret : `dict`
        The Secret resource.
    """
    secret = copy.deepcopy(dict(current)) if current is not None else {}
    secret.pop("stringData", None)

    metadata = secret.setdefault("metadata", {})
    metadata.pop("managedFields", None)
    metadata["name"] = name
    metadata["namespace"] = kafka_cluster_namespace(managed_kafka)
    metadata["labels"] = {**(metadata.get("labels") or {}), **config.default_labels()}

    secret["apiVersion"] = "v1"
    secret["kind"] = "Secret"
    secret["type"] = secret_type
    secret["data"] = {key: b64(value) for key, value in values.items()}

    kopf.adopt(secret, owner=managed_kafka)
    return secret


@dataclass(frozen=True)
class SecretKind:
    """How one of the gated secrets is derived from a ManagedKafka."""

    name: Callable[[Mapping[str, Any]], str]
    """Name of the Secret."""

    secret_type: str

    enabled: Callable[[Mapping[str, Any]], bool]
    """Whether the gate of the secret holds."""

    values: Callable[[Mapping[str, Any]], dict[str, Any]]
    """Plaintext values of the secret; only called while it is enabled."""

    description: str


def _tls_values(managed_kafka: Mapping[str, Any]) -> dict[str, Any]:
    tls = get_tls(managed_kafka) or {}
    return {TLS_CERT_KEY: tls.get("cert"), TLS_KEY_KEY: tls.get("key")}


def _sso_client_values(managed_kafka: Mapping[str, Any]) -> dict[str, Any]:
    oauth = get_oauth(managed_kafka) or {}
    return {SSO_CLIENT_SECRET_KEY: oauth.get("clientSecret")}


def _sso_tls_values(managed_kafka: Mapping[str, Any]) -> dict[str, Any]:
    oauth = get_oauth(managed_kafka) or {}
    return {SSO_TRUSTED_CERT_KEY: oauth.get("tlsTrustedCertificate")}


KAFKA_TLS_SECRET = SecretKind(
    name=kafka_tls_secret_name,
    secret_type="kubernetes.io/tls",
    enabled=is_kafka_external_certificate_enabled,
    values=_tls_values,
    description="spec.endpoint.tls",
)

SSO_CLIENT_SECRET = SecretKind(
    name=sso_client_secret_name,
    secret_type="Opaque",
    enabled=is_kafka_authentication_enabled,
    values=_sso_client_values,
    description="spec.oauth",
)

SSO_TLS_SECRET = SecretKind(
    name=sso_tls_secret_name,
    secret_type="Opaque",
    enabled=has_trusted_certificate,
    values=_sso_tls_values,
    description="spec.oauth",
)

SECRET_KINDS = (KAFKA_TLS_SECRET, SSO_CLIENT_SECRET, SSO_TLS_SECRET)


class SecretOperand(Operand):
    """Creates, updates and deletes the secrets of a ManagedKafka according
    to the feature gates of its spec.
    """

    name = "SecuritySecrets"

    def create_or_update(self, managed_kafka: Mapping[str, Any]) -> None:
        problems = []
        for kind in SECRET_KINDS:
            name = kind.name(managed_kafka)
            current = self._cached_secret(managed_kafka, name)

            if kind.enabled(managed_kafka):
                missing = self._missing_fields(kind, managed_kafka)
                if missing:
                    problems.append(
                        f"{kind.description} is missing {', '.join(missing)}"
                    )
                    continue
                self._apply(kind, managed_kafka, current)
            elif current is not None:
                self._delete(managed_kafka, name)

        if problems:
            raise ManagedKafkaSpecError("; ".join(problems))

    def delete(self, managed_kafka: Mapping[str, Any]) -> None:
        # Cached secrets are deleted even if their gate is off, since
        # is_deleted waits for every OAuth secret once OAuth is enabled.
        for kind in SECRET_KINDS:
            name = kind.name(managed_kafka)
            if (
                kind.enabled(managed_kafka)
                or self._cached_secret(managed_kafka, name) is not None
            ):
                self._delete(managed_kafka, name)

    def is_deleted(self, managed_kafka: Mapping[str, Any]) -> bool:
        is_deleted = True

        if is_kafka_external_certificate_enabled(managed_kafka):
            is_deleted = (
                self._cached_secret(
                    managed_kafka, kafka_tls_secret_name(managed_kafka)
                )
                is None
            )

        if is_kafka_authentication_enabled(managed_kafka):
            is_deleted = (
                is_deleted
                and self._cached_secret(
                    managed_kafka, sso_client_secret_name(managed_kafka)
                )
                is None
                and self._cached_secret(
                    managed_kafka, sso_tls_secret_name(managed_kafka)
                )
                is None
            )

        return is_deleted

    def is_error(self, managed_kafka: Mapping[str, Any]) -> bool:
        return bool(self._problems(managed_kafka))

    def is_ready(self, managed_kafka: Mapping[str, Any]) -> bool:
        if self.is_error(managed_kafka):
            return False
        return all(
            self._cached_secret(managed_kafka, kind.name(managed_kafka))
            is not None
            for kind in SECRET_KINDS
            if kind.enabled(managed_kafka)
        )

    def is_installing(self, managed_kafka: Mapping[str, Any]) -> bool:
        return not self.is_error(managed_kafka) and not self.is_ready(
            managed_kafka
        )

    def error_message(self, managed_kafka: Mapping[str, Any]) -> str:
        return "; ".join(self._problems(managed_kafka))

    def _problems(self, managed_kafka: Mapping[str, Any]) -> list[str]:
        problems = []
        for kind in SECRET_KINDS:
            if not kind.enabled(managed_kafka):
                continue
            missing = self._missing_fields(kind, managed_kafka)
            if missing:
                problems.append(
                    f"{kind.description} is missing {', '.join(missing)}"
                )
        return problems

    @staticmethod
    def _missing_fields(
        kind: SecretKind, managed_kafka: Mapping[str, Any]
    ) -> list[str]:
        return [
            key
            for key, value in kind.values(managed_kafka).items()
            if value in (None, "")
        ]

    def _cached_secret(
        self, managed_kafka: Mapping[str, Any], name: str
    ) -> dict[str, Any] | None:
        return self.cache.get(
            SECRETS, kafka_cluster_namespace(managed_kafka), name
        )

    def _build(
        self,
        kind: SecretKind,
        managed_kafka: Mapping[str, Any],
        current: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        return build_secret(
            name=kind.name(managed_kafka),
            secret_type=kind.secret_type,
            managed_kafka=managed_kafka,
            current=current,
            values=kind.values(managed_kafka),
        )

    def _apply(
        self,
        kind: SecretKind,
        managed_kafka: Mapping[str, Any],
        current: Mapping[str, Any] | None,
    ) -> None:
        """Create or replace a secret.

        ``current`` comes from the watch cache, which may lag behind the
        cluster: a create that conflicts falls back to the live secret, and
        a replace of a secret that is gone falls back to a create.
        """
        namespace = kafka_cluster_namespace(managed_kafka)
        name = kind.name(managed_kafka)
        secret = self._build(kind, managed_kafka, current)

        if current is None:
            try:
                create_secret(body=secret, k8s_client=self.k8s_client)
            except ApiException as e:
                if e.status != 409:
                    raise
                current = get_secret(
                    namespace=namespace, name=name, k8s_client=self.k8s_client
                )
                if current is None:
                    raise
                secret = self._build(kind, managed_kafka, current)
            else:
                self.logger.info(f"Created secret {namespace}/{name}")
                return

        if _is_up_to_date(current, secret):
            self.logger.debug(f"Secret {namespace}/{name} is up-to-date")
            return

        try:
            replace_secret(body=secret, k8s_client=self.k8s_client)
        except ApiException as e:
            if e.status != 404:
                raise
            secret = self._build(kind, managed_kafka, None)
            create_secret(body=secret, k8s_client=self.k8s_client)
            self.logger.info(f"Created secret {namespace}/{name}")
            return
        self.logger.info(f"Updated secret {namespace}/{name}")

    def _delete(self, managed_kafka: Mapping[str, Any], name: str) -> None:
        namespace = kafka_cluster_namespace(managed_kafka)
        if delete_secret(
            namespace=namespace, name=name, k8s_client=self.k8s_client
        ):
            self.logger.info(f"Deleted secret {namespace}/{name}")


def _is_up_to_date(current: Mapping[str, Any], desired: Mapping[str, Any]) -> bool:
    current_metadata = current.get("metadata") or {}
    desired_metadata = desired["metadata"]
    return (
        current.get("type") == desired["type"]
        and (current.get("data") or {}) == desired["data"]
        and (current_metadata.get("labels") or {}) == desired_metadata["labels"]
        and (current_metadata.get("ownerReferences") or [])
        == desired_metadata["ownerReferences"]
    )
