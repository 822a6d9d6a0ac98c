#!/usr/bin/env python3
# src/resource_store.py
"""
Resource store: get/create/update/list against the Kubernetes API.

The reconciler only talks to the ResourceStore interface. The Kubernetes
implementation translates ApiException into the operator's own errors:
a 404 on get becomes None, a 409 on create becomes AlreadyExistsError and
anything else becomes StoreError. No retries happen here; a failed pass is
retried when the event is delivered again.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from cassandra_types import CRD_GROUP, CRD_PLURAL, CRD_VERSION, CassandraCluster
from operator_errors import AlreadyExistsError, StoreError

logger = logging.getLogger("cassandra-operator.store")

SERVICE = "Service"
STATEFULSET = "StatefulSet"
POD = "Pod"


class ResourceStore(ABC):
    """CRUD over the objects the operator manages."""

    @abstractmethod
    def get(self, kind: str, namespace: str, name: str) -> Optional[Any]:
        """Return the live object, or None if it does not exist."""

    @abstractmethod
    def create(self, kind: str, namespace: str, body: Any) -> Any:
        """Create an object; raises AlreadyExistsError on conflict."""

    @abstractmethod
    def update(self, kind: str, namespace: str, name: str, body: Any) -> Any:
        """Replace an existing object."""

    @abstractmethod
    def list(self, kind: str, namespace: str, label_selector: str) -> List[Any]:
        """List objects of a kind matching a label selector."""

    @abstractmethod
    def update_status(self, cluster: CassandraCluster) -> None:
        """Write the status subresource of a Cassandra object."""


class KubernetesResourceStore(ResourceStore):
    """ResourceStore backed by the official Kubernetes Python client."""

    def __init__(
        self,
        core_api: client.CoreV1Api,
        apps_api: client.AppsV1Api,
        custom_objects_api: client.CustomObjectsApi,
    ):
        self.core_api = core_api
        self.apps_api = apps_api
        self.custom_objects = custom_objects_api

        self._readers = {
            SERVICE: core_api.read_namespaced_service,
            STATEFULSET: apps_api.read_namespaced_stateful_set,
        }
        self._creators = {
            SERVICE: core_api.create_namespaced_service,
            STATEFULSET: apps_api.create_namespaced_stateful_set,
        }
        self._replacers = {
            SERVICE: core_api.replace_namespaced_service,
            STATEFULSET: apps_api.replace_namespaced_stateful_set,
        }
        self._listers = {
            POD: core_api.list_namespaced_pod,
        }

    def _lookup(self, table, kind: str):
        try:
            return table[kind]
        except KeyError:
            raise StoreError(f"unsupported resource kind {kind}") from None

    def get(self, kind: str, namespace: str, name: str) -> Optional[Any]:
        read = self._lookup(self._readers, kind)
        try:
            return read(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"{kind} {namespace}/{name} not found")
                return None
            raise StoreError(f"failed to get {kind} {namespace}/{name}", str(e)) from e

    def create(self, kind: str, namespace: str, body: Any) -> Any:
        create = self._lookup(self._creators, kind)
        name = body.metadata.name
        try:
            created = create(namespace=namespace, body=body)
            logger.info(f"Created {kind} {namespace}/{name}")
            return created
        except ApiException as e:
            if e.status == 409:
                raise AlreadyExistsError(
                    f"{kind} {namespace}/{name} already exists"
                ) from e
            raise StoreError(f"failed to create {kind} {namespace}/{name}", str(e)) from e

    def update(self, kind: str, namespace: str, name: str, body: Any) -> Any:
        replace = self._lookup(self._replacers, kind)
        try:
            updated = replace(name=name, namespace=namespace, body=body)
            logger.info(f"Updated {kind} {namespace}/{name}")
            return updated
        except ApiException as e:
            raise StoreError(f"failed to update {kind} {namespace}/{name}", str(e)) from e

    def list(self, kind: str, namespace: str, label_selector: str) -> List[Any]:
        list_objects = self._lookup(self._listers, kind)
        try:
            result = list_objects(namespace=namespace, label_selector=label_selector)
        except ApiException as e:
            raise StoreError(
                f"failed to list {kind} in {namespace} ({label_selector})", str(e)
            ) from e
        return list(result.items or [])

    def update_status(self, cluster: CassandraCluster) -> None:
        status_body = {"status": cluster.status.to_dict()}
        try:
            self.custom_objects.patch_namespaced_custom_object_status(
                group=CRD_GROUP,
                version=CRD_VERSION,
                namespace=cluster.namespace,
                plural=CRD_PLURAL,
                name=cluster.name,
                body=status_body,
            )
            logger.debug(
                f"Cassandra {cluster.namespace}/{cluster.name} status written: "
                f"phase={cluster.status.phase.value}, members={cluster.status.size}"
            )
        except ApiException as e:
            raise StoreError(
                f"failed to update cassandra {cluster.namespace}/{cluster.name} status",
                str(e),
            ) from e
