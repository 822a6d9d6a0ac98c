#!/usr/bin/env python3
# src/cassandra_types.py
"""
Cassandra custom resource model.

Holds the CRD coordinates, the cluster spec with its defaulting rules, and a
thin wrapper around the custom object returned by the Kubernetes API.
"""

import copy
from typing import Any, Dict, List, Optional

from cluster_status import ClusterStatus
from operator_errors import ValidationError

# CRD configuration
CRD_GROUP = "database.camilocot"
CRD_VERSION = "v1alpha1"
CRD_PLURAL = "cassandras"
CRD_KIND = "Cassandra"

DEFAULT_REPOSITORY = "gcr.io/google-samples/cassandra"
DEFAULT_VERSION = "v13"
DEFAULT_PARTITION = 0

# JVM heap sizing handed to the image's cassandra-env.sh
DEFAULT_MAX_HEAP_SIZE = "512M"
DEFAULT_HEAP_NEWSIZE = "100M"


def seed_address(name: str, namespace: str) -> str:
    """DNS name of the first pod behind the unready headless service."""
    return f"{name}-0.{name}-unready.{namespace}.svc.cluster.local"


class ClusterSpec:
    """Desired state of a Cassandra cluster."""

    def __init__(
        self,
        size: int = 0,
        repository: str = "",
        version: str = "",
        partition: int = DEFAULT_PARTITION,
        storage_class_name: str = "",
        cassandra_env: Optional[List[Dict[str, Any]]] = None,
    ):
        self.size = size
        self.repository = repository
        self.version = version
        self.partition = partition
        self.storage_class_name = storage_class_name
        self.cassandra_env: List[Dict[str, Any]] = [
            dict(env) for env in cassandra_env or []
        ]

    @property
    def image(self) -> str:
        return f"{self.repository}:{self.version}"

    def validate(self):
        """Reject specs the builder cannot turn into manifests."""
        if not isinstance(self.size, int) or isinstance(self.size, bool):
            raise ValidationError(f"spec.size must be an integer, got {self.size!r}")
        if self.size < 0:
            raise ValidationError(f"spec.size must not be negative, got {self.size}")
        if not isinstance(self.partition, int) or self.partition < 0:
            raise ValidationError(
                f"spec.partition must be a non-negative integer, got {self.partition!r}"
            )

        seen = set()
        for env in self.cassandra_env:
            name = env.get("name")
            if not name:
                raise ValidationError("spec.cassandraEnv entries require a name")
            if name in seen:
                raise ValidationError(f"spec.cassandraEnv has duplicate name {name}")
            seen.add(name)

    def add_env_var(self, name: str, value: str) -> bool:
        """Append an env var unless one with that name is already present."""
        for env in self.cassandra_env:
            if env.get("name") == name:
                return False
        self.cassandra_env.append({"name": name, "value": value})
        return True

    def set_defaults(self, name: str, namespace: str) -> bool:
        """Fill unset fields; safe to call repeatedly. Returns True if changed."""
        changed = False

        if not self.repository:
            self.repository = DEFAULT_REPOSITORY
            changed = True

        if not self.version:
            self.version = DEFAULT_VERSION
            changed = True

        # User supplied values always win
        changed |= self.add_env_var("CASSANDRA_SEEDS", seed_address(name, namespace))
        changed |= self.add_env_var("MAX_HEAP_SIZE", DEFAULT_MAX_HEAP_SIZE)
        changed |= self.add_env_var("HEAP_NEWSIZE", DEFAULT_HEAP_NEWSIZE)

        return changed

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "size": self.size,
            "storageClassName": self.storage_class_name,
        }
        if self.repository:
            data["repository"] = self.repository
        if self.version:
            data["version"] = self.version
        if self.partition:
            data["partition"] = self.partition
        if self.cassandra_env:
            data["cassandraEnv"] = [dict(env) for env in self.cassandra_env]
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ClusterSpec":
        data = data or {}
        return cls(
            size=data.get("size", 0),
            repository=data.get("repository", ""),
            version=data.get("version", ""),
            partition=data.get("partition", DEFAULT_PARTITION),
            storage_class_name=data.get("storageClassName", ""),
            cassandra_env=data.get("cassandraEnv"),
        )


class CassandraCluster:
    """A Cassandra custom object: identity, spec and status."""

    def __init__(
        self,
        name: str,
        namespace: str,
        spec: Optional[ClusterSpec] = None,
        status: Optional[ClusterStatus] = None,
        uid: str = "",
        resource_version: str = "",
        api_version: str = f"{CRD_GROUP}/{CRD_VERSION}",
        kind: str = CRD_KIND,
    ):
        self.name = name
        self.namespace = namespace
        self.spec = spec or ClusterSpec()
        self.status = status or ClusterStatus()
        self.uid = uid
        self.resource_version = resource_version
        self.api_version = api_version
        self.kind = kind

    @property
    def service_name(self) -> str:
        return f"{self.name}-unready"

    @property
    def labels(self) -> Dict[str, str]:
        return labels_for_cassandra(self.name)

    @property
    def label_selector(self) -> str:
        return ",".join(f"{k}={v}" for k, v in sorted(self.labels.items()))

    def pod_name(self, ordinal: int) -> str:
        """StatefulSet pods are named after the StatefulSet, i.e. the cluster."""
        return f"{self.name}-{ordinal}"

    def deep_copy(self) -> "CassandraCluster":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        metadata = {"name": self.name, "namespace": self.namespace}
        if self.uid:
            metadata["uid"] = self.uid
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "CassandraCluster":
        metadata = obj.get("metadata", {})
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", "default"),
            spec=ClusterSpec.from_dict(obj.get("spec")),
            status=ClusterStatus.from_dict(obj.get("status")),
            uid=metadata.get("uid", ""),
            resource_version=metadata.get("resourceVersion", ""),
            api_version=obj.get("apiVersion", f"{CRD_GROUP}/{CRD_VERSION}"),
            kind=obj.get("kind", CRD_KIND),
        )

    def __repr__(self):
        return f"CassandraCluster({self.namespace}/{self.name}, size={self.spec.size})"


def labels_for_cassandra(name: str) -> Dict[str, str]:
    """Labels selecting the resources that belong to the given Cassandra CR."""
    return {"app": "cassandra", "cassandra_cr": name}
