#!/usr/bin/env python3
# src/cassandra_manifests.py
"""
Desired-state builders for the objects a Cassandra cluster owns.

Pure functions: a defaulted CassandraCluster goes in, Kubernetes client
models come out. Both objects carry an owner reference back to the custom
resource so the garbage collector removes them when the cluster is deleted.
"""

from typing import List, Tuple

from kubernetes import client

from cassandra_types import CassandraCluster

CONTAINER_NAME = "cassandra"
VOLUME_CLAIM_NAME = "cassandra"
DEFAULT_VOLUME_SIZE = "1Gi"
REVISION_HISTORY_LIMIT = 10

CQL_PORT = 9042
INTRA_NODE_PORT = 7001
JMX_PORT = 7099

READY_PROBE_COMMAND = ["/bin/bash", "-c", "/ready-probe.sh"]
PRE_STOP_COMMAND = ["/bin/sh", "-c", "nodetool drain"]


def as_owner(cluster: CassandraCluster) -> client.V1OwnerReference:
    """OwnerReference pointing at the Cassandra CR."""
    return client.V1OwnerReference(
        api_version=cluster.api_version,
        kind=cluster.kind,
        name=cluster.name,
        uid=cluster.uid,
        controller=True,
    )


def service_ports() -> List[client.V1ServicePort]:
    return [
        client.V1ServicePort(
            name="cql",
            port=CQL_PORT,
            target_port=CQL_PORT,
            protocol="TCP",
        )
    ]


def container_ports() -> List[client.V1ContainerPort]:
    return [
        client.V1ContainerPort(name="cql", container_port=CQL_PORT),
        client.V1ContainerPort(name="intra-node", container_port=INTRA_NODE_PORT),
        client.V1ContainerPort(name="jmx", container_port=JMX_PORT),
    ]


def container_env(cluster: CassandraCluster) -> List[client.V1EnvVar]:
    """User env plus defaults, with POD_IP always appended last."""
    env = []
    for var in cluster.spec.cassandra_env:
        value_from = var.get("valueFrom")
        if value_from:
            field_ref = value_from.get("fieldRef")
            env.append(
                client.V1EnvVar(
                    name=var["name"],
                    value_from=client.V1EnvVarSource(
                        field_ref=client.V1ObjectFieldSelector(
                            field_path=field_ref["fieldPath"]
                        )
                    )
                    if field_ref
                    else None,
                )
            )
        else:
            env.append(client.V1EnvVar(name=var["name"], value=str(var.get("value", ""))))

    env.append(
        client.V1EnvVar(
            name="POD_IP",
            value_from=client.V1EnvVarSource(
                field_ref=client.V1ObjectFieldSelector(field_path="status.podIP")
            ),
        )
    )
    return env


def headless_service(cluster: CassandraCluster) -> client.V1Service:
    """Headless service that also publishes unready pods.

    Bootstrapping a new cluster needs the seed address to resolve before
    the first pod passes its readiness probe.
    """
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(
            name=cluster.service_name,
            namespace=cluster.namespace,
            labels=cluster.labels,
            annotations={
                "service.alpha.kubernetes.io/tolerate-unready-endpoints": "true"
            },
            owner_references=[as_owner(cluster)],
        ),
        spec=client.V1ServiceSpec(
            ports=service_ports(),
            selector=cluster.labels,
            cluster_ip="None",
            type="ClusterIP",
            publish_not_ready_addresses=True,
        ),
    )


def cassandra_container(cluster: CassandraCluster) -> client.V1Container:
    return client.V1Container(
        name=CONTAINER_NAME,
        image=cluster.spec.image,
        env=container_env(cluster),
        ports=container_ports(),
        security_context=client.V1SecurityContext(
            capabilities=client.V1Capabilities(add=["IPC_LOCK"])
        ),
        readiness_probe=client.V1Probe(
            _exec=client.V1ExecAction(command=READY_PROBE_COMMAND),
            initial_delay_seconds=15,
            timeout_seconds=5,
        ),
        lifecycle=client.V1Lifecycle(
            pre_stop=client.V1LifecycleHandler(
                _exec=client.V1ExecAction(command=PRE_STOP_COMMAND)
            )
        ),
        volume_mounts=[
            client.V1VolumeMount(name=VOLUME_CLAIM_NAME, mount_path="/cassandra_data")
        ],
    )


def volume_claim_template(cluster: CassandraCluster) -> client.V1PersistentVolumeClaim:
    return client.V1PersistentVolumeClaim(
        metadata=client.V1ObjectMeta(name=VOLUME_CLAIM_NAME),
        spec=client.V1PersistentVolumeClaimSpec(
            access_modes=["ReadWriteOnce"],
            resources=client.V1VolumeResourceRequirements(
                requests={"storage": DEFAULT_VOLUME_SIZE}
            ),
            storage_class_name=cluster.spec.storage_class_name or None,
        ),
    )


def statefulset(cluster: CassandraCluster) -> client.V1StatefulSet:
    """Ordered, stable-identity pod group running the Cassandra image."""
    return client.V1StatefulSet(
        api_version="apps/v1",
        kind="StatefulSet",
        metadata=client.V1ObjectMeta(
            name=cluster.name,
            namespace=cluster.namespace,
            labels=cluster.labels,
            owner_references=[as_owner(cluster)],
        ),
        spec=client.V1StatefulSetSpec(
            service_name=cluster.service_name,
            replicas=cluster.spec.size,
            selector=client.V1LabelSelector(match_labels=cluster.labels),
            pod_management_policy="OrderedReady",
            update_strategy=client.V1StatefulSetUpdateStrategy(
                type="RollingUpdate",
                rolling_update=client.V1RollingUpdateStatefulSetStrategy(
                    partition=cluster.spec.partition
                ),
            ),
            revision_history_limit=REVISION_HISTORY_LIMIT,
            volume_claim_templates=[volume_claim_template(cluster)],
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=cluster.labels),
                spec=client.V1PodSpec(containers=[cassandra_container(cluster)]),
            ),
        ),
    )


def desired_manifests(
    cluster: CassandraCluster,
) -> Tuple[client.V1Service, client.V1StatefulSet]:
    return headless_service(cluster), statefulset(cluster)
