#!/usr/bin/env python3
# src/resource_reconciler.py
"""
Create-or-update reconciliation for the headless Service and the StatefulSet.

Only the fields the operator owns are compared: the service port list, and
the StatefulSet image, rolling-update partition and replica count. Live
objects carry many server-defaulted fields, so comparing whole objects
would issue an update on every pass.
"""

import copy
import logging
from typing import Optional, Tuple

from kubernetes import client

from cassandra_manifests import CONTAINER_NAME
from operator_errors import AlreadyExistsError
from resource_store import SERVICE, STATEFULSET, ResourceStore

logger = logging.getLogger("cassandra-operator.resources")


def _port_key(port: client.V1ServicePort) -> Tuple:
    target = port.target_port if port.target_port is not None else port.port
    return (port.name, port.port, str(target), port.protocol or "TCP")


def service_ports_differ(live: client.V1Service, desired: client.V1Service) -> bool:
    live_ports = [_port_key(p) for p in (live.spec.ports or [])]
    desired_ports = [_port_key(p) for p in (desired.spec.ports or [])]
    return live_ports != desired_ports


def _container(stateful: client.V1StatefulSet) -> client.V1Container:
    containers = stateful.spec.template.spec.containers
    for container in containers:
        if container.name == CONTAINER_NAME:
            return container
    return containers[0]


def _partition(stateful: client.V1StatefulSet) -> Optional[int]:
    strategy = stateful.spec.update_strategy
    if strategy is None or strategy.rolling_update is None:
        return None
    return strategy.rolling_update.partition


class ResourceReconciler:
    def __init__(self, store: ResourceStore):
        self.store = store

    def reconcile_service(self, desired: client.V1Service) -> client.V1Service:
        namespace = desired.metadata.namespace
        name = desired.metadata.name

        live = self.store.get(SERVICE, namespace, name)
        if live is None:
            try:
                return self.store.create(SERVICE, namespace, desired)
            except AlreadyExistsError:
                logger.debug(f"Service {namespace}/{name} appeared concurrently")
                return self.store.get(SERVICE, namespace, name)

        if not service_ports_differ(live, desired):
            return live

        # Address, selector and annotations are left as they are
        updated = copy.deepcopy(live)
        updated.spec.ports = desired.spec.ports
        logger.info(f"Service {namespace}/{name} ports drifted, replacing port list")
        return self.store.update(SERVICE, namespace, name, updated)

    def desired_replicas(
        self, live_replicas: int, spec_replicas: int, authorized_replicas: Optional[int]
    ) -> int:
        """Replica count to apply to an existing StatefulSet.

        Growth is applied directly. A decrease is only applied when the
        scale-down orchestrator authorized exactly that count.
        """
        if spec_replicas >= live_replicas:
            return spec_replicas
        if authorized_replicas == spec_replicas:
            return spec_replicas
        logger.warning(
            f"Not lowering replicas {live_replicas} -> {spec_replicas} without a decommission"
        )
        return live_replicas

    def reconcile_statefulset(
        self,
        desired: client.V1StatefulSet,
        authorized_replicas: Optional[int] = None,
    ) -> client.V1StatefulSet:
        """Create the StatefulSet or bring its owned fields in line."""
        namespace = desired.metadata.namespace
        name = desired.metadata.name

        live = self.store.get(STATEFULSET, namespace, name)
        if live is None:
            try:
                return self.store.create(STATEFULSET, namespace, desired)
            except AlreadyExistsError:
                live = self.store.get(STATEFULSET, namespace, name)

        image = _container(desired).image
        partition = _partition(desired)
        live_replicas = live.spec.replicas if live.spec.replicas is not None else 1
        replicas = self.desired_replicas(
            live_replicas, desired.spec.replicas, authorized_replicas
        )

        changes = []
        if _container(live).image != image:
            changes.append(f"image={image}")
        if _partition(live) != partition:
            changes.append(f"partition={partition}")
        if live_replicas != replicas:
            changes.append(f"replicas={live_replicas}->{replicas}")

        if not changes:
            return live

        updated = copy.deepcopy(live)
        updated.spec.replicas = replicas
        _container(updated).image = image
        if updated.spec.update_strategy is None:
            updated.spec.update_strategy = client.V1StatefulSetUpdateStrategy(
                type="RollingUpdate"
            )
        if updated.spec.update_strategy.rolling_update is None:
            updated.spec.update_strategy.type = "RollingUpdate"
            updated.spec.update_strategy.rolling_update = (
                client.V1RollingUpdateStatefulSetStrategy()
            )
        updated.spec.update_strategy.rolling_update.partition = partition

        logger.info(f"StatefulSet {namespace}/{name} update: {', '.join(changes)}")
        return self.store.update(STATEFULSET, namespace, name, updated)
