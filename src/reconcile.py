#!/usr/bin/env python3
# src/reconcile.py
"""
Reconcile entry point for a Cassandra cluster.

One pass runs these steps in order, synchronously:

    defaults -> network -> members -> statefulset -> status

Any step failure is recorded on the resource (reason and phase Failed) and
raised again wrapped in a ReconcileError naming the step. Nothing is
retried here: the event feed delivers the resource again on its next
resync and the pass starts over from the stored status.

The steps are expressed as a capability interface (ReconcileSteps) so the
sequencing can be exercised without a cluster; CassandraReconcileSteps is
the implementation bound to a live resource, a store and an executor.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from cassandra_manifests import headless_service, statefulset
from cassandra_types import CassandraCluster
from cluster_status import ClusterPhase
from membership import MembershipTracker
from operator_errors import ContractViolationError, ReconcileError, StoreError
from operator_metrics import cluster_members, reconcile_failures_total, reconcile_total
from pod_exec import CommandExecutor
from resource_reconciler import ResourceReconciler
from resource_store import STATEFULSET, ResourceStore
from scale_down import ScaleDownOrchestrator

logger = logging.getLogger("cassandra-operator.reconcile")

SUBSYSTEM_DEFAULTS = "defaults"
SUBSYSTEM_NETWORK = "network"
SUBSYSTEM_MEMBERS = "members"
SUBSYSTEM_STATEFULSET = "statefulset"
SUBSYSTEM_STATUS = "status"


class StatusWriter:
    """Writes the cluster status only when it differs from the last write."""

    def __init__(self, store: ResourceStore, cluster: CassandraCluster):
        self.store = store
        self.cluster = cluster
        self._persisted: Dict[str, Any] = copy.deepcopy(cluster.status.to_dict())

    def dirty(self) -> bool:
        return self.cluster.status.to_dict() != self._persisted

    def flush(self) -> bool:
        """Persist the status if it changed. Returns True if a write happened."""
        current = self.cluster.status.to_dict()
        if current == self._persisted:
            return False
        self.store.update_status(self.cluster)
        self._persisted = copy.deepcopy(current)
        return True


class ReconcileSteps(ABC):
    """The steps of one reconcile pass over a single cluster."""

    cluster: Optional[CassandraCluster]

    @abstractmethod
    def set_defaults(self):
        """Validate the Cassandra spec fields and fill in defaults (in memory only)."""

    @abstractmethod
    def reconcile_network(self):
        """Ensure the headless service exists with the right ports."""

    @abstractmethod
    def reconcile_members(self):
        """Refresh the member list and run the scale-down protocol."""

    @abstractmethod
    def reconcile_workload_set(self):
        """Ensure the StatefulSet exists with the right owned fields."""

    @abstractmethod
    def reconcile_status(self):
        """Record a successful pass: Available, Running, versions."""

    @abstractmethod
    def record_failure(self, subsystem: str, error: Exception):
        """Record a failed step on the resource status."""


class CassandraReconcileSteps(ReconcileSteps):
    def __init__(
        self,
        cluster: CassandraCluster,
        store: ResourceStore,
        executor: CommandExecutor,
    ):
        # The event object is never mutated; the pass works on a copy
        self.cluster = cluster.deep_copy() if cluster is not None else None
        self.store = store
        self.executor = executor

        self.status_writer = StatusWriter(store, self.cluster) if self.cluster else None
        self.resources = ResourceReconciler(store)
        self.membership = MembershipTracker(store)
        self.scale_down = ScaleDownOrchestrator(
            executor,
            persist_status=self.status_writer.flush if self.status_writer else None,
        )

        self.authorized_replicas: Optional[int] = None
        self.live_statefulset = None

    def set_defaults(self):
        cluster = self.cluster
        cluster.spec.validate()
        if cluster.spec.set_defaults(cluster.name, cluster.namespace):
            logger.debug(f"Applied defaults to cassandra {cluster.namespace}/{cluster.name}")
        if cluster.status.phase == ClusterPhase.NONE:
            cluster.status.set_phase(ClusterPhase.CREATING)

    def reconcile_network(self):
        self.resources.reconcile_service(headless_service(self.cluster))

    def reconcile_members(self):
        cluster = self.cluster
        self.membership.reconcile_members(cluster)

        live = self.store.get(STATEFULSET, cluster.namespace, cluster.name)
        observed = None
        if live is not None and live.spec is not None:
            observed = live.spec.replicas
        self.authorized_replicas = self.scale_down.reconcile(cluster, observed)

        self.status_writer.flush()

    def reconcile_workload_set(self):
        self.live_statefulset = self.resources.reconcile_statefulset(
            statefulset(self.cluster), self.authorized_replicas
        )

    def _update_versions(self):
        status = self.cluster.status
        version = self.cluster.spec.version
        rollout = getattr(self.live_statefulset, "status", None)
        current_revision = getattr(rollout, "current_revision", None)
        update_revision = getattr(rollout, "update_revision", None)

        if current_revision and update_revision and current_revision != update_revision:
            status.target_version = version
        else:
            status.current_version = version
            status.target_version = ""

    def reconcile_status(self):
        cluster = self.cluster
        status = cluster.status

        status.set_ready_condition()
        # Scaling is cleared only by a later pass that ran no decommission and
        # finds the StatefulSet settled at spec.size; a failed decommission
        # leaves it True until spec.size is restored to the observed replicas
        if (
            status.is_scaling()
            and self.authorized_replicas is None
            and self._applied_replicas() == cluster.spec.size
        ):
            logger.info(f"Scale down of cassandra {cluster.namespace}/{cluster.name} complete")
            status.set_scaling_complete_condition()
        status.set_phase(ClusterPhase.RUNNING)
        status.set_reason("")
        self._update_versions()

        self.status_writer.flush()
        cluster_members.labels(namespace=cluster.namespace, cluster=cluster.name).set(
            status.size
        )

    def _applied_replicas(self) -> Optional[int]:
        spec = getattr(self.live_statefulset, "spec", None)
        return getattr(spec, "replicas", None)

    def record_failure(self, subsystem: str, error: Exception):
        status = self.cluster.status
        status.set_reason(str(error))
        status.set_phase(ClusterPhase.FAILED)
        try:
            self.status_writer.flush()
        except StoreError as e:
            logger.error(
                f"Could not record failure of {subsystem} on cassandra "
                f"{self.cluster.namespace}/{self.cluster.name}: {e}"
            )


def reconcile(steps: Optional[ReconcileSteps]):
    """Run one reconcile pass. Raises ReconcileError if a step fails."""
    if steps is None or steps.cluster is None:
        raise ContractViolationError("reconcile called without a cassandra cluster")

    cluster = steps.cluster
    sequence = (
        (SUBSYSTEM_DEFAULTS, steps.set_defaults),
        (SUBSYSTEM_NETWORK, steps.reconcile_network),
        (SUBSYSTEM_MEMBERS, steps.reconcile_members),
        (SUBSYSTEM_STATEFULSET, steps.reconcile_workload_set),
        (SUBSYSTEM_STATUS, steps.reconcile_status),
    )

    logger.debug(f"Reconciling cassandra {cluster.namespace}/{cluster.name}")
    for subsystem, step in sequence:
        try:
            step()
        except Exception as e:
            logger.error(
                f"Reconcile of cassandra {cluster.namespace}/{cluster.name} failed "
                f"at {subsystem}: {e}"
            )
            reconcile_total.labels(result="failure").inc()
            reconcile_failures_total.labels(subsystem=subsystem).inc()
            steps.record_failure(subsystem, e)
            raise ReconcileError(cluster.namespace, cluster.name, subsystem, e) from e

    reconcile_total.labels(result="success").inc()
    logger.debug(f"Cassandra {cluster.namespace}/{cluster.name} reconciled")
