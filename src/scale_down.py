#!/usr/bin/env python3
# src/scale_down.py
"""
One-member-at-a-time scale down of a Cassandra cluster.

The StatefulSet must never lose a pod that still owns data. Before the
replica count is lowered, the highest-ordinal pod is asked to leave the
ring with `nodetool decommission`. The state of the protocol is derived
from the cluster status on every pass:

- Idle: no Scaling condition with status True
- Decommissioning: the Scaling condition is True
- Blocked: a request that cannot proceed safely (more than one member to
  remove, or another scaling operation already holds the condition)

The Scaling condition is an advisory lock scoped to the resource. It is
read and then written without a resourceVersion check, so two passes
working from stale copies can both pass the check; the event feed is
expected to run a single pass per resource at a time.
"""

import logging
from typing import Callable, Optional

from cassandra_manifests import CONTAINER_NAME
from cassandra_types import CassandraCluster
from cluster_status import ClusterPhase
from operator_errors import (
    CommandExecutionError,
    DecommissionError,
    ScaleDownRefusedError,
    ScalingInProgressError,
)
from operator_metrics import decommission_total, scale_down_refused_total
from pod_exec import CommandExecutor

logger = logging.getLogger("cassandra-operator.scaledown")

DECOMMISSION_COMMAND = ["nodetool", "decommission"]


class ScaleDownOrchestrator:
    def __init__(
        self,
        executor: CommandExecutor,
        persist_status: Optional[Callable[[], bool]] = None,
    ):
        """
        Args:
            executor: runs the decommission inside the victim container
            persist_status: writes the cluster status; called once the
                Scaling condition is set so other passes can see it
        """
        self.executor = executor
        self.persist_status = persist_status

    def reconcile(
        self, cluster: CassandraCluster, observed_replicas: Optional[int]
    ) -> Optional[int]:
        """Decommission one member if the cluster is one pod too large.

        Returns the replica count the StatefulSet may now be lowered to, or
        None when no scale down is needed. Raises ScaleDownRefusedError
        without touching anything when the request is unsafe, and
        DecommissionError when the decommission itself failed.
        """
        desired = cluster.spec.size

        if observed_replicas is None or observed_replicas <= desired:
            return None

        if observed_replicas - desired > 1:
            scale_down_refused_total.labels(reason="multiple_members").inc()
            raise ScaleDownRefusedError(
                "statefulset could not be updated, instance decommission can only be "
                f"done one by one. Current replicas: {observed_replicas} Size: {desired}"
            )

        if cluster.status.is_scaling():
            scale_down_refused_total.labels(reason="in_progress").inc()
            raise ScalingInProgressError(
                f"scaling already in progress for cassandra {cluster.namespace}/{cluster.name}, "
                "can't start another"
            )

        self.remove_member(cluster, observed_replicas)
        return desired

    def remove_member(self, cluster: CassandraCluster, observed_replicas: int):
        """Decommission the highest ordinal pod and wait for it to finish."""
        desired = cluster.spec.size
        victim = cluster.pod_name(observed_replicas - 1)

        cluster.status.set_scaling_down_condition(desired, observed_replicas)
        if self.persist_status is not None:
            self.persist_status()

        logger.info(f"Start the decommission of {cluster.namespace}/{victim}")
        try:
            stdout, stderr = self.executor.execute(
                victim, CONTAINER_NAME, cluster.namespace, DECOMMISSION_COMMAND
            )
            if stderr.strip():
                raise CommandExecutionError(
                    f"decommission of {victim} wrote to stderr", stderr.strip()
                )
        except CommandExecutionError as e:
            decommission_total.labels(result="failure").inc()
            error = DecommissionError(f"failed to decommission {victim}", str(e))
            logger.error(str(error))
            cluster.status.set_reason(str(error))
            cluster.status.set_phase(ClusterPhase.FAILED)
            raise error from e

        decommission_total.labels(result="success").inc()
        logger.info(f"Finished the decommission of {cluster.namespace}/{victim}")
        if stdout.strip():
            logger.info(stdout.strip())
