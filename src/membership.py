#!/usr/bin/env python3
# src/membership.py
"""Track which pods currently make up a Cassandra cluster."""

import logging
from typing import List

from cassandra_types import CassandraCluster
from resource_store import POD, ResourceStore

logger = logging.getLogger("cassandra-operator.membership")


class MembershipTracker:
    def __init__(self, store: ResourceStore):
        self.store = store

    def member_names(self, cluster: CassandraCluster) -> List[str]:
        """Names of the pods matching the cluster labels.

        Names are kept in listing order; the API gives no ordering
        guarantee, so a reordered listing counts as a change.
        """
        pods = self.store.list(POD, cluster.namespace, cluster.label_selector)
        return [pod.metadata.name for pod in pods]

    def reconcile_members(self, cluster: CassandraCluster) -> bool:
        """Record the observed members in status; True if they changed."""
        names = self.member_names(cluster)
        previous = list(cluster.status.members)
        changed = cluster.status.set_members(names)
        if changed:
            logger.info(
                f"Cassandra {cluster.namespace}/{cluster.name} members changed: "
                f"{previous} -> {names}"
            )
        return changed
