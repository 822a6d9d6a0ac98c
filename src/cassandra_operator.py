#!/usr/bin/env python3
# src/cassandra_operator.py
"""
Cassandra Operator - Kubernetes controller for Cassandra clusters

Watches Cassandra custom resources and converges each one toward its spec:
a headless service, a StatefulSet of Cassandra pods, and a status document
with phase, conditions and members. Scale downs are done one member at a
time, decommissioning the highest ordinal pod before the StatefulSet is
shrunk.
"""

import logging
import os
import signal
import sys
import threading
from enum import Enum
from typing import Any, Dict, Optional

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

import operator_metrics
from cassandra_types import CRD_GROUP, CRD_PLURAL, CRD_VERSION, CassandraCluster
from operator_errors import ReconcileError
from pod_exec import CommandExecutor, KubernetesCommandExecutor
from readiness import ReadinessFlag, start_http_server
from reconcile import CassandraReconcileSteps, reconcile
from resource_store import KubernetesResourceStore, ResourceStore

# -----------------------------
# Environment variables
# -----------------------------
WATCH_NAMESPACE = os.environ.get("WATCH_NAMESPACE", "")
LISTEN_PORT = int(os.environ.get("LISTEN_PORT", 8080))
RESYNC_PERIOD = int(os.environ.get("RESYNC_PERIOD", 5))  # seconds
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
OPERATOR_VERSION = "0.1.0"

# -----------------------------
# Logging Setup
# -----------------------------
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s",
)
logging.getLogger("kubernetes").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)
logger = logging.getLogger("cassandra-operator")


# -----------------------------
# Events
# -----------------------------


class EventKind(Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


class ClusterEvent:
    """A Cassandra object delivered by the watch, tagged with its kind."""

    def __init__(self, kind: EventKind, obj: Dict[str, Any]):
        self.kind = kind
        self.object = obj

    @property
    def deleted(self) -> bool:
        return self.kind is EventKind.DELETED

    @classmethod
    def from_watch(cls, raw: Dict[str, Any]) -> Optional["ClusterEvent"]:
        """Convert a raw watch event; BOOKMARK and ERROR events give None."""
        try:
            kind = EventKind(raw.get("type"))
        except ValueError:
            return None
        return cls(kind, raw.get("object") or {})


# -----------------------------
# Operator
# -----------------------------


class CassandraOperator:
    """Dispatches Cassandra events to the reconciler."""

    def __init__(
        self,
        store: ResourceStore,
        executor: CommandExecutor,
        readiness: ReadinessFlag,
        custom_objects_api: Optional[client.CustomObjectsApi] = None,
    ):
        self.store = store
        self.executor = executor
        self.readiness = readiness
        self.custom_objects = custom_objects_api

    def handle(self, event: ClusterEvent) -> Optional[CassandraCluster]:
        """Handle one event. Returns the reconciled cluster, or None if ignored."""
        self.readiness.set_ready()

        if event.kind is EventKind.DELETED:
            # Owned objects are garbage collected through their owner references
            metadata = event.object.get("metadata", {})
            logger.info(
                f"Cassandra {metadata.get('namespace')}/{metadata.get('name')} deleted, ignoring"
            )
            return None

        if event.kind in (EventKind.ADDED, EventKind.MODIFIED):
            cluster = CassandraCluster.from_dict(event.object)
            steps = CassandraReconcileSteps(cluster, self.store, self.executor)
            reconcile(steps)
            return steps.cluster

        raise ValueError(f"unhandled event kind {event.kind}")

    def _list_function(self):
        if WATCH_NAMESPACE:
            return self.custom_objects.list_namespaced_custom_object, {
                "namespace": WATCH_NAMESPACE
            }
        return self.custom_objects.list_cluster_custom_object, {}

    def run(self, shutdown_event: threading.Event):
        """Watch Cassandra objects until shutdown.

        Each watch is bounded by RESYNC_PERIOD; restarting it re-lists every
        object, which redelivers resources whose last pass failed.
        """
        list_function, kwargs = self._list_function()
        logger.info(
            f"Watching {CRD_GROUP}/{CRD_VERSION}, {CRD_PLURAL}, "
            f"namespace={WATCH_NAMESPACE or 'all'}, resync={RESYNC_PERIOD}s"
        )

        while not shutdown_event.is_set():
            try:
                w = watch.Watch()
                for raw in w.stream(
                    list_function,
                    group=CRD_GROUP,
                    version=CRD_VERSION,
                    plural=CRD_PLURAL,
                    timeout_seconds=RESYNC_PERIOD,
                    **kwargs,
                ):
                    if shutdown_event.is_set():
                        break

                    event = ClusterEvent.from_watch(raw)
                    if event is None:
                        continue
                    try:
                        self.handle(event)
                    except ReconcileError as e:
                        logger.error(str(e))
                    except Exception as e:
                        # One unreadable object must not stall the rest of the listing
                        metadata = event.object.get("metadata") or {}
                        logger.error(
                            f"Could not handle {event.kind.value} for cassandra "
                            f"{metadata.get('namespace')}/{metadata.get('name')}: {e}"
                        )

                w.stop()

            except ApiException as e:
                if e.status == 410:  # Resource version too old
                    logger.info("Cassandra watch resource version expired, restarting")
                    continue
                logger.error(f"Cassandra watch error: {e}")
                shutdown_event.wait(RESYNC_PERIOD)

            except Exception as e:
                logger.error(f"Unexpected Cassandra watch error: {e}")
                shutdown_event.wait(RESYNC_PERIOD)

        logger.info("Cassandra watch stopped")


# -----------------------------
# Kubernetes Client Setup
# -----------------------------


def load_kubernetes_config():
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Loaded local Kubernetes configuration")


def create_operator(readiness: ReadinessFlag) -> CassandraOperator:
    custom_objects = client.CustomObjectsApi()
    store = KubernetesResourceStore(client.CoreV1Api(), client.AppsV1Api(), custom_objects)
    # exec streams get their own client
    executor = KubernetesCommandExecutor(client.CoreV1Api())
    return CassandraOperator(store, executor, readiness, custom_objects)


# -----------------------------
# Main
# -----------------------------


def main():
    logger.info(f"Starting Cassandra operator {OPERATOR_VERSION} (Python {sys.version.split()[0]})")
    operator_metrics.info_metric.info(
        {
            "version": OPERATOR_VERSION,
            "watch_namespace": WATCH_NAMESPACE or "all",
            "resync_period": str(RESYNC_PERIOD),
        }
    )

    load_kubernetes_config()

    readiness = ReadinessFlag()
    server = start_http_server(LISTEN_PORT, readiness)
    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    operator = create_operator(readiness)
    try:
        operator.run(shutdown_event)
    finally:
        server.shutdown()
        logger.info("Cassandra operator shutdown complete")


if __name__ == "__main__":
    main()
