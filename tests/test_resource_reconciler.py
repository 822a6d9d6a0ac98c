#!/usr/bin/env python3
# tests/test_resource_reconciler.py
"""Tests for create-or-update of the headless service and the StatefulSet."""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from kubernetes import client

from cassandra_manifests import headless_service, statefulset
from fakes import FakeResourceStore, make_cluster
from resource_reconciler import ResourceReconciler, service_ports_differ
from resource_store import SERVICE, STATEFULSET


def defaulted(**kwargs):
    cluster = make_cluster(**kwargs)
    cluster.spec.set_defaults(cluster.name, cluster.namespace)
    return cluster


class TestServiceReconcile(unittest.TestCase):
    def setUp(self):
        self.store = FakeResourceStore()
        self.reconciler = ResourceReconciler(self.store)
        self.cluster = defaulted()

    def test_creates_missing_service(self):
        self.reconciler.reconcile_service(headless_service(self.cluster))

        self.assertIsNotNone(self.store.stored(SERVICE, "default", "cass-unready"))
        self.assertEqual(self.store.writes, [("create", SERVICE, "default", "cass-unready")])

    def test_matching_service_untouched(self):
        self.store.add(SERVICE, headless_service(self.cluster))

        self.reconciler.reconcile_service(headless_service(self.cluster))

        self.assertEqual(self.store.writes, [])

    def test_drifted_ports_replaced_other_fields_kept(self):
        live = headless_service(self.cluster)
        live.spec.ports = [client.V1ServicePort(name="cql", port=9999, target_port=9999)]
        live.spec.cluster_ip = "None"
        live.metadata.annotations["team"] = "storage"
        self.store.add(SERVICE, live)

        self.reconciler.reconcile_service(headless_service(self.cluster))

        stored = self.store.stored(SERVICE, "default", "cass-unready")
        self.assertEqual([p.port for p in stored.spec.ports], [9042])
        self.assertEqual(stored.metadata.annotations["team"], "storage")
        self.assertEqual(self.store.writes, [("update", SERVICE, "default", "cass-unready")])

    def test_ports_compare_without_server_defaults(self):
        desired = headless_service(self.cluster)
        live = headless_service(self.cluster)
        live.spec.ports = [client.V1ServicePort(name="cql", port=9042)]

        self.assertFalse(service_ports_differ(live, desired))


class TestStatefulSetReconcile(unittest.TestCase):
    def setUp(self):
        self.store = FakeResourceStore()
        self.reconciler = ResourceReconciler(self.store)

    def seed(self, cluster, replicas=None):
        live = statefulset(cluster)
        if replicas is not None:
            live.spec.replicas = replicas
        self.store.add(STATEFULSET, live)

    def stored(self):
        return self.store.stored(STATEFULSET, "default", "cass")

    def test_creates_missing_statefulset(self):
        cluster = defaulted(size=3)

        self.reconciler.reconcile_statefulset(statefulset(cluster))

        self.assertEqual(self.stored().spec.replicas, 3)

    def test_unchanged_statefulset_not_written(self):
        cluster = defaulted(size=3)
        self.seed(cluster)

        self.reconciler.reconcile_statefulset(statefulset(cluster))

        self.assertEqual(self.store.writes, [])

    def test_scale_up_applied(self):
        cluster = defaulted(size=5)
        self.seed(cluster, replicas=3)

        self.reconciler.reconcile_statefulset(statefulset(cluster))

        self.assertEqual(self.stored().spec.replicas, 5)

    def test_scale_down_not_applied_without_authorization(self):
        cluster = defaulted(size=2)
        self.seed(cluster, replicas=3)

        self.reconciler.reconcile_statefulset(statefulset(cluster))

        self.assertEqual(self.stored().spec.replicas, 3)
        self.assertEqual(self.store.writes, [])

    def test_authorized_scale_down_applied(self):
        cluster = defaulted(size=2)
        self.seed(cluster, replicas=3)

        self.reconciler.reconcile_statefulset(statefulset(cluster), authorized_replicas=2)

        self.assertEqual(self.stored().spec.replicas, 2)

    def test_image_and_partition_follow_spec(self):
        old = defaulted(size=3, version="v12", partition=0)
        self.seed(old)
        new = defaulted(size=3, version="v13", partition=1)

        self.reconciler.reconcile_statefulset(statefulset(new))

        stored = self.stored()
        self.assertEqual(
            stored.spec.template.spec.containers[0].image,
            "gcr.io/google-samples/cassandra:v13",
        )
        self.assertEqual(stored.spec.update_strategy.rolling_update.partition, 1)

    def test_missing_rolling_update_filled_in(self):
        cluster = defaulted(size=3, partition=2)
        live = statefulset(cluster)
        live.spec.update_strategy = None
        self.store.add(STATEFULSET, live)

        self.reconciler.reconcile_statefulset(statefulset(cluster))

        strategy = self.stored().spec.update_strategy
        self.assertEqual(strategy.type, "RollingUpdate")
        self.assertEqual(strategy.rolling_update.partition, 2)

    def test_desired_replicas(self):
        self.assertEqual(self.reconciler.desired_replicas(3, 4, None), 4)
        self.assertEqual(self.reconciler.desired_replicas(3, 3, None), 3)
        self.assertEqual(self.reconciler.desired_replicas(3, 2, None), 3)
        self.assertEqual(self.reconciler.desired_replicas(3, 2, 2), 2)
        self.assertEqual(self.reconciler.desired_replicas(5, 2, 4), 5)


if __name__ == "__main__":
    unittest.main()
