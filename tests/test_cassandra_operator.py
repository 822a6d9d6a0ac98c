#!/usr/bin/env python3
# tests/test_cassandra_operator.py
"""Tests for event dispatch and the watch loop."""

import os
import sys
import threading
import unittest
from unittest.mock import Mock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from kubernetes.client.rest import ApiException

import cassandra_operator
from cassandra_operator import CassandraOperator, ClusterEvent, EventKind
from cluster_status import ClusterPhase
from fakes import FakeResourceStore, make_cluster
from operator_errors import ReconcileError, StoreError
from pod_exec import CommandExecutor
from readiness import ReadinessFlag


class TestClusterEvent(unittest.TestCase):
    def test_from_watch(self):
        event = ClusterEvent.from_watch({"type": "MODIFIED", "object": {"metadata": {}}})

        self.assertEqual(event.kind, EventKind.MODIFIED)
        self.assertFalse(event.deleted)

    def test_unknown_event_types_skipped(self):
        self.assertIsNone(ClusterEvent.from_watch({"type": "BOOKMARK", "object": {}}))
        self.assertIsNone(ClusterEvent.from_watch({"type": "ERROR", "object": {}}))


class TestHandle(unittest.TestCase):
    def setUp(self):
        self.store = FakeResourceStore()
        self.executor = Mock(spec=CommandExecutor)
        self.readiness = ReadinessFlag()
        self.operator = CassandraOperator(self.store, self.executor, self.readiness)

    def test_added_event_reconciles(self):
        obj = make_cluster(size=3).to_dict()

        cluster = self.operator.handle(ClusterEvent(EventKind.ADDED, obj))

        self.assertEqual(cluster.status.phase, ClusterPhase.RUNNING)
        self.assertTrue(self.readiness.is_ready())
        self.assertTrue(self.store.writes)

    def test_deleted_event_ignored(self):
        obj = make_cluster(size=3).to_dict()

        result = self.operator.handle(ClusterEvent(EventKind.DELETED, obj))

        self.assertIsNone(result)
        self.assertEqual(self.store.calls, [])
        self.assertTrue(self.readiness.is_ready())

    def test_reconcile_error_propagates(self):
        obj = make_cluster(size=-2).to_dict()

        with self.assertRaises(ReconcileError):
            self.operator.handle(ClusterEvent(EventKind.MODIFIED, obj))


class TestRun(unittest.TestCase):
    def setUp(self):
        self.custom_objects = Mock()
        self.store = FakeResourceStore()
        self.operator = CassandraOperator(
            self.store, Mock(spec=CommandExecutor), ReadinessFlag(), self.custom_objects
        )
        self.shutdown = threading.Event()
        self.obj = make_cluster(size=1).to_dict()

    def events_then_shutdown(self, *raw_events):
        def stream(*args, **kwargs):
            for raw in raw_events:
                yield raw
            self.shutdown.set()

        return stream

    @patch("cassandra_operator.watch.Watch")
    def test_events_dispatched(self, mock_watch):
        mock_watch.return_value.stream.side_effect = self.events_then_shutdown(
            {"type": "ADDED", "object": self.obj},
            {"type": "BOOKMARK", "object": {}},
        )

        with patch.object(self.operator, "handle") as handle:
            self.operator.run(self.shutdown)

        handle.assert_called_once()
        self.assertEqual(handle.call_args[0][0].kind, EventKind.ADDED)
        kwargs = mock_watch.return_value.stream.call_args[1]
        self.assertEqual(kwargs["plural"], "cassandras")
        self.assertEqual(kwargs["timeout_seconds"], cassandra_operator.RESYNC_PERIOD)

    @patch("cassandra_operator.watch.Watch")
    def test_reconcile_error_does_not_stop_loop(self, mock_watch):
        mock_watch.return_value.stream.side_effect = self.events_then_shutdown(
            {"type": "ADDED", "object": self.obj},
            {"type": "MODIFIED", "object": self.obj},
        )
        error = ReconcileError("default", "cass", "network", StoreError("boom"))

        with patch.object(self.operator, "handle", side_effect=error) as handle:
            self.operator.run(self.shutdown)

        self.assertEqual(handle.call_count, 2)

    @patch("cassandra_operator.watch.Watch")
    def test_unreadable_object_does_not_block_later_objects(self, mock_watch):
        broken = {"metadata": {"name": "broken", "namespace": "default"}, "spec": "oops"}
        upgrading = make_cluster(name="upgrading", size=1).to_dict()
        upgrading["status"] = {
            "phase": "Rebalancing",
            "conditions": [{"type": "Upgrading", "status": "True"}],
        }
        good = make_cluster(name="good", size=1).to_dict()
        mock_watch.return_value.stream.side_effect = self.events_then_shutdown(
            {"type": "ADDED", "object": broken},
            {"type": "ADDED", "object": upgrading},
            {"type": "ADDED", "object": good},
        )

        self.operator.run(self.shutdown)

        self.assertEqual(mock_watch.return_value.stream.call_count, 1)
        self.assertIn(("create", "StatefulSet", "default", "upgrading"), self.store.calls)
        self.assertIn(("create", "StatefulSet", "default", "good"), self.store.calls)
        self.assertNotIn(("update_status", "default", "broken"), self.store.calls)

        status_calls = [c for c in self.store.calls if c[0] == "update_status"]
        written = [
            status
            for call, status in zip(status_calls, self.store.status_updates)
            if call[2] == "upgrading"
        ]
        self.assertEqual(written[-1]["phase"], "Running")
        self.assertEqual(
            [c["type"] for c in written[-1]["conditions"]], ["Upgrading", "Available"]
        )

    @patch("cassandra_operator.watch.Watch")
    def test_unexpected_handler_error_does_not_stop_loop(self, mock_watch):
        mock_watch.return_value.stream.side_effect = self.events_then_shutdown(
            {"type": "ADDED", "object": self.obj},
            {"type": "MODIFIED", "object": self.obj},
        )

        with patch.object(
            self.operator, "handle", side_effect=[ValueError("bad object"), None]
        ) as handle:
            self.operator.run(self.shutdown)

        self.assertEqual(handle.call_count, 2)
        self.assertEqual(mock_watch.return_value.stream.call_count, 1)

    @patch("cassandra_operator.watch.Watch")
    def test_expired_watch_restarts(self, mock_watch):
        streams = [
            ApiException(status=410),
            self.events_then_shutdown({"type": "ADDED", "object": self.obj})(),
        ]

        def stream(*args, **kwargs):
            result = streams.pop(0)
            if isinstance(result, Exception):
                raise result
            return result

        mock_watch.return_value.stream.side_effect = stream

        with patch.object(self.operator, "handle") as handle:
            self.operator.run(self.shutdown)

        handle.assert_called_once()

    @patch("cassandra_operator.WATCH_NAMESPACE", "db")
    def test_namespaced_list_function(self):
        function, kwargs = self.operator._list_function()

        self.assertIs(function, self.custom_objects.list_namespaced_custom_object)
        self.assertEqual(kwargs, {"namespace": "db"})

    @patch("cassandra_operator.WATCH_NAMESPACE", "")
    def test_cluster_wide_list_function(self):
        function, kwargs = self.operator._list_function()

        self.assertIs(function, self.custom_objects.list_cluster_custom_object)
        self.assertEqual(kwargs, {})


if __name__ == "__main__":
    unittest.main()
