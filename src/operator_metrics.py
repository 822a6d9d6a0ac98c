#!/usr/bin/env python3
# src/operator_metrics.py
"""Prometheus metrics exported by the operator on /metrics."""

from prometheus_client import Counter, Gauge, Info

reconcile_total = Counter(
    "cassandra_operator_reconcile_total",
    "Total number of reconcile passes",
    ["result"],
)
reconcile_failures_total = Counter(
    "cassandra_operator_reconcile_failures_total",
    "Total number of failed reconcile passes by failing step",
    ["subsystem"],
)
decommission_total = Counter(
    "cassandra_operator_decommission_total",
    "Total number of nodetool decommission attempts",
    ["result"],
)
scale_down_refused_total = Counter(
    "cassandra_operator_scale_down_refused_total",
    "Total number of scale downs refused by the one-at-a-time guards",
    ["reason"],
)
cluster_members = Gauge(
    "cassandra_cluster_members",
    "Number of pods recorded as members of a Cassandra cluster",
    ["namespace", "cluster"],
)
info_metric = Info(
    "cassandra_operator", "Information about the Cassandra operator instance"
)
