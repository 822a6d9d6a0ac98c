#!/usr/bin/env python3
# src/operator_errors.py
"""Exceptions raised by the Cassandra operator."""

from typing import Optional


class CassandraOperatorError(Exception):
    """Base exception for all operator errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details, usually the underlying API error
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ValidationError(CassandraOperatorError):
    """Raised when a Cassandra spec is not acceptable."""

    pass


class ContractViolationError(CassandraOperatorError):
    """Raised when the reconciler is called without a target."""

    pass


class StoreError(CassandraOperatorError):
    """Raised for Kubernetes API failures."""

    pass


class AlreadyExistsError(StoreError):
    """Raised when creating an object that already exists (HTTP 409)."""

    pass


class CommandExecutionError(CassandraOperatorError):
    """Raised when a command could not be run inside a pod."""

    pass


class ScaleDownRefusedError(CassandraOperatorError):
    """Raised when a scale down cannot proceed safely."""

    pass


class ScalingInProgressError(ScaleDownRefusedError):
    """Raised when another scaling operation holds the Scaling condition."""

    pass


class DecommissionError(CassandraOperatorError):
    """Raised when nodetool decommission failed on the victim pod."""

    pass


class ReconcileError(CassandraOperatorError):
    """A reconcile step failed; wraps the cause with resource context."""

    def __init__(self, namespace: str, name: str, subsystem: str, cause: Exception):
        self.namespace = namespace
        self.name = name
        self.subsystem = subsystem
        self.cause = cause
        super().__init__(
            f"failed to reconcile {subsystem} for cassandra {namespace}/{name}",
            details=str(cause),
        )
