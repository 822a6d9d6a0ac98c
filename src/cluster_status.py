#!/usr/bin/env python3
# src/cluster_status.py
"""
Status and condition model for the Cassandra custom resource.

The status document is the only thing the operator persists. It carries:
- the coarse cluster phase (Creating, Running, Failed)
- a failure reason
- a list of typed conditions, upserted by type
- the recorded member pod names
- current and target image versions

Conditions follow the Kubernetes convention: at most one entry per type,
and the position of the first occurrence is kept when an entry is replaced.
"""

import copy
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ClusterPhase(str, Enum):
    """Coarse lifecycle state of the cluster resource."""

    NONE = ""
    CREATING = "Creating"
    RUNNING = "Running"
    FAILED = "Failed"


class ConditionType(str, Enum):
    AVAILABLE = "Available"
    SCALING = "Scaling"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _condition_type(value: Any):
    """Known types become ConditionType; types set by other writers stay strings."""
    try:
        return ConditionType(value)
    except ValueError:
        return str(value)


def _condition_status(value: Any) -> ConditionStatus:
    try:
        return ConditionStatus(value)
    except ValueError:
        return ConditionStatus.UNKNOWN


def _phase(value: Any) -> ClusterPhase:
    """Unrecognized phases read as unset and are rewritten by the next pass."""
    try:
        return ClusterPhase(value or ClusterPhase.NONE)
    except ValueError:
        return ClusterPhase.NONE


def _value(member: Any) -> str:
    return member.value if isinstance(member, Enum) else member


def scaling_message(from_size: int, to_size: int) -> str:
    return f"Decommissioning one member, from={from_size},to={to_size}"


class ClusterCondition:
    """One typed, timestamped condition entry."""

    def __init__(
        self,
        condition_type: ConditionType,
        status: ConditionStatus,
        reason: str = "",
        message: str = "",
        last_update_time: str = "",
        last_transition_time: str = "",
    ):
        self.type = _condition_type(condition_type)
        self.status = _condition_status(status)
        self.reason = reason
        self.message = message
        self.last_update_time = last_update_time
        self.last_transition_time = last_transition_time

    def same_content(self, other: "ClusterCondition") -> bool:
        """Compare everything but the timestamps."""
        return (
            self.status == other.status
            and self.reason == other.reason
            and self.message == other.message
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": _value(self.type), "status": self.status.value}
        if self.last_update_time:
            data["lastUpdateTime"] = self.last_update_time
        if self.last_transition_time:
            data["lastTransitionTime"] = self.last_transition_time
        if self.reason:
            data["reason"] = self.reason
        if self.message:
            data["message"] = self.message
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterCondition":
        return cls(
            condition_type=data.get("type", ""),
            status=data.get("status", ConditionStatus.UNKNOWN.value),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            last_update_time=data.get("lastUpdateTime", ""),
            last_transition_time=data.get("lastTransitionTime", ""),
        )

    def __repr__(self):
        return (
            f"ClusterCondition(type={_value(self.type)}, status={self.status.value}, "
            f"reason={self.reason!r}, message={self.message!r})"
        )


class ClusterStatus:
    """In-memory status document, mutated during a reconcile pass."""

    def __init__(
        self,
        phase: ClusterPhase = ClusterPhase.NONE,
        reason: str = "",
        conditions: Optional[List[ClusterCondition]] = None,
        members: Optional[List[str]] = None,
        current_version: str = "",
        target_version: str = "",
    ):
        self.phase = ClusterPhase(phase)
        self.reason = reason
        self.conditions: List[ClusterCondition] = list(conditions or [])
        self.members: List[str] = list(members or [])
        self.current_version = current_version
        self.target_version = target_version

    @property
    def size(self) -> int:
        return len(self.members)

    # -----------------------------
    # Conditions
    # -----------------------------

    def get_condition(
        self, condition_type: ConditionType
    ) -> Tuple[int, Optional[ClusterCondition]]:
        """Return (position, condition) for a type, or (-1, None)."""
        for i, condition in enumerate(self.conditions):
            if condition.type == condition_type:
                return i, condition
        return -1, None

    def set_condition(
        self,
        condition_type: ConditionType,
        status: ConditionStatus,
        reason: str = "",
        message: str = "",
    ) -> bool:
        """Upsert a condition by type. Returns True if the list changed.

        An identical condition (same status, reason and message) is left
        alone, timestamps included, so steady-state passes produce no churn.
        """
        new = ClusterCondition(condition_type, status, reason, message)
        pos, existing = self.get_condition(new.type)

        if existing is not None and existing.same_content(new):
            return False

        now = _now()
        new.last_update_time = now
        if existing is not None and existing.status == new.status:
            new.last_transition_time = existing.last_transition_time or now
        else:
            new.last_transition_time = now

        if existing is not None:
            self.conditions[pos] = new
        else:
            self.conditions.append(new)
        return True

    def set_ready_condition(self) -> bool:
        return self.set_condition(
            ConditionType.AVAILABLE, ConditionStatus.TRUE, "Cluster available"
        )

    def set_scaling_down_condition(self, from_size: int, to_size: int) -> bool:
        return self.set_condition(
            ConditionType.SCALING,
            ConditionStatus.TRUE,
            "Scaling down",
            scaling_message(from_size, to_size),
        )

    def set_scaling_complete_condition(self) -> bool:
        return self.set_condition(
            ConditionType.SCALING, ConditionStatus.FALSE, "Scaling complete"
        )

    def is_scaling(self) -> bool:
        _, condition = self.get_condition(ConditionType.SCALING)
        return condition is not None and condition.status == ConditionStatus.TRUE

    def is_failed(self) -> bool:
        return self.phase == ClusterPhase.FAILED

    # -----------------------------
    # Phase, reason, members
    # -----------------------------

    def set_phase(self, phase: ClusterPhase):
        self.phase = ClusterPhase(phase)

    def set_reason(self, reason: str):
        self.reason = reason

    def set_members(self, names: List[str]) -> bool:
        """Record member names; returns True only when they differ."""
        if list(names) == self.members:
            return False
        self.members = list(names)
        return True

    # -----------------------------
    # Serialization
    # -----------------------------

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "phase": self.phase.value,
            "size": self.size,
            "members": {"nodes": list(self.members)},
            "currentVersion": self.current_version,
            "targetVersion": self.target_version,
        }
        if self.reason:
            data["reason"] = self.reason
        if self.conditions:
            data["conditions"] = [c.to_dict() for c in self.conditions]
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ClusterStatus":
        data = data or {}
        members = (data.get("members") or {}).get("nodes") or []
        return cls(
            phase=_phase(data.get("phase")),
            reason=data.get("reason", ""),
            conditions=[
                ClusterCondition.from_dict(c) for c in data.get("conditions") or []
            ],
            members=members,
            current_version=data.get("currentVersion", ""),
            target_version=data.get("targetVersion", ""),
        )

    def deep_copy(self) -> "ClusterStatus":
        return copy.deepcopy(self)
