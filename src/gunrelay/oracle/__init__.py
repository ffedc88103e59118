"""Heartbeat oracle — liveness probing, directory reads, cycle coordination."""

from gunrelay.oracle.coordinator import HeartbeatCoordinator
from gunrelay.oracle.probe import LivenessProbe

__all__ = ["HeartbeatCoordinator", "LivenessProbe"]
