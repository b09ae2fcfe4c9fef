"""
Overseer: deterministic decision layer for generative planning agents

Splits oversized work items into atomic subtasks, guards generative agent
replies with hard invariants, and derives system-health actions from state
snapshots. It never persists anything; it returns instructions.
"""

__version__ = "0.1.0"

from overseer.planning.decomposition import DecompositionEngine
from overseer.core.health import HealthMonitor

__all__ = ["DecompositionEngine", "HealthMonitor"]
