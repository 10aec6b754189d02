from pendingzero.adapters.base import TargetAdapter
from pendingzero.adapters.http import HttpMigrationAdapter
from pendingzero.adapters.simulated import SimulatedAdapter

__all__ = ["HttpMigrationAdapter", "SimulatedAdapter", "TargetAdapter"]
