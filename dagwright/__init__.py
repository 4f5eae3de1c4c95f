"""
Dagwright - task-graph planning and supervised execution.

Turns an engineering request into a dependency graph of atomic tasks,
runs them in order, verifies each one and re-plans when a step fails.
"""

__version__ = "0.1.0"
__author__ = "Dagwright Team"

from dagwright.core.orchestrator import Dagwright

__all__ = ["Dagwright", "__version__"]
