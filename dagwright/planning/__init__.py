"""Task planning - turning requests into ordered task graphs.

This module provides the planning pipeline:
- Classification (request -> generation strategy)
- Graph building (templates or synthesis -> task graph)
- Sequencing (task graph -> execution order)
- Critical path analysis (execution order -> longest chain)
"""

from dagwright.planning.builder import GraphBuilder, add_synthesized_tasks
from dagwright.planning.classifier import classify
from dagwright.planning.critical_path import critical_path
from dagwright.planning.models import (
    ExecutionGraph,
    Plan,
    PlanRequest,
    PlanStrategy,
    TaskKind,
    TaskNode,
    TaskStatus,
)
from dagwright.planning.sequencer import sequence
from dagwright.planning.synthesis import (
    AnthropicSynthesizer,
    SynthesisCapability,
    SynthesisRequest,
    SynthesizedTask,
    extract_json_payload,
    parse_synthesized_tasks,
)
from dagwright.planning.templates import TemplatePlanner

__all__ = [
    # Models
    "ExecutionGraph",
    "Plan",
    "PlanRequest",
    "PlanStrategy",
    "TaskKind",
    "TaskNode",
    "TaskStatus",
    # Building
    "GraphBuilder",
    "TemplatePlanner",
    "add_synthesized_tasks",
    "classify",
    # Synthesis
    "AnthropicSynthesizer",
    "SynthesisCapability",
    "SynthesisRequest",
    "SynthesizedTask",
    "extract_json_payload",
    "parse_synthesized_tasks",
    # Ordering
    "sequence",
    "critical_path",
]
