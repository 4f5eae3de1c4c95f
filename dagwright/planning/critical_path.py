"""Critical path analysis - the longest dependency chain of a plan.

The result is advisory: it is reported alongside the execution order and
never consulted when deciding what to run.
"""

from dagwright.planning.models import ExecutionGraph


def compute_depths(
    graph: ExecutionGraph,
    order: list[str],
) -> tuple[dict[str, int], dict[str, str]]:
    """
    Compute each task's depth and the predecessor that produced it.

    Depth is 0 for tasks without in-graph dependencies and otherwise
    1 + the largest depth among its dependencies. ``order`` must be a
    valid execution order so dependencies are settled first.

    Returns:
        Tuple of (depth per task ID, predecessor per task ID).
    """
    depths: dict[str, int] = {task_id: 0 for task_id in order}
    predecessors: dict[str, str] = {}

    for task_id in order:
        node = graph.get(task_id)
        if node is None:
            continue
        for dep in node.dependencies:
            if dep not in depths:
                continue
            candidate = depths[dep] + 1
            if candidate > depths[task_id]:
                depths[task_id] = candidate
                predecessors[task_id] = dep

    return depths, predecessors


def critical_path(graph: ExecutionGraph, order: list[str]) -> list[str]:
    """
    Find the longest dependency chain, measured in edges.

    Ties for the deepest task go to the first one in execution order.

    Args:
        graph: ExecutionGraph the order was computed from.
        order: Execution order from the sequencer.

    Returns:
        Task IDs from a root to the deepest task; empty for an empty order.

    Example:
        >>> critical_path(graph, ["a", "b", "c"])  # b and c depend on a
        ['a', 'b']
    """
    if not order:
        return []

    depths, predecessors = compute_depths(graph, order)

    end = order[0]
    for task_id in order:
        if depths[task_id] > depths[end]:
            end = task_id

    path = [end]
    while path[-1] in predecessors:
        path.append(predecessors[path[-1]])

    return list(reversed(path))
