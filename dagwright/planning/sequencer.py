"""Topological sequencer - turns a task graph into one execution order."""

from loguru import logger

from dagwright.core.exceptions import CircularDependency
from dagwright.planning.models import ExecutionGraph

WHITE, GRAY, BLACK = 0, 1, 2


def sequence(graph: ExecutionGraph) -> list[str]:
    """
    Order tasks so every dependency comes before its dependents.

    Depth-first traversal with three-colour marking. Roots are visited in
    insertion order and dependencies in declaration order, so independent
    tasks keep their original relative order. Dependencies that name a
    task outside the graph are ignored.

    Args:
        graph: ExecutionGraph to sequence.

    Returns:
        List of task IDs in execution order.

    Raises:
        CircularDependency: If a cycle is found; ``cycle`` holds the path,
            starting and ending on the same task.

    Example:
        >>> order = sequence(graph)
        >>> order.index("task_000") < order.index("task_001")
        True
    """
    colors: dict[str, int] = {task_id: WHITE for task_id in graph.nodes}
    order: list[str] = []

    def visit(task_id: str, path: list[str]) -> None:
        colors[task_id] = GRAY
        path.append(task_id)

        for dep in graph.nodes[task_id].dependencies:
            if dep not in colors:
                continue
            if colors[dep] == GRAY:
                cycle = path[path.index(dep):] + [dep]
                logger.error(f"Cycle found while sequencing: {' -> '.join(cycle)}")
                raise CircularDependency(cycle)
            if colors[dep] == WHITE:
                visit(dep, path)

        path.pop()
        colors[task_id] = BLACK
        order.append(task_id)

    for task_id in graph.nodes:
        if colors[task_id] == WHITE:
            visit(task_id, [])

    logger.debug(f"Sequenced {len(order)} tasks: {order}")
    return order
