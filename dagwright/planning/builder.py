"""Graph builder - turns a plan request into an execution graph.

Recognisable requests are expanded by deterministic templates; complex
or open-ended ones are delegated to the synthesis capability and the
returned entries are renamed and re-validated against the new graph.
"""

import asyncio

from loguru import logger

from dagwright.core.exceptions import PlanningFailed, UnknownTaskKind
from dagwright.planning.classifier import classify
from dagwright.planning.models import (
    ExecutionGraph,
    PlanRequest,
    PlanStrategy,
    TaskKind,
    TaskNode,
)
from dagwright.planning.synthesis import (
    SynthesisCapability,
    SynthesisRequest,
    SynthesizedTask,
    extract_json_payload,
    parse_synthesized_tasks,
)
from dagwright.planning.templates import TemplatePlanner


class GraphBuilder:
    """
    Build execution graphs from plan requests.

    Attributes:
        synthesizer: Optional synthesis capability. Without one, requests
            that would need synthesis get the generic phased template.
        synthesis_timeout: Timeout for one synthesis call in seconds.

    Example:
        >>> builder = GraphBuilder()
        >>> graph = await builder.build_graph(
        ...     PlanRequest(query="git pull then npm install")
        ... )
        >>> list(graph.nodes)
        ['task_000', 'task_001']
    """

    def __init__(
        self,
        synthesizer: SynthesisCapability | None = None,
        synthesis_timeout: float = 120,
        templates: TemplatePlanner | None = None,
    ):
        self.synthesizer = synthesizer
        self.synthesis_timeout = synthesis_timeout
        self.templates = templates or TemplatePlanner()

    async def build_graph(
        self,
        request: PlanRequest,
        scope: str = "",
        depth: int = 0,
        parent_task_id: str | None = None,
    ) -> ExecutionGraph:
        """
        Build a graph for one request.

        Args:
            request: The plan request.
            scope: ID prefix for the new graph's tasks.
            depth: Recovery nesting level recorded on the graph.
            parent_task_id: Failed task a recovery graph is planned for.

        Returns:
            ExecutionGraph with at least one task.

        Raises:
            PlanningFailed: If no tasks were produced or synthesis output
                could not be used.
        """
        strategy = classify(request)
        graph = ExecutionGraph(
            scope=scope,
            depth=depth,
            parent_task_id=parent_task_id,
            strategy=strategy,
        )

        if strategy.uses_synthesis and self.synthesizer is not None:
            logger.info(f"Planning via synthesis ({strategy.value})")
            await self._synthesize_into(graph, request, strategy)
        else:
            logger.info(f"Planning via template ({strategy.value})")
            self.templates.expand(strategy, request, graph)

        if len(graph) == 0:
            raise PlanningFailed(f"No tasks generated for request: {request.query[:100]}")

        logger.info(f"Built graph with {len(graph)} tasks (scope={scope!r})")
        return graph

    async def _synthesize_into(
        self,
        graph: ExecutionGraph,
        request: PlanRequest,
        strategy: PlanStrategy,
    ) -> None:
        """Call the synthesis capability and add its tasks to ``graph``."""
        synthesis_request = SynthesisRequest(
            query=request.query,
            project_context=request.summary(),
            strategy=strategy,
        )

        try:
            text = await asyncio.wait_for(
                self.synthesizer.synthesize(synthesis_request),
                timeout=self.synthesis_timeout,
            )
        except TimeoutError as e:
            raise PlanningFailed(
                f"Plan synthesis timed out after {self.synthesis_timeout}s"
            ) from e
        except Exception as e:
            logger.error(f"Plan synthesis failed: {e}")
            raise PlanningFailed(f"Plan synthesis failed: {e}") from e

        payload = extract_json_payload(text or "")
        if payload is None:
            raise PlanningFailed("Synthesis output contained no parseable JSON")

        entries = parse_synthesized_tasks(payload)
        add_synthesized_tasks(graph, entries, request.known_files)


def add_synthesized_tasks(
    graph: ExecutionGraph,
    entries: list[SynthesizedTask],
    known_files: list[str] | None = None,
) -> list[TaskNode]:
    """
    Rename synthesized entries to fresh graph IDs and add them to ``graph``.

    Dependencies are re-mapped through the renaming. References to IDs
    that do not exist in the batch and self references are dropped,
    duplicate references collapsed. When two entries share an ID,
    references resolve to the first of them. Entries with an unknown
    type are dropped.

    Args:
        graph: Graph receiving the nodes.
        entries: Validated entries from ``parse_synthesized_tasks``.
        known_files: Files known to exist, used to tell generate from modify.

    Returns:
        The nodes that were added, in entry order.
    """
    known = set(known_files or [])

    kept: list[tuple[SynthesizedTask, TaskKind]] = []
    for entry in entries:
        try:
            kind = TaskKind.parse(entry.type, file_exists=entry.file_path in known)
        except UnknownTaskKind as e:
            logger.warning(f"Dropping synthesized task {entry.id!r}: {e}")
            continue
        kept.append((entry, kind))

    fresh_ids = [graph.next_id() for _ in kept]
    renamed: dict[str, str] = {}
    for (entry, _), fresh in zip(kept, fresh_ids, strict=True):
        if entry.id is not None and entry.id not in renamed:
            renamed[entry.id] = fresh

    added: list[TaskNode] = []
    for (entry, kind), fresh in zip(kept, fresh_ids, strict=True):
        deps: list[str] = []
        for dep in entry.dependencies:
            mapped = renamed.get(dep)
            if mapped is None:
                logger.warning(f"Task {fresh} drops unknown dependency {dep!r}")
                continue
            if mapped == fresh or mapped in deps:
                continue
            deps.append(mapped)

        added.append(
            graph.add_node(
                TaskNode(
                    id=fresh,
                    description=entry.description,
                    type=kind,
                    file_path=entry.file_path,
                    command=entry.command,
                    dependencies=deps,
                    validation_command=entry.validation_command,
                )
            )
        )

    logger.debug(f"Added {len(added)} synthesized tasks ({len(entries) - len(kept)} dropped)")
    return added
