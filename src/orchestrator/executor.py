"""Workflow executor: worklist traversal of a workflow graph."""

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import structlog

from client.base import ActionClient
from core.config import ExecutionConfig
from core.errors import ConfigError, ExecutionCancelled, StructuralError
from graph.model import Graph, Node
from graph.variables import ExecutionContext
from nodes.dispatcher import NodeDispatcher
from nodes.types import NodeExecutionResult

logger = structlog.get_logger()


class StepStatus(Enum):
    """Per-node execution status."""
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ExecutionStep:
    """Trace entry for one executed node."""
    node_id: str
    node_type: str
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "node_type": self.node_type,
            "status": self.status.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "error": self.error,
        }


@dataclass
class WorkflowExecutionResult:
    """Outcome of a workflow run."""
    success: bool
    node_results: dict[str, NodeExecutionResult] = field(default_factory=dict)
    error: Optional[str] = None
    error_type: Optional[str] = None
    cancelled: bool = False
    variables: dict[str, Any] = field(default_factory=dict)
    steps: list[ExecutionStep] = field(default_factory=list)
    duration_ms: float = 0
    run_id: Optional[str] = None

    @property
    def failed_nodes(self) -> list[str]:
        return [node_id for node_id, r in self.node_results.items() if not r.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "success": self.success,
            "error": self.error,
            "error_type": self.error_type,
            "cancelled": self.cancelled,
            "node_results": {k: v.to_dict() for k, v in self.node_results.items()},
            "variables": self.variables,
            "steps": [s.to_dict() for s in self.steps],
            "duration_ms": round(self.duration_ms, 2),
        }


class WorkflowExecutor:
    """
    Drives a workflow graph to completion.

    Traversal:
    - seed a FIFO queue with the graph's start nodes
    - pop a node; skip it if already executed
    - dispatch it, record its result, commit its variable writes
    - on success enqueue the targets of its selected outgoing edges
      ("true"/"false" handles follow outputs.success, anything else always)
    - on failure enqueue nothing; other branches keep running

    Run success is the AND over every recorded result. execute() never
    raises; structural problems and cancellation come back as a failed
    WorkflowExecutionResult.

    With ExecutionConfig.concurrent the queue is processed in waves: every
    node queued at the start of a wave runs concurrently (bounded by
    max_concurrency), then results are recorded, variable writes committed
    and successors enqueued in queue order.
    """

    def __init__(
        self,
        graph: Graph,
        client: ActionClient,
        dispatcher: Optional[NodeDispatcher] = None,
        config: Optional[ExecutionConfig] = None,
        initial_variables: Optional[dict[str, Any]] = None,
    ):
        self.graph = graph
        self.client = client
        self.dispatcher = dispatcher or NodeDispatcher(client)
        self.config = config or ExecutionConfig()
        self.initial_variables = dict(initial_variables or {})

        # Context of the most recent run
        self.context: Optional[ExecutionContext] = None

    async def execute(self, cancel_event: Optional[asyncio.Event] = None) -> WorkflowExecutionResult:
        """
        Run the workflow once.

        Args:
            cancel_event: When set, the run stops before the next node and
                the in-flight action call is cancelled

        Returns:
            WorkflowExecutionResult with per-node results and the final
            variable snapshot
        """
        start_time = time.monotonic()
        run_id = str(uuid.uuid4())
        log = logger.bind(run_id=run_id)

        context = ExecutionContext(run_id=run_id)
        for name, value in self.initial_variables.items():
            context.set(name, value)
        self.context = context

        results: dict[str, NodeExecutionResult] = {}
        steps: list[ExecutionStep] = []

        def finish(
            success: bool,
            error: Optional[str] = None,
            error_type: Optional[str] = None,
            cancelled: bool = False,
        ) -> WorkflowExecutionResult:
            return WorkflowExecutionResult(
                success=success,
                node_results=results,
                error=error,
                error_type=error_type,
                cancelled=cancelled,
                variables=context.variables,
                steps=steps,
                duration_ms=(time.monotonic() - start_time) * 1000,
                run_id=run_id,
            )

        start_nodes = self.graph.start_nodes()
        if not start_nodes:
            error = StructuralError("No start nodes found in workflow")
            log.error("workflow_invalid", error=error.message)
            return finish(False, error.message, error.error_type)

        log.info(
            "workflow_started",
            nodes=len(self.graph),
            start_nodes=[n.id for n in start_nodes],
            concurrent=self.config.concurrent,
        )

        try:
            if self.config.concurrent:
                await self._run_waves(start_nodes, context, results, steps, cancel_event)
            else:
                await self._run_sequential(start_nodes, context, results, steps, cancel_event)

        except ExecutionCancelled as e:
            log.warning("workflow_cancelled", executed=len(results))
            return finish(False, e.message, e.error_type, cancelled=True)

        except Exception as e:
            log.exception("workflow_error")
            return finish(False, str(e) or "Workflow execution failed", "error")

        success = bool(results) and all(r.success for r in results.values())
        result = finish(success)
        log.info(
            "workflow_completed",
            success=success,
            executed=len(results),
            failed=result.failed_nodes,
            duration_ms=round(result.duration_ms, 2),
        )
        return result

    def next_nodes(self, node: Node, result: NodeExecutionResult) -> list[Node]:
        """Targets of the outgoing edges selected by a successful result."""
        branch = result.outputs.get("success")
        targets = []
        for edge in self.graph.outgoing_edges(node.id):
            if edge.source_handle == "true" and branch is not True:
                continue
            if edge.source_handle == "false" and branch is not False:
                continue
            target = self.graph.get_node(edge.target)
            if target is not None:
                targets.append(target)
        return targets

    async def _run_sequential(
        self,
        start_nodes: list[Node],
        context: ExecutionContext,
        results: dict[str, NodeExecutionResult],
        steps: list[ExecutionStep],
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        queue: deque[Node] = deque(start_nodes)

        while queue:
            self._check_cancelled(cancel_event)
            node = queue.popleft()
            if node.id in results:
                continue

            result, step = await self._run_node(node, context, cancel_event)
            self._record(node, result, step, context, results, steps)
            if result.success:
                queue.extend(self.next_nodes(node, result))

    async def _run_waves(
        self,
        start_nodes: list[Node],
        context: ExecutionContext,
        results: dict[str, NodeExecutionResult],
        steps: list[ExecutionStep],
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        queue: list[Node] = list(start_nodes)

        async def run(node: Node) -> tuple[NodeExecutionResult, ExecutionStep]:
            async with semaphore:
                self._check_cancelled(cancel_event)
                return await self._run_node(node, context, cancel_event)

        while queue:
            self._check_cancelled(cancel_event)

            wave: list[Node] = []
            queued: set[str] = set()
            for node in queue:
                if node.id not in results and node.id not in queued:
                    wave.append(node)
                    queued.add(node.id)
            queue = []

            outcomes = await asyncio.gather(
                *(run(node) for node in wave),
                return_exceptions=True,
            )

            cancelled: Optional[ExecutionCancelled] = None
            for node, outcome in zip(wave, outcomes):
                if isinstance(outcome, ExecutionCancelled):
                    cancelled = outcome
                    continue
                if isinstance(outcome, BaseException):
                    raise outcome
                result, step = outcome
                self._record(node, result, step, context, results, steps)
                if result.success:
                    queue.extend(self.next_nodes(node, result))

            if cancelled is not None:
                raise cancelled

    async def _run_node(
        self,
        node: Node,
        context: ExecutionContext,
        cancel_event: Optional[asyncio.Event],
    ) -> tuple[NodeExecutionResult, ExecutionStep]:
        step = ExecutionStep(
            node_id=node.id,
            node_type=node.type,
            status=StepStatus.EXECUTING,
            started_at=time.time(),
        )
        logger.info("node_started", run_id=context.run_id, node_id=node.id, node_type=node.type)

        if cancel_event is None:
            result = await self.dispatcher.dispatch(node, context)
        else:
            result = await self._dispatch_cancellable(node, context, cancel_event)

        step.finished_at = time.time()
        step.status = StepStatus.COMPLETED if result.success else StepStatus.FAILED
        step.error = result.error
        return result, step

    async def _dispatch_cancellable(
        self,
        node: Node,
        context: ExecutionContext,
        cancel_event: asyncio.Event,
    ) -> NodeExecutionResult:
        """Race the dispatch against the cancel signal."""
        dispatch_task = asyncio.ensure_future(self.dispatcher.dispatch(node, context))
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {dispatch_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if dispatch_task in done:
                return dispatch_task.result()
        finally:
            cancel_task.cancel()
            if not dispatch_task.done():
                dispatch_task.cancel()
                await asyncio.gather(dispatch_task, return_exceptions=True)

        logger.info("node_cancelled", run_id=context.run_id, node_id=node.id)
        raise ExecutionCancelled()

    def _record(
        self,
        node: Node,
        result: NodeExecutionResult,
        step: ExecutionStep,
        context: ExecutionContext,
        results: dict[str, NodeExecutionResult],
        steps: list[ExecutionStep],
    ) -> None:
        results[node.id] = result
        steps.append(step)
        self.dispatcher.commit(node, result, context)
        logger.info(
            "node_completed" if result.success else "node_failed",
            run_id=context.run_id,
            node_id=node.id,
            node_type=node.type,
            success=result.success,
            error=result.error,
            duration_ms=round(result.duration_ms, 2),
        )

    def _check_cancelled(self, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ExecutionCancelled()


async def run_workflow(
    definition: dict[str, Any],
    client: ActionClient,
    config: Optional[ExecutionConfig] = None,
    initial_variables: Optional[dict[str, Any]] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> WorkflowExecutionResult:
    """
    Build a graph from a raw definition and execute it.

    Structural problems in the definition (dangling edges, duplicate ids)
    are reported as a failed result rather than raised.
    """
    try:
        graph = Graph.from_definition(definition)
    except (StructuralError, ConfigError) as e:
        logger.error("workflow_invalid", error=e.message)
        return WorkflowExecutionResult(success=False, error=e.message, error_type=e.error_type)

    variables = dict(definition.get("variables") or {})
    variables.update(initial_variables or {})
    executor = WorkflowExecutor(
        graph,
        client,
        config=config,
        initial_variables=variables,
    )
    return await executor.execute(cancel_event=cancel_event)
