"""Tests for workflow execution."""

import asyncio
import json
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from client.local import LocalActionClient
from core.config import ConfigLoader, ExecutionConfig
from graph.model import Graph, Node, Edge
from orchestrator.executor import WorkflowExecutor, StepStatus, run_workflow
import main


WORKFLOW_PATH = os.path.join(
    os.path.dirname(__file__), '..', 'config', 'workflows', 'search_and_extract.yaml'
)


def ok(**fields):
    async def handler(payload):
        return {"success": True, **fields}
    return handler


def fail(message):
    async def handler(payload):
        return {"success": False, "error": message}
    return handler


def clicks(*ids):
    return [Node(node_id, "click", {"selector": f"#{node_id}"}) for node_id in ids]


class TestTraversal:
    """Test queue order, branching and deduplication."""

    @pytest.mark.asyncio
    async def test_branch_true_skips_false_side(self):
        """openUrl -> condition -> (true) extract / (false) click."""
        graph = Graph.build(
            [
                Node("A", "openUrl", {"url": "https://example.com"}),
                Node("B", "condition", {"selector": ".results", "condition": "exists"}),
                Node("C", "extract", {"selector": "h1", "extractType": "text", "variableName": "title"}),
                Node("D", "click", {"selector": "#retry"}),
            ],
            [
                Edge("e1", "A", "B"),
                Edge("e2", "B", "C", source_handle="true"),
                Edge("e3", "B", "D", source_handle="false"),
            ],
        )
        client = LocalActionClient({
            "openUrl": ok(pageTitle="Example", pageUrl="https://example.com/"),
            "condition": ok(conditionMet=True),
            "extract": ok(value="Hello"),
            "click": ok(),
        })

        result = await WorkflowExecutor(graph, client).execute()

        assert result.success is True
        assert list(result.node_results) == ["A", "B", "C"]
        assert result.variables == {"title": "Hello"}
        assert [call[0] for call in client.calls] == ["openUrl", "condition", "extract"]

    @pytest.mark.asyncio
    async def test_branch_false(self):
        graph = Graph.build(
            [
                Node("B", "condition", {"selector": ".results", "condition": "exists"}),
                Node("C", "click", {"selector": "#next"}),
                Node("D", "click", {"selector": "#retry"}),
            ],
            [
                Edge("e2", "B", "C", source_handle="true"),
                Edge("e3", "B", "D", source_handle="false"),
            ],
        )
        client = LocalActionClient({"condition": ok(conditionMet=False), "click": ok()})

        result = await WorkflowExecutor(graph, client).execute()

        assert result.success is True
        assert list(result.node_results) == ["B", "D"]

    @pytest.mark.asyncio
    async def test_plain_handles_always_followed(self):
        """Handles other than true/false do not gate on the outcome."""
        graph = Graph.build(
            [Node("B", "condition", {"selector": "x", "condition": "exists"}), *clicks("C")],
            [Edge("e1", "B", "C", source_handle="output")],
        )
        client = LocalActionClient({"condition": ok(conditionMet=False), "click": ok()})

        result = await WorkflowExecutor(graph, client).execute()

        assert list(result.node_results) == ["B", "C"]

    @pytest.mark.asyncio
    async def test_breadth_first_order(self):
        graph = Graph.build(
            clicks("a", "b", "c", "d", "e"),
            [
                Edge("e1", "a", "b"),
                Edge("e2", "a", "c"),
                Edge("e3", "b", "d"),
                Edge("e4", "c", "e"),
            ],
        )
        client = LocalActionClient({"click": ok()})

        result = await WorkflowExecutor(graph, client).execute()

        assert list(result.node_results) == ["a", "b", "c", "d", "e"]

    @pytest.mark.asyncio
    async def test_diamond_runs_join_once(self):
        """A node reachable twice executes once."""
        graph = Graph.build(
            clicks("a", "b", "c", "d"),
            [
                Edge("e1", "a", "b"),
                Edge("e2", "a", "c"),
                Edge("e3", "b", "d"),
                Edge("e4", "c", "d"),
            ],
        )
        client = LocalActionClient({"click": ok()})

        result = await WorkflowExecutor(graph, client).execute()

        assert list(result.node_results) == ["a", "b", "c", "d"]
        assert len(client.calls) == 4

    @pytest.mark.asyncio
    async def test_cycle_terminates(self):
        graph = Graph.build(
            clicks("start", "a", "b"),
            [Edge("e0", "start", "a"), Edge("e1", "a", "b"), Edge("e2", "b", "a")],
        )
        client = LocalActionClient({"click": ok()})

        result = await WorkflowExecutor(graph, client).execute()

        assert result.success is True
        assert list(result.node_results) == ["start", "a", "b"]

    @pytest.mark.asyncio
    async def test_multiple_start_nodes(self):
        graph = Graph.build(clicks("a", "b"), [])
        client = LocalActionClient({"click": ok()})

        result = await WorkflowExecutor(graph, client).execute()

        assert list(result.node_results) == ["a", "b"]


class TestFailures:
    """Test failure isolation and run outcome."""

    @pytest.mark.asyncio
    async def test_failed_node_blocks_downstream(self):
        """Successors of a failed node never run; independent branches do."""
        graph = Graph.build(
            [
                Node("open", "openUrl", {"url": "https://example.com"}),
                Node("bad", "click", {"selector": "#gone"}),
                Node("after_bad", "click", {"selector": "#next"}),
                Node("other", "submit", {"selector": "form"}),
            ],
            [
                Edge("e1", "open", "bad"),
                Edge("e2", "bad", "after_bad"),
                Edge("e3", "open", "other"),
            ],
        )
        client = LocalActionClient({
            "openUrl": ok(),
            "click": fail("Element #gone not found"),
            "submit": ok(),
        })

        result = await WorkflowExecutor(graph, client).execute()

        assert result.success is False
        assert list(result.node_results) == ["open", "bad", "other"]
        assert result.failed_nodes == ["bad"]
        assert result.node_results["bad"].error == "Element #gone not found"
        assert result.node_results["bad"].error_type == "action_failure"

    @pytest.mark.asyncio
    async def test_single_failed_node(self):
        graph = Graph.build(clicks("a"), [])
        client = LocalActionClient({"click": fail("nope")})

        result = await WorkflowExecutor(graph, client).execute()

        assert result.success is False
        assert result.node_results["a"].success is False

    @pytest.mark.asyncio
    async def test_unknown_node_type_fails_node(self):
        graph = Graph.build([Node("x", "hover", {})], [])

        result = await WorkflowExecutor(graph, LocalActionClient()).execute()

        assert result.success is False
        assert result.node_results["x"].error_type == "unknown_node_type"

    @pytest.mark.asyncio
    async def test_no_start_nodes(self):
        """A graph with every node targeted is a structural error."""
        graph = Graph.build(clicks("a", "b"), [Edge("e1", "a", "b"), Edge("e2", "b", "a")])
        client = LocalActionClient({"click": ok()})

        result = await WorkflowExecutor(graph, client).execute()

        assert result.success is False
        assert result.error == "No start nodes found in workflow"
        assert result.error_type == "structural"
        assert result.node_results == {}
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_empty_graph(self):
        result = await WorkflowExecutor(Graph.build([], []), LocalActionClient()).execute()

        assert result.success is False
        assert result.node_results == {}

    @pytest.mark.asyncio
    async def test_run_workflow_dangling_edge(self):
        result = await run_workflow(
            {
                "nodes": [{"id": "a", "type": "click", "data": {"selector": "#a"}}],
                "edges": [{"id": "e1", "source": "a", "target": "ghost"}],
            },
            LocalActionClient(),
        )

        assert result.success is False
        assert result.error_type == "structural"
        assert result.node_results == {}


class TestVariables:
    """Test variable flow between nodes."""

    @pytest.mark.asyncio
    async def test_extract_feeds_later_input(self):
        graph = Graph.build(
            [
                Node("grab", "extract", {"selector": "#code", "extractType": "text", "variableName": "code"}),
                Node("type", "input", {"selector": "#confirm", "value": "code=${code}"}),
            ],
            [Edge("e1", "grab", "type")],
        )
        client = LocalActionClient({"extract": ok(value="X-42"), "input": ok()})

        result = await WorkflowExecutor(graph, client).execute()

        assert result.success is True
        assert client.calls[1][1]["value"] == "code=X-42"
        assert result.variables["code"] == "X-42"

    @pytest.mark.asyncio
    async def test_initial_variables_seed_each_run(self):
        graph = Graph.build(
            [Node("set", "variable", {"name": "user", "value": "bob", "scope": "local"})],
            [],
        )
        executor = WorkflowExecutor(graph, LocalActionClient(), initial_variables={"user": "alice"})

        first = await executor.execute()
        second = await executor.execute()

        assert first.variables == {"user": "bob"}
        assert second.variables == {"user": "bob"}
        assert first.run_id != second.run_id

    @pytest.mark.asyncio
    async def test_run_workflow_merges_definition_variables(self):
        client = LocalActionClient({"input": ok()})
        result = await run_workflow(
            {
                "variables": {"user": "alice", "domain": "example.com"},
                "nodes": [{"id": "i", "type": "input", "data": {"selector": "#u", "value": "${user}@${domain}"}}],
            },
            client,
            initial_variables={"user": "carol"},
        )

        assert result.success is True
        assert client.calls[0][1]["value"] == "carol@example.com"


class TestCancellation:
    """Test cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        cancel = asyncio.Event()
        cancel.set()
        client = LocalActionClient({"click": ok()})

        result = await WorkflowExecutor(Graph.build(clicks("a"), []), client).execute(cancel_event=cancel)

        assert result.success is False
        assert result.cancelled is True
        assert result.error_type == "cancelled"
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_cancel_in_flight_call(self):
        """The pending action call is abandoned and nothing after it runs."""
        started = asyncio.Event()

        async def hang(payload):
            started.set()
            await asyncio.sleep(30)
            return {"success": True}

        client = LocalActionClient({"openUrl": ok(), "click": hang, "submit": ok()})
        graph = Graph.build(
            [Node("open", "openUrl", {"url": "https://example.com"}), *clicks("slow"),
             Node("send", "submit", {"selector": "form"})],
            [Edge("e1", "open", "slow"), Edge("e2", "slow", "send")],
        )
        cancel = asyncio.Event()

        task = asyncio.create_task(WorkflowExecutor(graph, client).execute(cancel_event=cancel))
        await asyncio.wait_for(started.wait(), timeout=5)
        cancel.set()
        result = await asyncio.wait_for(task, timeout=5)

        assert result.cancelled is True
        assert list(result.node_results) == ["open"]
        assert [call[0] for call in client.calls] == ["openUrl", "click"]

    @pytest.mark.asyncio
    async def test_cancel_concurrent_wave(self):
        started = asyncio.Event()

        async def hang(payload):
            started.set()
            await asyncio.sleep(30)
            return {"success": True}

        client = LocalActionClient({"click": hang})
        executor = WorkflowExecutor(
            Graph.build(clicks("a", "b"), []),
            client,
            config=ExecutionConfig(concurrent=True),
        )
        cancel = asyncio.Event()

        task = asyncio.create_task(executor.execute(cancel_event=cancel))
        await asyncio.wait_for(started.wait(), timeout=5)
        cancel.set()
        result = await asyncio.wait_for(task, timeout=5)

        assert result.cancelled is True
        assert result.node_results == {}


class TestConcurrentExecution:
    """Test wave-based concurrent execution."""

    @pytest.mark.asyncio
    async def test_results_recorded_in_queue_order(self):
        """Completion order does not change recorded order or writes."""
        async def slow_extract(payload):
            await asyncio.sleep(0.05)
            return {"success": True, "value": payload["selector"]}

        async def fast_extract(payload):
            return {"success": True, "value": payload["selector"]}

        async def extract(payload):
            if payload["selector"] == "#slow":
                return await slow_extract(payload)
            return await fast_extract(payload)

        graph = Graph.build(
            [
                Node("root", "openUrl", {"url": "https://example.com"}),
                Node("slow", "extract", {"selector": "#slow", "extractType": "text", "variableName": "v"}),
                Node("fast", "extract", {"selector": "#fast", "extractType": "text", "variableName": "v"}),
                Node("join", "input", {"selector": "#out", "value": "${v}"}),
            ],
            [
                Edge("e1", "root", "slow"),
                Edge("e2", "root", "fast"),
                Edge("e3", "slow", "join"),
                Edge("e4", "fast", "join"),
            ],
        )
        client = LocalActionClient({"openUrl": ok(), "extract": extract, "input": ok()})

        result = await WorkflowExecutor(
            graph, client, config=ExecutionConfig(concurrent=True, max_concurrency=4)
        ).execute()

        assert result.success is True
        assert list(result.node_results) == ["root", "slow", "fast", "join"]
        assert [s.node_id for s in result.steps] == ["root", "slow", "fast", "join"]
        # Later queue entry wins the write, as in sequential mode
        assert result.variables["v"] == "#fast"
        assert client.calls[-1][1]["value"] == "#fast"

    @pytest.mark.asyncio
    async def test_matches_sequential_outcome(self):
        graph = Graph.build(
            clicks("a", "b", "c", "d"),
            [Edge("e1", "a", "b"), Edge("e2", "a", "c"), Edge("e3", "c", "d")],
        )
        sequential = await WorkflowExecutor(graph, LocalActionClient({"click": ok()})).execute()
        concurrent = await WorkflowExecutor(
            graph,
            LocalActionClient({"click": ok()}),
            config=ExecutionConfig(concurrent=True, max_concurrency=1),
        ).execute()

        assert list(concurrent.node_results) == list(sequential.node_results)
        assert concurrent.success == sequential.success


class TestExecutionTrace:
    """Test the steps trace and result serialization."""

    @pytest.mark.asyncio
    async def test_steps(self):
        graph = Graph.build(clicks("a", "b"), [Edge("e1", "a", "b")])
        client = LocalActionClient({"click": fail("blocked")})

        result = await WorkflowExecutor(graph, client).execute()

        assert len(result.steps) == 1
        step = result.steps[0]
        assert step.node_id == "a"
        assert step.status is StepStatus.FAILED
        assert step.error == "blocked"
        assert step.finished_at >= step.started_at

    @pytest.mark.asyncio
    async def test_to_dict_is_json_ready(self):
        graph = Graph.build(clicks("a"), [])
        result = await WorkflowExecutor(graph, LocalActionClient({"click": ok()})).execute()

        data = json.loads(json.dumps(result.to_dict()))
        assert data["success"] is True
        assert data["node_results"]["a"]["outputs"] == {"success": True}
        assert data["steps"][0]["status"] == "completed"


class TestSampleWorkflow:
    """Test the bundled sample workflow end to end."""

    @pytest.mark.asyncio
    async def test_search_and_extract(self):
        definition = ConfigLoader().load_workflow(WORKFLOW_PATH)
        client = LocalActionClient({
            "openUrl": ok(pageTitle="Search", pageUrl="https://duckduckgo.com/"),
            "input": ok(),
            "submit": ok(),
            "condition": ok(conditionMet=True),
            "extract": ok(value="Playwright for Python"),
            "wait": ok(),
        })

        result = await run_workflow(
            {"nodes": definition.nodes, "edges": definition.edges, "variables": definition.variables},
            client,
        )

        assert result.success is True
        assert "wait_retry" not in result.node_results
        assert client.calls[1][1]["value"] == "playwright python"
        assert result.variables["summary"] == "Top hit for playwright python: Playwright for Python"

    def test_cli_validate(self, capsys, tmp_path):
        code = main.main(["--config", str(tmp_path / "absent.yaml"), "validate", WORKFLOW_PATH])

        assert code == 0
        report = json.loads(capsys.readouterr().out)
        assert report["workflow"] == "search_and_extract"
        assert report["start_nodes"] == ["open"]

    def test_cli_rejects_dangling_edge(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text(json.dumps({
            "nodes": [{"id": "a", "type": "click", "data": {"selector": "#a"}}],
            "edges": [{"source": "a", "target": "ghost"}],
        }))

        code = main.main(["validate", str(path), "--config", str(tmp_path / "absent.yaml")])

        assert code == 2

    def test_parse_variables(self):
        assert main.parse_variables(["n=3", "name=alice", 'ids=[1, 2]']) == {
            "n": 3,
            "name": "alice",
            "ids": [1, 2],
        }
