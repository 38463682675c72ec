"""
Main entry point for the workflow engine.

Loads a workflow definition, runs it against the HTTP action boundary and
prints the execution result as JSON.
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from typing import Any, Optional

import structlog
from dotenv import load_dotenv

from client.http import HttpActionClient
from core.config import ConfigLoader, EngineConfig, LoggingConfig
from core.errors import ConfigError, StructuralError
from graph.model import Graph
from orchestrator.executor import WorkflowExecutor


logger = structlog.get_logger()


def configure_logging(config: LoggingConfig) -> None:
    """Configure structured logging (console by default, JSON on request)."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, config.level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if config.format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def parse_variables(pairs: list[str]) -> dict[str, Any]:
    """Parse NAME=VALUE pairs; values are read as JSON when they parse."""
    variables: dict[str, Any] = {}
    for pair in pairs:
        name, sep, raw = pair.partition("=")
        if not sep or not name:
            raise ConfigError(f"Invalid --var '{pair}', expected NAME=VALUE")
        try:
            variables[name] = json.loads(raw)
        except json.JSONDecodeError:
            variables[name] = raw
    return variables


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run browser automation workflows")
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "./config/engine.yaml"),
        help="Engine config file (YAML or JSON)",
    )
    # Also accepted after the subcommand; only overrides when given there
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=argparse.SUPPRESS, help="Engine config file (YAML or JSON)")

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", parents=[common], help="Execute a workflow")
    run.add_argument("workflow", help="Workflow definition file")
    run.add_argument("--base-url", help="Action boundary base URL")
    run.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Seed a variable before the run (repeatable)",
    )
    run.add_argument("--concurrent", action="store_true", help="Run independent ready nodes concurrently")

    validate = sub.add_parser("validate", parents=[common], help="Check a workflow's structure without running it")
    validate.add_argument("workflow", help="Workflow definition file")

    return parser


async def run_command(args: argparse.Namespace, config: EngineConfig, loader: ConfigLoader) -> int:
    definition = loader.load_workflow(args.workflow)
    graph = Graph.from_definition({"nodes": definition.nodes, "edges": definition.edges})

    if args.base_url:
        config.action_client.base_url = args.base_url.rstrip("/")
    if args.concurrent:
        config.execution.concurrent = True

    variables = dict(definition.variables)
    variables.update(parse_variables(args.var))

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("shutdown_signal_received")
        cancel_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    async with HttpActionClient(config.action_client) as client:
        executor = WorkflowExecutor(
            graph,
            client,
            config=config.execution,
            initial_variables=variables,
        )
        result = await executor.execute(cancel_event=cancel_event)

    print(json.dumps(result.to_dict(), indent=2, default=str))
    return 0 if result.success else 1


def validate_command(args: argparse.Namespace, loader: ConfigLoader) -> int:
    definition = loader.load_workflow(args.workflow)
    graph = Graph.from_definition({"nodes": definition.nodes, "edges": definition.edges})
    start_nodes = graph.start_nodes()
    if not start_nodes:
        raise StructuralError("No start nodes found in workflow")
    print(json.dumps({
        "workflow": definition.id,
        "nodes": len(graph),
        "edges": len(graph.edges),
        "start_nodes": [n.id for n in start_nodes],
    }, indent=2))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    loader = ConfigLoader()
    try:
        config = loader.load_engine_config(args.config)
    except ConfigError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 2

    configure_logging(config.logging)

    try:
        if args.command == "validate":
            return validate_command(args, loader)
        return asyncio.run(run_command(args, config, loader))
    except (ConfigError, StructuralError) as e:
        logger.error("workflow_rejected", error=e.message, error_type=e.error_type)
        print(f"error: {e.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
