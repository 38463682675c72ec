"""Configuration loading and validation."""

import os
import json
import hashlib
from pathlib import Path
from typing import Any, Optional
from dataclasses import dataclass, field

import yaml
from pydantic import BaseModel, Field, field_validator
import jsonschema

from .errors import ConfigError


class ActionClientConfig(BaseModel):
    """Action boundary transport configuration."""
    base_url: str = Field(default="http://localhost:3000")
    endpoint_prefix: str = Field(default="/api/workflow/execute")
    headers: dict[str, str] = Field(default_factory=dict)
    default_timeout_seconds: float = Field(default=30.0, gt=0)
    timeout_grace_seconds: float = Field(default=5.0, ge=0)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("endpoint_prefix")
    @classmethod
    def _normalize_prefix(cls, value: str) -> str:
        value = value.strip("/")
        return f"/{value}" if value else ""


class ExecutionConfig(BaseModel):
    """Scheduler configuration."""
    concurrent: bool = Field(default=False)
    max_concurrency: int = Field(default=4, ge=1, le=64)


class LoggingConfig(BaseModel):
    """Structured logging configuration."""
    level: str = Field(default="info")
    format: str = Field(default="console")

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "json"):
            raise ValueError(f"Unsupported log format: {value}")
        return value


class EngineConfig(BaseModel):
    """Main engine configuration."""
    name: str = Field(default="browser-workflow-engine")
    version: str = Field(default="0.1.0")

    action_client: ActionClientConfig = Field(default_factory=ActionClientConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def config_hash(self) -> str:
        """Generate hash of config for change detection."""
        return hashlib.sha256(
            self.model_dump_json().encode()
        ).hexdigest()[:16]


WORKFLOW_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["nodes"],
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string"},
        "description": {"type": "string"},
        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "type"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "type": {"type": "string", "minLength": 1},
                    "data": {"type": "object"},
                },
            },
        },
        "edges": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["source", "target"],
                "properties": {
                    "id": {"type": "string"},
                    "source": {"type": "string"},
                    "target": {"type": "string"},
                    "sourceHandle": {"type": ["string", "null"]},
                    "targetHandle": {"type": ["string", "null"]},
                    "kind": {"enum": ["default", "success", "failure", "data"]},
                },
            },
        },
        "variables": {"type": "object"},
    },
}


@dataclass
class WorkflowDefinition:
    """A workflow definition as authored in the editor (nodes + edges)."""
    id: str
    name: str
    description: str = ""

    nodes: list[dict[str, Any]] = field(default_factory=list)
    edges: list[dict[str, Any]] = field(default_factory=list)

    # Values seeded into the variable store before the first node runs
    variables: dict[str, Any] = field(default_factory=dict)

    config_hash: str = ""

    def __post_init__(self):
        if not self.config_hash:
            self.config_hash = self._compute_hash()

    def _compute_hash(self) -> str:
        content = json.dumps({"nodes": self.nodes, "edges": self.edges}, sort_keys=True)
        return hashlib.sha256(content.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: Optional[str] = None) -> "WorkflowDefinition":
        """Validate raw definition data and build a WorkflowDefinition."""
        try:
            jsonschema.validate(instance=data, schema=WORKFLOW_SCHEMA)
        except jsonschema.ValidationError as e:
            location = "/".join(str(p) for p in e.absolute_path) or "<root>"
            raise ConfigError(
                f"Invalid workflow definition at {location}: {e.message}",
                config_path=source,
            )

        default_id = Path(source).stem if source else "workflow"
        workflow_id = data.get("id", default_id)
        return cls(
            id=workflow_id,
            name=data.get("name", workflow_id),
            description=data.get("description", ""),
            nodes=data["nodes"],
            edges=data.get("edges", []),
            variables=data.get("variables", {}),
        )


class ConfigLoader:
    """Loads and validates YAML/JSON configurations and workflow files."""

    def __init__(self, config_dir: str = "./config"):
        self.config_dir = Path(config_dir)

    def load_engine_config(self, path: Optional[str] = None) -> EngineConfig:
        """Load engine configuration, applying environment overrides."""
        if path is None:
            path = self.config_dir / "engine.yaml"
        else:
            path = Path(path)

        data = self._load_file(path) if path.exists() else {}
        self._apply_env_overrides(data)
        try:
            return EngineConfig(**data)
        except Exception as e:
            raise ConfigError(f"Invalid engine config: {e}", config_path=str(path))

    def load_workflow(self, path: str) -> WorkflowDefinition:
        """Load a single workflow definition file."""
        path = Path(path)
        data = self._load_file(path)
        return WorkflowDefinition.from_dict(data, source=str(path))

    def _apply_env_overrides(self, data: dict[str, Any]) -> None:
        base_url = os.getenv("ACTION_BASE_URL")
        if base_url:
            data.setdefault("action_client", {})["base_url"] = base_url
        log_format = os.getenv("LOG_FORMAT")
        if log_format:
            data.setdefault("logging", {})["format"] = log_format
        log_level = os.getenv("LOG_LEVEL")
        if log_level:
            data.setdefault("logging", {})["level"] = log_level

    def _load_file(self, path: Path) -> dict[str, Any]:
        """Load YAML or JSON file."""
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", config_path=str(path))

        try:
            content = path.read_text()

            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            elif path.suffix == ".json":
                data = json.loads(content)
            else:
                raise ConfigError(
                    f"Unsupported config format: {path.suffix}",
                    config_path=str(path)
                )
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", config_path=str(path))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON: {e}", config_path=str(path))

        if not isinstance(data, dict):
            raise ConfigError("Top-level document must be a mapping", config_path=str(path))
        return data
