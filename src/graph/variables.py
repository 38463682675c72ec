"""Run-scoped variable store shared by every step of a workflow run."""

import time
from dataclasses import dataclass
from typing import Any, Iterator, Optional

import structlog

from .model import ValueType

logger = structlog.get_logger()


@dataclass(frozen=True)
class RuntimeValue:
    """A typed, timestamped value attributed to the node that produced it."""
    value: Any
    type: ValueType
    timestamp: float
    source_node_id: str
    output_key: str


def infer_value_type(value: Any) -> ValueType:
    """Map a Python value to its ValueType tag."""
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return ValueType.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueType.NUMBER
    if isinstance(value, (list, tuple)):
        return ValueType.ARRAY
    if isinstance(value, dict):
        return ValueType.OBJECT
    return ValueType.TEXT


def strip_reference(reference: str) -> str:
    """Turn "${name}" into "name"; bare names pass through."""
    if reference.startswith("${") and reference.endswith("}") and len(reference) > 3:
        return reference[2:-1]
    return reference


class VariableStore:
    """
    Flat, last-write-wins variable namespace for a single run.

    set_variable() is the only mutation path; every reader goes through
    get_variable()/get_record().
    """

    def __init__(self):
        self._variables: dict[str, RuntimeValue] = {}

    def set_variable(
        self,
        name: str,
        value: Any,
        source_node_id: str = "workflow",
        output_key: Optional[str] = None,
    ) -> RuntimeValue:
        """Bind name to value, overwriting any prior binding."""
        record = RuntimeValue(
            value=value,
            type=infer_value_type(value),
            timestamp=time.time(),
            source_node_id=source_node_id,
            output_key=output_key or name,
        )
        self._variables[name] = record
        logger.debug(
            "variable_set",
            name=name,
            value_type=record.type.value,
            source_node_id=source_node_id,
        )
        return record

    def get_variable(self, reference: str) -> Any:
        """Look up by "${name}" or bare name; None when unbound."""
        record = self._variables.get(strip_reference(reference))
        return record.value if record else None

    def get_record(self, reference: str) -> Optional[RuntimeValue]:
        return self._variables.get(strip_reference(reference))

    def has(self, reference: str) -> bool:
        return strip_reference(reference) in self._variables

    def items(self) -> Iterator[tuple[str, RuntimeValue]]:
        return iter(list(self._variables.items()))

    def snapshot(self) -> dict[str, Any]:
        """Plain name -> value copy for reporting."""
        return {name: record.value for name, record in self._variables.items()}

    def __len__(self) -> int:
        return len(self._variables)


class ExecutionContext:
    """
    Live variable store plus accessors, passed by reference to every step.

    There is no copy-on-branch: a write made by one step is visible to every
    step that runs after it.
    """

    def __init__(self, store: Optional[VariableStore] = None, run_id: Optional[str] = None):
        self.store = store or VariableStore()
        self.run_id = run_id

    def get(self, reference: str) -> Any:
        return self.store.get_variable(reference)

    def has(self, reference: str) -> bool:
        return self.store.has(reference)

    def set(
        self,
        name: str,
        value: Any,
        source_node_id: str = "workflow",
        output_key: Optional[str] = None,
    ) -> RuntimeValue:
        return self.store.set_variable(name, value, source_node_id, output_key)

    @property
    def variables(self) -> dict[str, Any]:
        return self.store.snapshot()
