"""JSON conversion of engine dataclasses for IPC messages and persistence."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter

T = TypeVar("T")


@lru_cache(maxsize=None)
def _adapter(type_: Any) -> TypeAdapter:
    return TypeAdapter(type_)


def to_jsonable(value: Any, type_: Any | None = None) -> Any:
    """Dump a dataclass (or a container of them) to JSON-compatible Python data."""
    return _adapter(type_ if type_ is not None else type(value)).dump_python(
        value, mode="json"
    )


def from_jsonable(data: Any, type_: type[T] | Any) -> T:
    """Rebuild typed engine objects from JSON-compatible data."""
    return _adapter(type_).validate_python(data)


def _hook_parameter_types() -> dict[str, tuple[Any, ...]]:
    from .types import ExecutionState, RunExecutionData, TaskData
    from .workflow import NodeDefinition, Workflow

    return {
        "nodeExecuteBefore": (str,),
        "nodeExecuteAfter": (str, TaskData, RunExecutionData),
        "workflowExecuteBefore": (Workflow, RunExecutionData),
        "workflowExecuteAfter": (ExecutionState, dict[str, Any] | None),
        "nodeFetchedData": (str | None, NodeDefinition),
        "sendResponse": (dict[str, Any],),
    }


def dump_hook_parameters(hook_name: str, parameters: tuple[Any, ...] | list[Any]) -> list[Any]:
    """Serialize the arguments of a lifecycle hook for a ``processHook`` message."""
    types_ = _hook_parameter_types()[hook_name]
    return [to_jsonable(value, type_) for value, type_ in zip(parameters, types_)]


def load_hook_parameters(hook_name: str, data: list[Any]) -> list[Any]:
    types_ = _hook_parameter_types()[hook_name]
    return [from_jsonable(value, type_) for value, type_ in zip(data, types_)]
