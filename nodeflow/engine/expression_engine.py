"""
Expression engine for resolving ``={{ }}`` template expressions.

Uses simpleeval for safe expression evaluation (no eval() or exec()).
"""

from __future__ import annotations

import json
import logging
import math
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from simpleeval import DEFAULT_FUNCTIONS, DEFAULT_OPERATORS, SimpleEval

from ..core.exceptions import ExpressionError
from .types import ExecutionItem

if TYPE_CHECKING:
    from .types import RunData

logger = logging.getLogger(__name__)

_EXPRESSION_PATTERN = re.compile(r"\{\{(.+?)\}\}", re.DOTALL)


@dataclass
class ExpressionContext:
    """Context for expression evaluation."""

    json_data: dict[str, Any]  # $json
    binary_data: dict[str, Any]  # $binary
    input_data: list[ExecutionItem]  # $input
    node_data: dict[str, dict[str, Any]]  # $node
    env: dict[str, str | None]  # $env
    execution: dict[str, Any]  # $execution
    workflow: dict[str, Any]  # $workflow
    item_index: int  # $itemIndex
    run_index: int  # $runIndex


class ExpressionEngine:
    """
    Safe expression parser that doesn't use eval() or exec().

    Uses simpleeval library with a whitelist of allowed functions.
    """

    def __init__(self) -> None:
        self._setup_evaluator()

    def _setup_evaluator(self) -> None:
        """Set up the safe evaluator with allowed functions."""
        self.evaluator = SimpleEval()
        self.evaluator.operators = DEFAULT_OPERATORS.copy()

        self.evaluator.functions = {
            **DEFAULT_FUNCTIONS,
            # Type conversion
            "str": str,
            "int": int,
            "float": float,
            "bool": bool,
            "list": list,
            "dict": dict,
            # String functions
            "lower": lambda s: str(s).lower(),
            "upper": lambda s: str(s).upper(),
            "trim": lambda s: str(s).strip(),
            "split": lambda s, sep=" ": str(s).split(sep),
            "join": lambda arr, sep="": sep.join(str(x) for x in arr),
            "includes": lambda s, search: search in s,
            "replace": lambda s, old, new: str(s).replace(old, new),
            "length": lambda x: len(x),
            # Array functions
            "first": lambda arr: arr[0] if arr else None,
            "last": lambda arr: arr[-1] if arr else None,
            "sort": lambda arr: sorted(arr),
            "unique": lambda arr: list(dict.fromkeys(arr)),
            # Math functions
            "abs": abs,
            "min": min,
            "max": max,
            "sum": sum,
            "round": round,
            "floor": math.floor,
            "ceil": math.ceil,
            # Date functions
            "now": lambda: int(datetime.now(timezone.utc).timestamp() * 1000),
            "date_now": lambda: datetime.now(timezone.utc).isoformat(),
            # JSON functions
            "json_stringify": lambda v: json.dumps(v),
            "json_parse": lambda s: json.loads(s) if s else None,
            # Object functions
            "keys": lambda d: list(d.keys()) if isinstance(d, dict) else [],
            "get": lambda d, key, default=None: d.get(key, default) if isinstance(d, dict) else default,
        }

    def resolve(self, value: Any, context: ExpressionContext) -> Any:
        """
        Resolve all expressions in a value.

        Handles strings, objects, and arrays recursively. A string that is a
        single ``{{ }}`` block returns the typed value; mixed content returns
        a string.
        """
        if isinstance(value, str):
            return self._resolve_string(value, context)

        if isinstance(value, list):
            return [self.resolve(item, context) for item in value]

        if isinstance(value, dict):
            return {key: self.resolve(val, context) for key, val in value.items()}

        return value

    def _resolve_string(self, string: str, context: ExpressionContext) -> Any:
        template = string[1:] if string.startswith("=") else string
        if "{{" not in template:
            return template if string.startswith("=") else string

        trimmed = template.strip()
        if trimmed.startswith("{{") and trimmed.endswith("}}"):
            inner = trimmed[2:-2]
            if "{{" not in inner and "}}" not in inner:
                return self._evaluate(inner.strip(), context)

        return _EXPRESSION_PATTERN.sub(
            lambda match: self._stringify(self._evaluate(match.group(1).strip(), context)),
            template,
        )

    def _evaluate(self, expression: str, context: ExpressionContext) -> Any:
        """Evaluate a single expression safely using simpleeval."""
        transformed = self._transform_expression(expression)
        self.evaluator.names = self._build_eval_context(context)
        try:
            return self.evaluator.eval(transformed)
        except Exception as e:
            logger.warning("Expression evaluation failed: %s (expression: %s)", e, expression)
            raise ExpressionError(expression, str(e)) from e

    def _transform_expression(self, expression: str) -> str:
        """Transform ``$``-style references to evaluator names."""
        result = re.sub(
            r'\$node\["([^"]+)"\]',
            lambda m: f"node_{self._sanitize_name(m.group(1))}",
            expression,
        )
        result = re.sub(r"\$json\.(\w+)", r'json_data.get("\1")', result)
        result = result.replace("$json", "json_data")
        result = result.replace("$binary", "binary_data")
        result = result.replace("$input", "input_data")
        result = re.sub(r"\$env\.(\w+)", r'env.get("\1")', result)
        result = result.replace("$env", "env")
        result = result.replace("$execution", "execution")
        result = result.replace("$workflow", "workflow")
        result = result.replace("$itemIndex", "item_index")
        result = result.replace("$runIndex", "run_index")
        return result

    def _build_eval_context(self, context: ExpressionContext) -> dict[str, Any]:
        """Build the evaluation context dictionary."""
        eval_ctx: dict[str, Any] = {
            "json_data": context.json_data,
            "binary_data": context.binary_data,
            "input_data": [item.json for item in context.input_data],
            "env": context.env,
            "execution": context.execution,
            "workflow": context.workflow,
            "item_index": context.item_index,
            "run_index": context.run_index,
        }

        for node_name, node_info in context.node_data.items():
            eval_ctx[f"node_{self._sanitize_name(node_name)}"] = node_info

        return eval_ctx

    def _sanitize_name(self, name: str) -> str:
        """Sanitize node name for use as variable name."""
        return re.sub(r"[^a-zA-Z0-9_]", "_", name)

    def _stringify(self, value: Any) -> str:
        """Convert value to string for interpolation."""
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value)

    @staticmethod
    def create_context(
        current_data: list[ExecutionItem],
        run_data: RunData,
        execution_id: str | None,
        item_index: int = 0,
        run_index: int = 0,
        mode: str = "manual",
        workflow_info: dict[str, Any] | None = None,
    ) -> ExpressionContext:
        """Create expression context from execution state."""
        current_item = (
            current_data[item_index] if item_index < len(current_data) else ExecutionItem()
        )

        # $node exposes the latest main output of every executed node
        node_data: dict[str, dict[str, Any]] = {}
        for node_name, tasks in run_data.items():
            items: list[ExecutionItem] = []
            if tasks and tasks[-1].data:
                items = tasks[-1].data[0] or []
            node_data[node_name] = {
                "json": items[0].json if items else {},
                "data": [item.json for item in items],
                "runIndex": len(tasks) - 1,
            }

        binary = {
            key: {"id": value.id, "mimeType": value.mime_type, "fileName": value.file_name}
            for key, value in (current_item.binary or {}).items()
        }

        return ExpressionContext(
            json_data=current_item.json,
            binary_data=binary,
            input_data=current_data,
            node_data=node_data,
            env=dict(os.environ),
            execution={"id": execution_id, "mode": mode},
            workflow=workflow_info or {},
            item_index=item_index,
            run_index=run_index,
        )


# Singleton instance
expression_engine = ExpressionEngine()
