"""Tests for ``={{ }}`` expression resolution."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from helpers import items
from nodeflow.core.exceptions import ExpressionError
from nodeflow.engine.expression_engine import ExpressionEngine, expression_engine
from nodeflow.engine.types import TaskData


@pytest.fixture
def context():
    run_data = {
        "Fetch": [TaskData(start_time=datetime.now(timezone.utc), data=[items({"total": 42}, {"total": 7})])]
    }
    return ExpressionEngine.create_context(
        items({"name": "Ada", "count": 3}),
        run_data,
        "exec-1",
        workflow_info={"id": "wf-1", "name": "Demo"},
    )


def test_single_expression_keeps_its_type(context):
    assert expression_engine.resolve("={{ $json.count + 1 }}", context) == 4


def test_mixed_content_becomes_a_string(context):
    assert expression_engine.resolve("=Hello {{ $json.name }}!", context) == "Hello Ada!"


def test_plain_values_are_untouched(context):
    assert expression_engine.resolve("just text", context) == "just text"
    assert expression_engine.resolve(12, context) == 12


def test_nested_structures_are_resolved(context):
    value = {"greeting": ["={{ upper($json.name) }}", "static"]}

    assert expression_engine.resolve(value, context) == {"greeting": ["ADA", "static"]}


def test_node_reference_reads_latest_output(context):
    assert expression_engine.resolve('={{ $node["Fetch"].json.total }}', context) == 42
    assert expression_engine.resolve('={{ length($node["Fetch"].data) }}', context) == 2


def test_execution_and_workflow_info(context):
    assert expression_engine.resolve("={{ $execution.id }}", context) == "exec-1"
    assert expression_engine.resolve("={{ $workflow.name }}", context) == "Demo"


def test_invalid_expression_raises(context):
    with pytest.raises(ExpressionError):
        expression_engine.resolve("={{ $json.count + }}", context)


def test_unsafe_code_is_rejected(context):
    with pytest.raises(ExpressionError):
        expression_engine.resolve("={{ __import__('os').getcwd() }}", context)
