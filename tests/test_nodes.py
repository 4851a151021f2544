"""Tests for the built-in node types and the node registry."""

from __future__ import annotations

import json

import httpx
import pytest

from helpers import items, make_workflow
from nodeflow.binary_data import BinaryDataService
from nodeflow.core.exceptions import NodeExecutionError, NodeNotFoundError
from nodeflow.engine.hooks import WorkflowHooks
from nodeflow.engine.node_execute_functions import AdditionalData, NodeExecutionContext
from nodeflow.engine.node_registry import NodeRegistryClass, register_all_nodes
from nodeflow.engine.types import PairedItem, RunExecutionData
from nodeflow.engine.workflow import NodeDefinition
from nodeflow.nodes import (
    ExecuteWorkflowNode,
    ExecuteWorkflowTriggerNode,
    HttpRequestNode,
    IfNode,
    MergeNode,
    RespondToWebhookNode,
    SetNode,
    WebhookNode,
)
from nodeflow.services.node_service import NodeService


def node_context(
    node_type: str,
    parameters: dict | None = None,
    inputs: list | None = None,
    additional_data: AdditionalData | None = None,
    **node_options,
) -> NodeExecutionContext:
    node = NodeDefinition(name="Node", type=node_type, parameters=parameters or {}, **node_options)
    workflow = make_workflow([node], id="wf-1")
    return NodeExecutionContext(
        workflow=workflow,
        node=node,
        input_data=inputs if inputs is not None else [[]],
        run_execution_data=RunExecutionData(),
        run_index=0,
        additional_data=additional_data or AdditionalData(execution_id="exec-1"),
        mode="manual",
    )


def jsons(result, output: int = 0):
    items_ = result.outputs[output]
    return None if items_ is None else [item.json for item in items_]


# --- Registry ---


def test_register_all_nodes_is_idempotent():
    registry = NodeRegistryClass()
    register_all_nodes(registry)
    count = len(registry.list())
    register_all_nodes(registry)

    assert len(registry.list()) == count
    assert registry.has("Merge")
    assert registry.has("Merge", 1)
    assert not registry.has("Merge", 2)


def test_unknown_type_or_version_raises():
    registry = register_all_nodes(NodeRegistryClass())

    with pytest.raises(NodeNotFoundError):
        registry.get("Nope")
    with pytest.raises(NodeNotFoundError):
        registry.get("Set", 9)


def test_node_service_describes_nodes():
    service = NodeService(register_all_nodes(NodeRegistryClass()))

    merge = service.get_node("Merge")
    assert (merge.input_count, merge.output_count, merge.kind) == (2, 1, "execute")
    assert service.get_node("Webhook").kind == "webhook"
    assert {n.type for n in service.get_nodes_by_group("trigger")} == {
        "Start",
        "Webhook",
        "ExecuteWorkflowTrigger",
    }
    with pytest.raises(NodeNotFoundError):
        service.get_node("Nope")


# --- Set ---


async def test_set_renames_and_deletes_fields():
    context = node_context(
        "Set",
        {
            "fields": [{"name": "user.name", "value": "={{ $json.first }}"}],
            "renameFields": [{"from": "first", "to": "firstName"}],
            "deleteFields": ["secret"],
        },
        [items({"first": "Ada", "secret": "x"})],
    )

    result = await SetNode().execute(context)

    assert jsons(result) == [{"firstName": "Ada", "user": {"name": "Ada"}}]


async def test_set_json_mode_with_keep_only_set():
    context = node_context(
        "Set",
        {"mode": "json", "jsonData": '{"status": "ok"}', "keepOnlySet": True},
        [items({"old": 1})],
    )

    result = await SetNode().execute(context)

    assert jsons(result) == [{"status": "ok"}]


# --- If ---


@pytest.mark.parametrize(
    "operation, value, expected",
    [
        ("equals", "a", True),
        ("notEquals", "a", False),
        ("contains", "b", False),
        ("regex", "^a$", True),
        ("isNotEmpty", None, True),
    ],
)
async def test_if_operations(operation, value, expected):
    context = node_context(
        "If", {"field": "letter", "operation": operation, "value": value}, [items({"letter": "a"})]
    )

    result = await IfNode().execute(context)

    assert (jsons(result, 0) is not None) is expected
    assert (jsons(result, 1) is not None) is not expected


async def test_if_expression_condition_wins():
    context = node_context(
        "If",
        {"condition": "={{ $json.n > 1 }}", "field": "n", "operation": "isEmpty"},
        [items({"n": 1}, {"n": 2})],
    )

    result = await IfNode().execute(context)

    assert jsons(result, 0) == [{"n": 2}]
    assert jsons(result, 1) == [{"n": 1}]


# --- Merge ---


async def test_merge_combine_pairs():
    context = node_context(
        "Merge", {"mode": "combinePairs"}, [items({"a": 1}, {"a": 2}), items({"b": 1})]
    )

    result = await MergeNode().execute(context)

    assert jsons(result) == [{"a": 1, "b": 1}]


async def test_merge_keep_matches():
    context = node_context(
        "Merge",
        {"mode": "keepMatches", "matchField": "id"},
        [items({"id": 1}, {"id": 2}), items({"id": 2})],
    )

    result = await MergeNode().execute(context)

    assert jsons(result) == [{"id": 2}]


async def test_merge_wait_mode_needs_both_inputs():
    context = node_context("Merge", {"mode": "wait"}, [items({"a": 1}), []])

    result = await MergeNode().execute(context)

    assert jsons(result) == []


# --- Webhook / responses ---


async def test_webhook_turns_request_into_item():
    result = await WebhookNode().webhook(
        {"body": {"x": 1}, "headers": {"h": "v"}, "query": {"q": "1"}, "method": "POST"}
    )

    assert result[0].json["body"] == {"x": 1}
    assert result[0].json["query"] == {"q": "1"}
    assert "triggeredAt" in result[0].json


async def test_respond_to_webhook_fires_send_response():
    responses = []
    hooks = WorkflowHooks({"sendResponse": [responses.append]})
    context = node_context(
        "RespondToWebhook",
        {"respondWith": "allIncomingItems", "statusCode": 201},
        [items({"a": 1}, {"a": 2})],
        AdditionalData(execution_id="exec-1", hooks=hooks),
    )

    result = await RespondToWebhookNode().execute(context)

    assert responses == [{"body": [{"a": 1}, {"a": 2}], "headers": {}, "statusCode": 201}]
    assert jsons(result) == [{"a": 1}, {"a": 2}]


# --- Sub-workflows ---


async def test_execute_workflow_once_sends_all_items():
    calls = []

    async def execute_workflow(workflow_info, additional_data, input_data, parent_workflow_id):
        calls.append((workflow_info, [i.json for i in input_data], parent_workflow_id))
        return [items({"done": True})]

    context = node_context(
        "ExecuteWorkflow",
        {"workflowId": "wf-child"},
        [items({"n": 1}, {"n": 2})],
        AdditionalData(execution_id="exec-1", execute_workflow=execute_workflow),
    )

    result = await ExecuteWorkflowNode().execute(context)

    assert calls == [({"id": "wf-child"}, [{"n": 1}, {"n": 2}], "wf-1")]
    assert jsons(result) == [{"done": True}]


async def test_execute_workflow_each_with_inline_code():
    seen = []

    async def execute_workflow(workflow_info, additional_data, input_data, parent_workflow_id):
        seen.append(workflow_info)
        return [[item for item in input_data]]

    code = {"name": "Child", "nodes": [{"name": "T", "type": "ExecuteWorkflowTrigger"}]}
    context = node_context(
        "ExecuteWorkflow",
        {"source": "parameter", "workflowJson": json.dumps(code), "mode": "each"},
        [items({"n": 1}, {"n": 2})],
        AdditionalData(execution_id="exec-1", execute_workflow=execute_workflow),
    )

    result = await ExecuteWorkflowNode().execute(context)

    assert seen == [{"code": code}, {"code": code}]
    assert jsons(result) == [{"n": 1}, {"n": 2}]


async def test_execute_workflow_without_runner_fails():
    context = node_context("ExecuteWorkflow", {"workflowId": "wf-child"}, [items({})])

    with pytest.raises(NodeExecutionError):
        await ExecuteWorkflowNode().execute(context)


async def test_execute_workflow_trigger_uses_default_input_without_caller():
    context = node_context("ExecuteWorkflowTrigger", {"defaultInput": {"test": True}}, [[]])

    result = await ExecuteWorkflowTriggerNode().trigger(context)

    assert jsons(result) == [{"test": True}]


# --- HTTP ---


async def test_http_request_uses_shared_client():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["x-token"] == "t"
        return httpx.Response(200, json={"path": request.url.path, "id": request.url.params["id"]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        context = node_context(
            "HttpRequest",
            {
                "url": "=https://api.example.com/items?id={{ $json.id }}",
                "headers": [{"name": "x-token", "value": "t"}],
            },
            [items({"id": 5})],
            AdditionalData(execution_id="exec-1", http_client=client),
        )
        result = await HttpRequestNode().execute(context)

    body = jsons(result)[0]
    assert body["statusCode"] == 200
    assert body["body"] == {"path": "/items", "id": "5"}


async def test_http_error_becomes_item_with_continue_on_fail():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="nope"))
    sent = []

    async with httpx.AsyncClient(transport=transport) as client:
        context = node_context(
            "HttpRequest",
            {"url": "https://api.example.com/fail"},
            [items({})],
            AdditionalData(
                execution_id="exec-1",
                http_client=client,
                send_data_to_ui=lambda kind, data: sent.append((kind, data)),
            ),
            continue_on_fail=True,
        )
        result = await HttpRequestNode().execute(context)

    assert "500" in jsons(result)[0]["error"]
    assert sent[0][0] == "sendConsoleMessage"
    assert sent[0][1]["source"] == "Node: Node"


async def test_only_the_failing_item_becomes_an_error_item():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/items/2":
            return httpx.Response(500, text="boom")
        return httpx.Response(200, json={"path": request.url.path})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        context = node_context(
            "HttpRequest",
            {"url": "=https://api.example.com/items/{{ $json.id }}"},
            [items({"id": 1}, {"id": 2}, {"id": 3})],
            AdditionalData(execution_id="exec-1", http_client=client),
            continue_on_fail=True,
        )
        result = await HttpRequestNode().execute(context)

    output = result.outputs[0]
    assert output[0].json["body"] == {"path": "/items/1"}
    assert output[2].json["body"] == {"path": "/items/3"}
    assert list(output[1].json) == ["error"]
    assert "500" in output[1].json["error"]
    assert [item.paired_item for item in output] == [PairedItem(item=i) for i in range(3)]


async def test_http_request_sends_binary_body():
    binary_data = BinaryDataService()
    await binary_data.init("default")
    upload = items({})
    upload[0].binary = {"file": await binary_data.store(b"raw-bytes", "exec-1", mime_type="text/plain")}
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request.content)
        return httpx.Response(204)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        context = node_context(
            "HttpRequest",
            {"url": "https://api.example.com/upload", "method": "POST", "sendBinaryData": "file"},
            [upload],
            AdditionalData(execution_id="exec-1", http_client=client, binary_data=binary_data),
        )
        result = await HttpRequestNode().execute(context)

    assert received == [b"raw-bytes"]
    assert jsons(result)[0]["statusCode"] == 204
