"""HTTP Request node - make HTTP requests with httpx."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx

from ...engine.types import BinaryData, ExecutionItem, PairedItem
from ..base import BaseNode, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.node_execute_functions import NodeExecutionContext
    from ..base import NodeExecutionResult


class HttpRequestNode(BaseNode):
    """HTTP Request node - one request per input item."""

    node_description = NodeTypeDescription(
        name="HttpRequest",
        display_name="HTTP Request",
        description="Make HTTP requests to any URL",
        group=["integration"],
    )

    async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
        items = context.get_input_data() or [ExecutionItem()]
        results: list[ExecutionItem] = []

        async def make_requests(client: httpx.AsyncClient) -> None:
            for idx in range(len(items)):
                try:
                    results.append(await self._request(context, client, idx))
                except (httpx.HTTPError, ValueError) as e:
                    if not context.continue_on_fail():
                        raise
                    context.send_message_to_ui(f"Request for item {idx} failed: {e}")
                    results.append(
                        ExecutionItem(json={"error": str(e)}, paired_item=PairedItem(item=idx))
                    )

        if context.http_client is not None:
            await make_requests(context.http_client)
        else:
            async with httpx.AsyncClient(follow_redirects=True, timeout=30.0) as client:
                await make_requests(client)

        await context.emit_fetched_data()
        return self.output(results)

    async def _request(
        self, context: NodeExecutionContext, client: httpx.AsyncClient, idx: int
    ) -> ExecutionItem:
        url = context.get_node_parameter("url", idx)
        method = str(context.get_node_parameter("method", idx, default="GET")).upper()
        response_type = context.get_node_parameter("responseType", idx, default="json")
        headers_param = context.get_node_parameter("headers", idx, default={})
        body = context.get_node_parameter("body", idx, default=None)
        binary_property = context.get_node_parameter("sendBinaryData", idx, default=None)

        headers: dict[str, str] = {}
        if isinstance(headers_param, list):
            for h in headers_param:
                if h.get("name"):
                    headers[h["name"]] = str(h.get("value") or "")
        elif isinstance(headers_param, dict):
            headers.update({name: str(value or "") for name, value in headers_param.items()})

        if isinstance(body, str) and body:
            try:
                body = json.loads(body)
            except json.JSONDecodeError:
                pass

        if binary_property and method != "GET":
            body = await context.get_binary_data_buffer(idx, binary_property)

        response = await client.request(
            method=method,
            url=url,
            headers=headers,
            json=body if isinstance(body, (dict, list)) and method != "GET" else None,
            content=body if isinstance(body, (str, bytes)) and body and method != "GET" else None,
        )

        if context.get_node_parameter("failOnError", idx, default=True):
            response.raise_for_status()

        binary: dict[str, BinaryData] | None = None
        response_data: Any
        if response_type == "text":
            response_data = response.text
        elif response_type == "binary":
            content_type = response.headers.get("content-type", "application/octet-stream")
            file_name = url.rstrip("/").rsplit("/", 1)[-1] or None
            binary = {
                "data": await context.prepare_binary_data(
                    response.content, file_name=file_name, mime_type=content_type.split(";")[0]
                )
            }
            response_data = None
        else:
            try:
                response_data = response.json()
            except ValueError:
                response_data = response.text

        return ExecutionItem(
            json={
                "statusCode": response.status_code,
                "headers": dict(response.headers),
                "body": response_data,
            },
            binary=binary,
            paired_item=PairedItem(item=idx),
        )
