"""
Protocol bridge sessions.

A session is a brand-new MCP server built for one request and one device.
Every tool closes over that device's id, and the session is discarded when
the request ends; nothing is shared between requests or devices.
"""
import json
from typing import Any, Dict, List, Literal, Optional

import structlog
from mcp import types
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from sqlalchemy.ext.asyncio import AsyncSession

from devicehub import __version__
from devicehub.config import settings
from devicehub.models import Device
from devicehub.services import capture_service
from devicehub.storage.payload_store import PayloadStore, device_prefix, key_belongs_to

logger = structlog.get_logger()

SensorTypeName = Literal["barcode", "camera", "lidar", "motion", "beacon"]


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def _human_size(size: int) -> str:
    if size > 1_000_000:
        return f"{size / 1_000_000:.1f} MB"
    return f"{size / 1_000:.1f} KB"


def _download_path(key: str) -> str:
    return f"/api/v1/payloads/{key.rsplit('/', 1)[-1]}"


def _to_content(result: Any) -> List[types.TextContent]:
    """Normalize what FastMCP returns from a tool call into content blocks."""
    if isinstance(result, tuple):
        # (unstructured content, structured content)
        result = result[0]
    if isinstance(result, dict):
        return [types.TextContent(type="text", text=_dump(result))]
    return list(result)


class BridgeSession:
    """
    Device-scoped MCP session for a single bridge request.

    Args:
        db: Request database session
        device: Device resolved by the authorization gate
        store: Payload store
    """

    def __init__(self, db: AsyncSession, device: Device, store: PayloadStore):
        self.device_id = device.id
        self.server = FastMCP(settings.BRIDGE_SERVER_NAME)
        self._register_tools(db, device, store)

    def _register_tools(self, db: AsyncSession, device: Device, store: PayloadStore) -> None:
        server = self.server
        device_id = device.id

        @server.tool(name="get_device_info", description="Get info about the authenticated device")
        async def get_device_info() -> str:
            return _dump({
                "id": device.id,
                "name": device.name,
                "registered_at": device.registered_at,
                "last_seen_at": device.last_seen_at,
                "last_bridge_call_at": device.last_bridge_call_at,
            })

        @server.tool(
            name="list_captures",
            description=(
                "List sensor captures for this device, newest first. Returns IDs and "
                "timestamps; use get_capture for full data."
            ),
        )
        async def list_captures(sensor_type: Optional[SensorTypeName] = None, limit: int = 20) -> str:
            captures = await capture_service.list_captures(db, device_id, sensor_type=sensor_type, limit=limit)
            return _dump([capture.to_summary() for capture in captures])

        @server.tool(name="get_capture", description="Get full sensor capture data by ID (includes the JSON payload)")
        async def get_capture(capture_id: int) -> str:
            capture = await capture_service.get_capture(db, device_id, capture_id)
            if capture is None:
                return "Capture not found"
            return _dump(capture.to_dict())

        @server.tool(name="get_latest_capture", description="Get the most recent sensor capture from this device")
        async def get_latest_capture(sensor_type: Optional[SensorTypeName] = None) -> str:
            capture = await capture_service.get_latest_capture(db, device_id, sensor_type=sensor_type)
            if capture is None:
                return "No captures found. The device may not have captured anything yet."
            return _dump(capture.to_dict())

        @server.tool(
            name="list_payloads",
            description=(
                "List large payloads stored for this device (full scan data). "
                "Use get_payload to retrieve one."
            ),
        )
        async def list_payloads() -> str:
            objects = await store.list(device_id)
            return _dump([
                {
                    "key": obj.key,
                    "size": obj.size,
                    "size_human": _human_size(obj.size),
                    "uploaded": obj.uploaded.isoformat(),
                }
                for obj in objects
            ])

        @server.tool(
            name="get_payload",
            description=(
                "Retrieve a payload by key from list_payloads. Oversized payloads are "
                "truncated to a sample; download the full object instead."
            ),
        )
        async def get_payload(key: str) -> str:
            if not key_belongs_to(key, device_id):
                raise ToolError(f"Access denied. Keys must start with {device_prefix(device_id)}")
            content = await store.get(key)
            if content is None:
                return "Payload not found"

            if len(content) > settings.BRIDGE_MAX_PAYLOAD_BYTES:
                # Cut on bytes; a multi-byte character split at the edge is dropped
                sample = content[:settings.BRIDGE_SAMPLE_BYTES].decode("utf-8", errors="ignore")
                return (
                    f"[LARGE PAYLOAD: {len(content)} bytes, download via {_download_path(key)}]"
                    f"\n\n{sample}..."
                )
            return content.decode("utf-8", errors="replace")

    async def list_tools(self) -> List[types.Tool]:
        return await self.server.list_tools()

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
        try:
            result = await self.server.call_tool(name, arguments)
        except ToolError as e:
            logger.info("bridge_tool_error", device_id=self.device_id, tool=name, error=str(e))
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=str(e))],
                isError=True,
            )
        return types.CallToolResult(content=_to_content(result), isError=False)

    async def handle(self, message: Any) -> Optional[Dict[str, Any]]:
        """
        Handle one JSON-RPC message.

        Returns:
            Response object, or None for notifications
        """
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0" or not isinstance(message.get("method"), str):
            request_id = message.get("id") if isinstance(message, dict) else None
            return error_response(request_id, types.INVALID_REQUEST, "Invalid Request")

        method = message["method"]
        params = message.get("params") or {}
        if "id" not in message:
            logger.debug("bridge_notification", device_id=self.device_id, method=method)
            return None

        request_id = message["id"]
        if not isinstance(params, dict):
            return error_response(request_id, types.INVALID_PARAMS, "Params must be an object")

        if method == "initialize":
            requested = params.get("protocolVersion")
            version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else types.LATEST_PROTOCOL_VERSION
            result = types.InitializeResult(
                protocolVersion=version,
                capabilities=types.ServerCapabilities(tools=types.ToolsCapability(listChanged=False)),
                serverInfo=types.Implementation(name=settings.BRIDGE_SERVER_NAME, version=__version__),
            )
        elif method == "ping":
            result = types.EmptyResult()
        elif method == "tools/list":
            result = types.ListToolsResult(tools=await self.list_tools())
        elif method == "tools/call":
            name = params.get("name")
            arguments = params.get("arguments") or {}
            if not isinstance(name, str) or not isinstance(arguments, dict):
                return error_response(request_id, types.INVALID_PARAMS, "tools/call requires a name and object arguments")
            result = await self.call_tool(name, arguments)
        else:
            return error_response(request_id, types.METHOD_NOT_FOUND, f"Method not found: {method}")

        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "result": result.model_dump(by_alias=True, mode="json", exclude_none=True),
        }


def error_response(request_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "error": types.ErrorData(code=code, message=message).model_dump(exclude_none=True),
        "id": request_id,
    }


def create_bridge_session(db: AsyncSession, device: Device, store: PayloadStore) -> BridgeSession:
    """Build a fresh session for one request, scoped to ``device``."""
    return BridgeSession(db, device, store)
