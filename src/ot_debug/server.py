# server.py
# MCP transport: exposes the debug session as a single stdio tool.
#
# Arguments are handed to DebugSession untouched so malformed steps come back
# as the session's own structured error payload rather than a transport error.

import json
from contextlib import asynccontextmanager
from typing import Annotated, Any

from mcp.server.fastmcp import FastMCP
from mcp.types import CallToolResult, TextContent, ToolAnnotations
from pydantic import Field

from ot_debug.harness import DebugSession
from ot_debug.models import ToolResponse

SERVER_NAME = "ot-device-debug-thinking-server"
TOOL_NAME = "legacydevicedebugthinking"

TOOL_DESCRIPTION = """\
A sequential thinking tool for debugging legacy OT devices behind a reverse \
proxy, following the production support workflow.

STEP 1: Enable default rules (automatic on initialization)
STEP 2: Analyze page loading status (not loaded / partially loaded / fully loaded)
STEP 3: Analyze resources (broken images and links pointing to the device)
STEP 4: Analyze WebSocket connections
STEP 5: Analyze redirects and port issues
STEP 6: Analyze network failures (404/500) and console errors (MIME type, bootstrap.js)
STEP 7: Perform a curl-style header analysis

Workflow triggers (keywords in the thought text, first match wins):
- "Start debugging for http://device-url" → open browser, enable default rules
- "Check page loading" / "login page" → load status, 'Try again', error 400 hostname
- "Analyze images and links" → resources pointing at the device IP/hostname
- "Check WebSocket" → WebSocket proxy rules
- "Check redirects" → Location rewrites and onboarding port hints
- "Check network and console errors" → 404/500, MIME type, bootstrap.js, private APIs
- "Perform curl analysis" → Location, Server, auth, CSP, HSTS, cookie, framing headers
- "Finish" / "complete" → close the browser

Set nextThoughtNeeded to false on the last step to receive the full report \
with prioritized rewrite rules for the RA portal.\
"""


def to_call_tool_result(response: ToolResponse) -> CallToolResult:
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(response.payload, indent=2))],
        isError=response.is_error,
    )


def build_server(session: DebugSession) -> FastMCP:
    """Create the FastMCP server bound to `session`. The browser closes with the server."""

    @asynccontextmanager
    async def lifespan(_server: FastMCP):
        try:
            yield
        finally:
            await session.close()

    mcp = FastMCP(SERVER_NAME, lifespan=lifespan)

    @mcp.tool(
        TOOL_NAME,
        description=TOOL_DESCRIPTION,
        annotations=ToolAnnotations(
            title="Legacy OT Device Debug Thinking",
            readOnlyHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        structured_output=False,
    )
    async def legacydevicedebugthinking(
        thought: Annotated[
            Any, Field(description="Current debugging step (include the device URL to start)")
        ] = None,
        nextThoughtNeeded: Annotated[Any, Field(description="Whether another step is needed")] = None,
        thoughtNumber: Annotated[Any, Field(description="Current step number, 1-based")] = None,
        totalThoughts: Annotated[Any, Field(description="Estimated total steps")] = None,
        isRevision: Annotated[Any, Field(description="Whether this revises a previous step")] = None,
        revisesThought: Annotated[Any, Field(description="Step number being reconsidered")] = None,
        branchFromThought: Annotated[Any, Field(description="Branching point step number")] = None,
        branchId: Annotated[Any, Field(description="Branch identifier")] = None,
        needsMoreThoughts: Annotated[Any, Field(description="If more steps are needed")] = None,
    ) -> CallToolResult:
        arguments = {
            "thought": thought,
            "nextThoughtNeeded": nextThoughtNeeded,
            "thoughtNumber": thoughtNumber,
            "totalThoughts": totalThoughts,
            "isRevision": isRevision,
            "revisesThought": revisesThought,
            "branchFromThought": branchFromThought,
            "branchId": branchId,
            "needsMoreThoughts": needsMoreThoughts,
        }
        submitted = {key: value for key, value in arguments.items() if value is not None}
        return to_call_tool_result(await session.submit(submitted))

    return mcp
