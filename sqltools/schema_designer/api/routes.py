"""
HTTP routes forwarding JSON tool calls to the designer tools.

Each route takes the same JSON object the tool accepts and returns the
tool's response unchanged, with HTTP 200 for typed failures too: the
``success``/``reason`` fields are the contract, not the status code.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from ..session.registry import DocumentRegistry
from ..tools.dab_tool import DabTool
from ..tools.schema_designer_tool import SchemaDesignerTool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Schema Designer"])


# =============================================================================
# Request Models
# =============================================================================


class ToolCallRequest(BaseModel):
    """One tool invocation."""

    operation: str = Field(..., description="Tool operation, e.g. get_overview or apply_edits")
    connectionId: str | None = Field(default=None, description="Connection id (show only)")
    payload: dict[str, Any] | None = Field(default=None, description="Operation payload")
    options: dict[str, Any] | None = Field(default=None, description="Operation options")

    def to_params(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


# =============================================================================
# Dependencies
# =============================================================================


def get_registry(request: Request) -> DocumentRegistry:
    return request.app.state.registry


def get_schema_tool(request: Request) -> SchemaDesignerTool:
    return request.app.state.schema_tool


def get_dab_tool(request: Request) -> DabTool:
    return request.app.state.dab_tool


# =============================================================================
# Routes
# =============================================================================


@router.post("/tools/schema-designer")
async def call_schema_designer(
    body: ToolCallRequest,
    tool: SchemaDesignerTool = Depends(get_schema_tool),
) -> dict[str, Any]:
    """Invoke the schema designer tool."""
    return await tool.call(body.to_params())


@router.post("/tools/dab")
async def call_dab(
    body: ToolCallRequest,
    tool: DabTool = Depends(get_dab_tool),
) -> dict[str, Any]:
    """Invoke the DAB tool."""
    return await tool.call(body.to_params())


@router.get("/sessions")
async def list_sessions(registry: DocumentRegistry = Depends(get_registry)) -> dict[str, Any]:
    """List open designer sessions."""
    active = registry.active
    return {
        "sessions": [
            {
                "key": doc.key,
                "server": doc.server,
                "database": doc.database,
                "active": active is doc,
                "dirty": doc.is_dirty,
            }
            for doc in registry.documents
        ]
    }
