"""Tool listing and direct execution endpoints."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from moxie.dependencies import get_executor
from moxie.plugins.errors import InvalidParameters, PluginDisabled, ToolNotFound
from moxie.plugins.executor import ToolExecutor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tools", tags=["tools"])


@router.get("")
async def list_tools(executor: ToolExecutor = Depends(get_executor)):
    """List tools of all active plugins, sorted by qualified name."""
    return {"tools": [t.to_dict() for t in executor.list_tools()]}


@router.post("/{qualified_name}")
async def execute_tool(
    qualified_name: str,
    params: Optional[Dict[str, Any]] = Body(default=None),
    executor: ToolExecutor = Depends(get_executor),
):
    """
    Execute a tool directly.

    Confirmation-required tools are not gated here; the caller is expected
    to have confirmed with the user.
    """
    try:
        result = await executor.execute(qualified_name, params or {})
    except ToolNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidParameters as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PluginDisabled as e:
        raise HTTPException(status_code=409, detail=str(e))
    return result.to_dict()
