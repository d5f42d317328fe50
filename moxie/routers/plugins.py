"""Plugin management REST API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from moxie.dependencies import get_runtime
from moxie.models.requests import PluginConfigUpdate
from moxie.plugins.errors import (
    ConfigError,
    ExecutionFailed,
    InvalidStateTransition,
    IoError,
    PluginNotFound,
)
from moxie.runtime import MoxieRuntime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plugins", tags=["plugins"])


def _not_found(plugin_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")


@router.get("")
async def list_plugins(runtime: MoxieRuntime = Depends(get_runtime)):
    """List all registered plugins and their state."""
    return {"plugins": runtime.loader.list_plugins()}


@router.get("/{plugin_id}")
async def get_plugin(plugin_id: str, runtime: MoxieRuntime = Depends(get_runtime)):
    """Get detailed information about a specific plugin."""
    instance = runtime.loader.get(plugin_id)
    if instance is None:
        raise _not_found(plugin_id)
    info = instance.to_dict()
    info["manifest"] = instance.manifest.to_dict()
    return info


@router.post("/{plugin_id}/enable")
async def enable_plugin(plugin_id: str, runtime: MoxieRuntime = Depends(get_runtime)):
    """Re-activate a disabled plugin; it stays enabled across restarts."""
    try:
        instance = await runtime.loader.enable(plugin_id)
    except PluginNotFound:
        raise _not_found(plugin_id)
    except InvalidStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ExecutionFailed as e:
        raise HTTPException(status_code=500, detail=str(e))

    runtime.plugin_config.enable(plugin_id)
    return {"message": f"Plugin '{plugin_id}' enabled", "plugin": instance.to_dict()}


@router.post("/{plugin_id}/disable")
async def disable_plugin(plugin_id: str, runtime: MoxieRuntime = Depends(get_runtime)):
    """Take a plugin's tools out of service; it is not loaded on next startup."""
    try:
        instance = await runtime.loader.disable(plugin_id)
    except PluginNotFound:
        raise _not_found(plugin_id)
    except InvalidStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ExecutionFailed as e:
        raise HTTPException(status_code=500, detail=str(e))

    runtime.plugin_config.disable(plugin_id)
    return {"message": f"Plugin '{plugin_id}' disabled", "plugin": instance.to_dict()}


@router.put("/{plugin_id}/config")
async def update_plugin_config(
    plugin_id: str,
    body: PluginConfigUpdate,
    runtime: MoxieRuntime = Depends(get_runtime),
):
    """Update plugin configuration. Takes effect on restart.

    The table is checked against the plugin manifest before it is saved.
    """
    instance = runtime.loader.get(plugin_id)
    if instance is None:
        raise _not_found(plugin_id)
    try:
        runtime.plugin_config.update_plugin_config(plugin_id, body.config, instance.manifest)
    except ConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except IoError as e:
        logger.error(f"Failed to save plugin config: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"message": f"Configuration updated for plugin '{plugin_id}' (restart to apply)"}
