"""Provider listing and default-provider switching."""

from fastapi import APIRouter, Depends, HTTPException

from moxie.dependencies import get_runtime
from moxie.runtime import MoxieRuntime

router = APIRouter(prefix="/api/providers", tags=["providers"])


@router.get("")
async def list_providers(runtime: MoxieRuntime = Depends(get_runtime)):
    """List configured providers; secrets are reported only as ``has_api_key``."""
    return {
        "current": runtime.config_service.get_current_config_name(),
        "providers": runtime.config_service.get_available_configs(),
    }


@router.post("/{name}/default")
async def set_default_provider(name: str, runtime: MoxieRuntime = Depends(get_runtime)):
    if not runtime.config_service.switch_config(name):
        raise HTTPException(
            status_code=400,
            detail=f"Provider '{name}' is unknown or not configured (missing API key?)",
        )
    return {"current": runtime.config_service.get_current_config_name()}
