from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from ..llm.factory import get_supported_providers
from ..manager_singleton import ManagerSingleton
from ..sessions.manager import SessionStore
from .models import ModelConfig, ProviderId, create_model_config

router = APIRouter(tags=["Config"])


class CreateModelConfigRequest(BaseModel):
    name: str = Field("New Model", description="Display name")
    provider_id: ProviderId = Field(ProviderId.OPENAI_COMPATIBLE, alias="providerId")
    settings: dict[str, Any] = Field(default_factory=dict, description="Overrides for the provider defaults")

    model_config = {"populate_by_name": True}


@router.get("/providers")
async def list_providers():
    """Get list of available provider adapters."""
    return {"providers": get_supported_providers()}


@router.get("/models")
async def list_model_configs(store: SessionStore = Depends(ManagerSingleton.get_store)):
    return {"model_configs": [config.to_export() for config in store.model_configs]}


@router.post("/models")
async def create_model_config_endpoint(
    request: CreateModelConfigRequest,
    store: SessionStore = Depends(ManagerSingleton.get_store),
):
    try:
        config = create_model_config(request.name, request.provider_id, **request.settings)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    store.add_model_config(config)
    logger.info(f"Created model config '{config.name}' ({config.provider_id.value})")
    return config.to_export()


@router.put("/models/{config_id}")
async def update_model_config(
    config_id: str,
    update_data: dict[str, Any],
    store: SessionStore = Depends(ManagerSingleton.get_store),
):
    existing = store.get_model_config(config_id)
    if existing is None:
        raise HTTPException(status_code=404, detail=f"Model config '{config_id}' not found")

    merged = existing.to_export()
    settings_update = update_data.pop("settings", None) or {}
    merged.update({k: v for k, v in update_data.items() if k != "id"})
    merged["settings"].update(settings_update)
    try:
        config = ModelConfig.model_validate(merged)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    store.update_model_config(config)
    return config.to_export()


@router.delete("/models/{config_id}")
async def delete_model_config(config_id: str, store: SessionStore = Depends(ManagerSingleton.get_store)):
    if store.get_model_config(config_id) is None:
        raise HTTPException(status_code=404, detail=f"Model config '{config_id}' not found")
    store.remove_model_config(config_id)
    return {"success": True, "config_id": config_id}
