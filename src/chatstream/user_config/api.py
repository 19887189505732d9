"""
Configuration API

Endpoints for the stored configuration, the backend credential, the
appearance preference and the process-wide advisory condition.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError

from ..advisory import Advisory, AdvisoryState
from ..exceptions import CredentialError
from ..manager_singleton import ManagerSingleton
from .models import AppConfig

router = APIRouter(tags=["Configuration"])


class CredentialRequest(BaseModel):
    api_key: str = Field(..., description="Backend API key")


class CredentialStatus(BaseModel):
    configured: bool
    from_environment: bool
    error: Optional[str] = None


class AppearanceModel(BaseModel):
    theme: Literal["light", "dark"]


class AdvisoryResponse(BaseModel):
    advisory: Optional[Advisory] = None


@router.get("/config", response_model=AppConfig)
async def get_config(config: AppConfig = Depends(ManagerSingleton.get_app_config)):
    """Get the current configuration."""
    return config


@router.put("/config", response_model=AppConfig)
async def update_config(updates: dict):
    """Update configuration fields. Session components are rebuilt with the new values."""
    unknown = set(updates) - set(AppConfig.model_fields)
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown configuration fields: {sorted(unknown)}")
    try:
        return await ManagerSingleton.update_app_config(**updates)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid configuration: {e.error_count()} error(s)")


@router.get("/config/credential", response_model=CredentialStatus)
async def get_credential_status():
    """Report whether a usable credential is configured. The key itself is never returned."""
    return await ManagerSingleton.credential_status()


@router.put("/config/credential", response_model=CredentialStatus)
async def set_credential(request: CredentialRequest):
    """Store a new credential and restore sessions with it."""
    try:
        await ManagerSingleton.set_credential(request.api_key)
    except CredentialError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await ManagerSingleton.credential_status()


@router.delete("/config/credential", response_model=CredentialStatus)
async def change_credential():
    """Forget the credential, clearing in-memory sessions and the advisory."""
    await ManagerSingleton.change_credential()
    return await ManagerSingleton.credential_status()


@router.get("/config/appearance", response_model=AppearanceModel)
async def get_appearance():
    return AppearanceModel(theme=await ManagerSingleton.get_theme())


@router.put("/config/appearance", response_model=AppearanceModel)
async def set_appearance(request: AppearanceModel):
    return AppearanceModel(theme=await ManagerSingleton.set_theme(request.theme))


@router.get("/advisory", response_model=AdvisoryResponse)
async def get_advisory(advisory: AdvisoryState = Depends(ManagerSingleton.get_advisory)):
    """Get the active advisory condition, if any."""
    return AdvisoryResponse(advisory=advisory.current)


@router.delete("/advisory", response_model=AdvisoryResponse)
async def dismiss_advisory(advisory: AdvisoryState = Depends(ManagerSingleton.get_advisory)):
    """Dismiss the active advisory condition."""
    advisory.dismiss()
    return AdvisoryResponse(advisory=None)
