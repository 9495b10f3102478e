"""API key controller with FastAPI endpoints."""

import logging

from fastapi import APIRouter, Body, Depends, Request

from app.core.context import CoordinationContext
from app.core.dependencies import get_context, get_current_user_id, get_optional_context
from app.domains.api_keys.service import ApiKeyService
from app.schemas.api_keys import ApiKeyCreate, ApiKeyDelete, MaskedApiKeys
from app.schemas.base import ResponseSchema

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/api-keys",
    tags=["api-keys"],
)


@router.get("/", response_model=ResponseSchema)
async def list_api_keys(
    _request: Request,
    context: CoordinationContext | None = Depends(get_optional_context),
    user_id: str = Depends(get_current_user_id),
):
    """List the providers with stored keys, masked."""
    if context is None:
        masked = MaskedApiKeys()
    else:
        masked = await ApiKeyService(context, user_id).list_masked()

    return ResponseSchema(
        status="success",
        message="API keys retrieved successfully",
        data=masked.model_dump(by_alias=True),
    )


@router.post("/", response_model=ResponseSchema)
async def set_api_key(
    _request: Request,
    key_data: ApiKeyCreate,
    context: CoordinationContext = Depends(get_context),
    user_id: str = Depends(get_current_user_id),
):
    """Add or replace the key of one provider."""
    await ApiKeyService(context, user_id).set_key(key_data.provider, key_data.api_key)
    return ResponseSchema(status="success", message="API key saved successfully")


@router.delete("/", response_model=ResponseSchema)
async def delete_api_key(
    _request: Request,
    key_data: ApiKeyDelete = Body(...),
    context: CoordinationContext = Depends(get_context),
    user_id: str = Depends(get_current_user_id),
):
    """Remove the key of one provider."""
    await ApiKeyService(context, user_id).delete_key(key_data.provider)
    return ResponseSchema(status="success", message="API key deleted successfully")
