"""API key service: per-provider edits over the stored credential set."""

import logging

from app.core.context import CoordinationContext
from app.exceptions.base import NotFoundError, ValidationError
from app.schemas.api_keys import MaskedApiKeys

logger = logging.getLogger(__name__)


def mask_api_key(api_key: str) -> str:
    """Show the first and last four characters of keys longer than eight."""
    if len(api_key) > 8:
        return f"{api_key[:4]}...{api_key[-4:]}"
    return "********"


class ApiKeyService:
    """Service class for a user's provider credentials."""

    def __init__(self, context: CoordinationContext, user_id: str):
        self.context = context
        self.user_id = user_id

    async def list_masked(self) -> MaskedApiKeys:
        api_keys = await self.context.get_api_keys(self.user_id) or {}
        return MaskedApiKeys(
            providers=list(api_keys),
            masked_keys={provider: mask_api_key(key) for provider, key in api_keys.items()},
        )

    async def set_key(self, provider: str, api_key: str) -> None:
        if not provider or not api_key:
            raise ValidationError("Provider and API key are required")

        api_keys = await self.context.get_api_keys(self.user_id) or {}
        api_keys[provider] = api_key
        await self.context.store_api_keys(self.user_id, api_keys)
        logger.info("API key for %s saved", provider)

    async def delete_key(self, provider: str) -> None:
        if not provider:
            raise ValidationError("Provider is required")

        api_keys = await self.context.get_api_keys(self.user_id) or {}
        if provider not in api_keys:
            raise NotFoundError(f"No API key found for {provider}")

        del api_keys[provider]
        await self.context.store_api_keys(self.user_id, api_keys)
        logger.info("API key for %s deleted", provider)
