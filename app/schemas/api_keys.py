"""API key schemas."""

from pydantic import Field

from .base import CamelSchema


class ApiKeyCreate(CamelSchema):
    """Body for adding or replacing a provider key."""

    provider: str = Field(..., min_length=1)
    api_key: str = Field(..., min_length=1)


class ApiKeyDelete(CamelSchema):
    """Body for removing a provider key."""

    provider: str = Field(..., min_length=1)


class MaskedApiKeys(CamelSchema):
    """Providers with stored keys and their masked values."""

    providers: list[str] = Field(default_factory=list)
    masked_keys: dict[str, str] = Field(default_factory=dict)
