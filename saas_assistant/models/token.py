"""Token models returned by the identity provider's token broker."""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ErrorKind(str, Enum):
    """Failure categories surfaced to tools and the chat route."""

    CONNECTION_REQUIRED = "connection_required"
    INSUFFICIENT_SCOPES = "insufficient_scopes"
    RATE_LIMITED = "rate_limited"
    VALIDATION_ERROR = "validation_error"
    PROVIDER_ERROR = "provider_error"


class Token(BaseModel):
    """An outbound-app OAuth token. Lives for a single tool call."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    app_id: Optional[str] = None
    user_id: Optional[str] = None
    access_token: str
    access_token_type: Optional[str] = None
    access_token_expiry: Optional[str] = None
    has_refresh_token: bool = False
    refresh_token: Optional[str] = None
    scopes: Set[str] = Field(default_factory=set)

    @field_validator("access_token_expiry", mode="before")
    @classmethod
    def _expiry_as_str(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return str(value)

    @field_validator("scopes", mode="before")
    @classmethod
    def _scopes_as_set(cls, value: Any) -> Set[str]:
        if value is None:
            return set()
        if isinstance(value, str):
            return {part for part in value.replace(",", " ").split() if part}
        return {str(part) for part in value}

    def summary(self) -> dict:
        """Connection-status view of the token. Never includes secrets."""

        return {
            "scopes": sorted(self.scopes),
            "expiresAt": self.access_token_expiry,
            "hasRefreshToken": self.has_refresh_token,
        }


class TokenError(BaseModel):
    """Returned in place of a token when the broker cannot satisfy a request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    kind: ErrorKind
    provider: str
    required_scopes: List[str] = Field(default_factory=list)
    current_scopes: Optional[List[str]] = None
    message: Optional[str] = None

    @property
    def error(self) -> str:
        return self.kind.value


TokenResult = Union[Token, TokenError]
