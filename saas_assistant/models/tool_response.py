"""The uniform result contract returned by every tool execution.

``ToolResponse`` drives both programmatic branching in the chat route and the
UI hints rendered by the front end, so it serializes with camelCase keys
(``needsInput``, ``connectButton``, ``requiredScopes``).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from saas_assistant.models.token import ErrorKind


CONNECTION_REQUIRED_UI = "connection_required"
ERROR_UI = "error"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NeedsInput(_CamelModel):
    field: str
    message: str
    options: Optional[List[str]] = None
    current_value: Optional[str] = None


class ConnectButton(_CamelModel):
    text: str
    action: str


class UIHint(_CamelModel):
    type: str
    service: Optional[str] = None
    message: Optional[str] = None
    connect_button: Optional[ConnectButton] = None
    required_scopes: Optional[List[str]] = None
    current_scopes: Optional[List[str]] = None
    alternative_message: Optional[str] = None


class ToolResponse(_CamelModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    needs_input: Optional[NeedsInput] = None
    ui: Optional[UIHint] = None

    @model_validator(mode="after")
    def _connection_required_has_no_data(self) -> "ToolResponse":
        if not self.success and self.requires_connection and self.data is not None:
            raise ValueError("connection_required responses must not carry data")
        return self

    @property
    def requires_connection(self) -> bool:
        return self.ui is not None and self.ui.type == CONNECTION_REQUIRED_UI

    @classmethod
    def ok(cls, data: Any) -> "ToolResponse":
        return cls(success=True, data=data)

    @classmethod
    def needs(
        cls,
        field: str,
        message: str,
        error: str,
        current_value: Optional[str] = None,
        options: Optional[List[str]] = None,
    ) -> "ToolResponse":
        """Validation failure asking the user for one more field."""

        return cls(
            success=False,
            error=error,
            error_kind=ErrorKind.VALIDATION_ERROR,
            needs_input=NeedsInput(
                field=field,
                message=message,
                current_value=current_value,
                options=options,
            ),
        )

    @classmethod
    def failure(
        cls,
        error: str,
        message: Optional[str] = None,
        kind: ErrorKind = ErrorKind.PROVIDER_ERROR,
    ) -> "ToolResponse":
        """Generic failure shown to the user as an error card."""

        ui = UIHint(type=ERROR_UI, message=message) if message else None
        return cls(success=False, error=error, error_kind=kind, ui=ui)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
