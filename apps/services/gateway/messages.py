"""
apps/services/gateway/messages.py

Typed request/response payloads exchanged between the pipeline and its
collaborators. Requests are discriminated on ``action``; responses always
carry ``success`` and, on failure, ``error``. Wire keys are camelCase.
"""
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class _Message(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# =============================================================================
# Requests
# =============================================================================

class GetConfigRequest(_Message):
    action: Literal["getConfig"]
    context_id: Union[str, int]


class SetConfigRequest(_Message):
    action: Literal["setConfig"]
    context_id: Union[str, int]
    config: Dict[str, Any]


class ResolveYearRequest(_Message):
    action: Literal["resolveYear"]
    item_id: str = Field(min_length=1)


class SetCredentialRequest(_Message):
    action: Literal["setCredential"]
    value: Optional[str] = None


class GetCredentialRequest(_Message):
    action: Literal["getCredential"]


class ClearMetadataCacheRequest(_Message):
    action: Literal["clearMetadataCache"]


class GetCacheStatsRequest(_Message):
    action: Literal["getCacheStats"]


class GetGlobalSettingsRequest(_Message):
    action: Literal["getGlobalSettings"]


class SetGlobalSettingsRequest(_Message):
    action: Literal["setGlobalSettings"]
    settings: Dict[str, Any]


class ContextCreatedRequest(_Message):
    action: Literal["contextCreated"]
    context_id: Union[str, int]
    opener_id: Optional[Union[str, int]] = None


class ContextRemovedRequest(_Message):
    action: Literal["contextRemoved"]
    context_id: Union[str, int]


Request = Annotated[
    Union[
        GetConfigRequest,
        SetConfigRequest,
        ResolveYearRequest,
        SetCredentialRequest,
        GetCredentialRequest,
        ClearMetadataCacheRequest,
        GetCacheStatsRequest,
        GetGlobalSettingsRequest,
        SetGlobalSettingsRequest,
        ContextCreatedRequest,
        ContextRemovedRequest,
    ],
    Field(discriminator="action"),
]

REQUEST_ADAPTER: TypeAdapter = TypeAdapter(Request)


# =============================================================================
# Responses
# =============================================================================

class Response(_Message):
    success: bool = True
    error: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ConfigResponse(Response):
    config: Dict[str, Any]


class YearResponse(Response):
    # year stays in the payload even when unknown
    year: Optional[int] = None
    was_cached: bool = False

    def to_wire(self) -> Dict[str, Any]:
        wire = super().to_wire()
        wire["year"] = self.year
        return wire


class CredentialResponse(Response):
    value: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        wire = super().to_wire()
        wire["value"] = self.value
        return wire


class CacheStatsResponse(Response):
    count: int
    approx_size_bytes: int


class GlobalSettingsResponse(Response):
    settings: Dict[str, Any]


def failure(error: str) -> Response:
    return Response(success=False, error=error)
