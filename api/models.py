"""
API request and response models for the login directory endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Every digest field carries the output of the credential codec, never a
plaintext secret; the server stores and compares it as an opaque string.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import AuthResult, UserInfo, UserPage

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Upper bound on ids accepted by one POST /users/get request.
MAX_BATCH_IDS = 1000

# Annotated type shared by every request field that names a directory user.
_UserId = Annotated[int, Field(ge=0, description="Directory user id.")]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CredentialsRequest(BaseModel):
    """Request body for POST /login/verify and POST /login/register.

    An empty login is accepted here and answered with success=false by the
    service, so validation errors never reveal anything about the directory.
    """

    login: str = Field(default="", max_length=255)
    digest: str = Field(default="", max_length=255)


class ChangeLoginRequest(BaseModel):
    """Request body for POST /login/change-login."""

    user_id: _UserId
    old_digest: str = Field(default="", max_length=255)
    new_login: str = Field(default="", max_length=255)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /login/change-password."""

    user_id: _UserId
    old_digest: str = Field(default="", max_length=255)
    new_digest: str = Field(default="", max_length=255)


class UserIdsRequest(BaseModel):
    """Request body for POST /users/get.

    Duplicates are dropped before the lookup; order is not significant.
    """

    ids: list[int] = Field(default_factory=list, max_length=MAX_BATCH_IDS)

    @field_validator("ids")
    @classmethod
    def reject_negative_ids(cls, values: list[int]) -> list[int]:
        if any(v < 0 for v in values):
            raise ValueError("ids must be non-negative integers")
        return list(dict.fromkeys(values))


class RangeRequest(BaseModel):
    """Request body for POST /users/list.

    The window is [start, end). end below start is allowed and yields an
    empty page with the full total.
    """

    start: int = Field(default=0, ge=0)
    end: int = Field(default=0, ge=0)
    filter: str = Field(default="", max_length=255, description="Substring of login; empty means no filter.")


class UserIdRequest(BaseModel):
    """Request body for POST /users/delete."""

    id: _UserId


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class Response(BaseModel):
    """Outcome of an operation. id is 0 when there is nothing to report."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    id: int = 0

    @classmethod
    def from_result(cls, result: AuthResult) -> "Response":
        return cls(success=result.success, id=result.id or 0)


class UserEntry(BaseModel):
    """One directory entry. registered_at is Unix epoch seconds."""

    model_config = ConfigDict(frozen=True)

    id: int
    login: str
    registered_at: int

    @classmethod
    def from_info(cls, info: UserInfo) -> "UserEntry":
        return cls(id=info.id, login=info.login, registered_at=info.registered_at)


class UsersResponse(BaseModel):
    """Response body for POST /users/get and POST /users/list.

    For /users/list, total counts every user matching the filter, not only
    the returned page. For /users/get it is the number of users returned.
    """

    model_config = ConfigDict(frozen=True)

    users: list[UserEntry] = Field(default_factory=list)
    total: int = 0

    @classmethod
    def from_infos(cls, infos: list[UserInfo]) -> "UsersResponse":
        return cls(users=[UserEntry.from_info(i) for i in infos], total=len(infos))

    @classmethod
    def from_page(cls, page: UserPage) -> "UsersResponse":
        return cls(users=[UserEntry.from_info(i) for i in page.users], total=page.total)


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
