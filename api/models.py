"""
API request and response models for the CAD auth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Response bodies use camelCase keys (userId, isOwner, hasTempPassword) because
that is what the CAD web client reads; Python attributes stay snake_case and
are serialized with by_alias=True.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import Rank, User, WhitelistStatus

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AuthRequest(BaseModel):
    """Request body for POST /auth/login and POST /auth/register."""

    username: Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=255)]
    # Not stripped: whitespace is a legitimate password character.
    password: str = Field(min_length=8, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    """Either userId, or hasTempPassword=true when a forced password change is pending."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: Optional[int] = Field(default=None, alias="userId")
    has_temp_password: Optional[bool] = Field(default=None, alias="hasTempPassword")


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: int = Field(alias="userId")
    is_owner: bool = Field(alias="isOwner")


class MeResponse(BaseModel):
    """Identity of the currently authenticated account."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: int = Field(alias="userId")
    username: str
    rank: Rank
    whitelist_status: WhitelistStatus = Field(alias="whitelistStatus")
    is_dispatch: bool = Field(alias="isDispatch")
    is_leo: bool = Field(alias="isLeo")
    is_ems_fd: bool = Field(alias="isEmsFd")
    is_supervisor: bool = Field(alias="isSupervisor")
    is_tow: bool = Field(alias="isTow")

    @classmethod
    def from_user(cls, user: User) -> "MeResponse":
        return cls(
            user_id=user.id,
            username=user.username,
            rank=user.rank,
            whitelist_status=user.whitelist_status,
            is_dispatch=user.is_dispatch,
            is_leo=user.is_leo,
            is_ems_fd=user.is_ems_fd,
            is_supervisor=user.is_supervisor,
            is_tow=user.is_tow,
        )


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
    components: dict[str, str]
