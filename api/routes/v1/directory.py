"""
api/routes/v1/directory.py -- Credential and user directory endpoints.

Routes (every operation is a POST carrying a JSON body):
  POST /api/v1/login/verify           -- check login + digest
  POST /api/v1/login/register         -- create a user
  POST /api/v1/login/change-login     -- rename, after checking the old digest
  POST /api/v1/login/change-password  -- replace the digest, after checking the old one
  POST /api/v1/users/get              -- batch lookup by id
  POST /api/v1/users/list             -- filtered, paginated listing ordered by login
  POST /api/v1/users/delete           -- idempotent delete

Response policy:
  "unknown user", "wrong digest" and "login taken" all return 200 with
  success=false. Only infrastructure failures produce an error status, and
  those go through the InternalServiceError handler in api/main.py which
  never echoes storage detail.

Handlers are plain `def` so FastAPI runs them in its threadpool; the store
uses blocking SQLAlchemy connections.
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import (
    ChangeLoginRequest,
    ChangePasswordRequest,
    CredentialsRequest,
    RangeRequest,
    Response,
    UserIdRequest,
    UserIdsRequest,
    UsersResponse,
)
from auth.service import DirectoryService
from core.config import get_settings

router = APIRouter()


def get_directory(request: Request) -> DirectoryService:
    """Return the DirectoryService wired into app.state by the lifespan."""
    return request.app.state.directory


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


@router.post("/login/verify", response_model=Response)
@limiter.limit(get_settings().verify_rate_limit)
def verify(
    request: Request,
    body: CredentialsRequest,
    directory: DirectoryService = Depends(get_directory),
) -> Response:
    """Return success and the user id when login and digest match a stored user."""
    return Response.from_result(directory.verify(body.login, body.digest))


@router.post("/login/register", response_model=Response)
def register(
    body: CredentialsRequest,
    directory: DirectoryService = Depends(get_directory),
) -> Response:
    """Create a user. success=false if login is empty or already taken."""
    return Response.from_result(directory.register(body.login, body.digest))


@router.post("/login/change-login", response_model=Response)
def change_login(
    body: ChangeLoginRequest,
    directory: DirectoryService = Depends(get_directory),
) -> Response:
    return Response(success=directory.change_login(body.user_id, body.old_digest, body.new_login))


@router.post("/login/change-password", response_model=Response)
def change_password(
    body: ChangePasswordRequest,
    directory: DirectoryService = Depends(get_directory),
) -> Response:
    return Response(success=directory.change_password(body.user_id, body.old_digest, body.new_digest))


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


@router.post("/users/get", response_model=UsersResponse)
def get_users(
    body: UserIdsRequest,
    directory: DirectoryService = Depends(get_directory),
) -> UsersResponse:
    """Return the users that exist among the requested ids."""
    return UsersResponse.from_infos(directory.get_users(body.ids))


@router.post("/users/list", response_model=UsersResponse)
def list_users(
    body: RangeRequest,
    directory: DirectoryService = Depends(get_directory),
) -> UsersResponse:
    """Return users[start:end] ordered by login, plus the count matching the filter."""
    return UsersResponse.from_page(directory.list_users(body.start, body.end, body.filter))


@router.post("/users/delete", response_model=Response)
def delete_user(
    body: UserIdRequest,
    directory: DirectoryService = Depends(get_directory),
) -> Response:
    return Response(success=directory.delete(body.id))
