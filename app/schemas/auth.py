from pydantic import BaseModel

from app.schemas.user import UserPublic


class AuthResponse(BaseModel):
    ok: bool = True
    redirect: str
    user: UserPublic


class LogoutResponse(BaseModel):
    ok: bool = True
    redirect: str = "/"


# Facebook data deletion
class DeletionResponse(BaseModel):
    url: str
    confirmation_code: str


class DeletionStatusResponse(BaseModel):
    confirmation_code: str
    status: str
    message: str


# Error response schema
class ErrorResponse(BaseModel):
    ok: bool = False
    detail: str
