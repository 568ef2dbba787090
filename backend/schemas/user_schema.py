from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional

# Fields are optional here so the auth service can report missing ones
# with its own messages and in its own order.

class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class SignupRequest(CamelModel):
    username: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


class LoginRequest(CamelModel):
    username: Optional[str] = None
    password: Optional[str] = None


class UserIdRequest(CamelModel):
    user_id: Optional[str] = None


class UserPublic(BaseModel):
    id: str
    username: str
    name: str
    email: Optional[str] = None


class AuthResponse(CamelModel):
    user: UserPublic
    token: str
    expires_in: int


class UserResponse(BaseModel):
    user: UserPublic


class SuccessResponse(BaseModel):
    success: bool = True
