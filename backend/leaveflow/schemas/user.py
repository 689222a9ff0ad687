from pydantic import BaseModel, EmailStr
from typing import Optional


class LoginRequest(BaseModel):
    employee_id: str
    password: str


class UserInfo(BaseModel):
    id: int
    name: str
    role: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str
    user: UserInfo


class RefreshRequest(BaseModel):
    refresh_token: str


class UserBrief(BaseModel):
    id: int
    name: str
    email: EmailStr
    department: Optional[str] = None

    class Config:
        from_attributes = True
