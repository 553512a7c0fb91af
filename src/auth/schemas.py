from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime

from src.auth.permissions import StaffRole

class StaffUserBase(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    full_name: str
    role: StaffRole = StaffRole.REGISTRATION_STAFF

class StaffUserCreate(StaffUserBase):
    password: str = Field(..., min_length=6)

class StaffUserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    role: Optional[StaffRole] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(None, min_length=6)

class StaffUser(StaffUserBase):
    id: int
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class StaffUserProfile(StaffUser):
    """Current user with the permissions granted by their role"""
    permissions: List[str] = []

class LoginRequest(BaseModel):
    username: str
    password: str

class AuthResponse(BaseModel):
    access_token: str
    token_type: str
    user: StaffUserProfile

class TokenData(BaseModel):
    user_id: Optional[int] = None
    role: Optional[str] = None
