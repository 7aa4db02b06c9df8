from pydantic import BaseModel
from typing import Optional

class LoginRequest(BaseModel):
    email: str
    password: str

class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"

class TouristRegister(BaseModel):
    email: str  # plain str to allow .local and other dev domains
    password: str
    full_name: str
    country: Optional[str] = None
    phone: Optional[str] = None

class EmailIn(BaseModel):
    email: str

class PasswordResetIn(BaseModel):
    token: str
    password: str

class UserStatusIn(BaseModel):
    status: str  # active | blocked
