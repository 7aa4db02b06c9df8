from pydantic import BaseModel
from typing import Optional

class GuideRegister(BaseModel):
    email: str
    password: str
    full_name: str
    contact_number: Optional[str] = None

class GuideRejectIn(BaseModel):
    reason: str = ""

class AvailabilityIn(BaseModel):
    date: str  # YYYY-MM-DD
    status: str  # available | unavailable
