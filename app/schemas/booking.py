from pydantic import BaseModel

class BookingCreate(BaseModel):
    package_id: str
    travel_date: str  # YYYY-MM-DD
    travelers: int = 1

class AssignGuideIn(BaseModel):
    guideId: str = ""

class BookingStatusIn(BaseModel):
    status: str
