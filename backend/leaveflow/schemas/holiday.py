from pydantic import BaseModel, field_validator
from datetime import date


class HolidayCreate(BaseModel):
    name: str
    date: date
    location: str = "global"
    is_business_day: bool = False
    repeat_yearly: bool = False

    @field_validator("name", "location")
    @classmethod
    def validate_non_empty(cls, value: str):
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("This field is required")
        return cleaned


class HolidayOut(BaseModel):
    id: int
    name: str
    date: date
    location: str
    is_business_day: bool
    repeat_yearly: bool

    class Config:
        from_attributes = True
