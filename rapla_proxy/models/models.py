from datetime import date as Date, time as Time
from typing import Optional, Tuple
from pydantic import BaseModel, Field

class Event(BaseModel):
    """A single scraped appointment. `start`/`end` carry no date; `date` supplies the day."""
    date: Date
    start: Time
    end: Time # Not validated against start, upstream data can be inverted
    title: str
    location: Optional[str] = None
    organizer: Optional[str] = None
    description: Optional[str] = None

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "date": "2025-03-24",
                "start": "09:00",
                "end": "12:15",
                "title": "Theoretische Informatik I",
                "location": "Raum 204B",
                "organizer": "Müller, Anna",
                "description": "TINF24B, Raum 204B",
            }
        }

class Calendar(BaseModel):
    name: str
    events: Tuple[Event, ...] = Field(default_factory=tuple)

    class Config:
        frozen = True
