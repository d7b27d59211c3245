# gnarhub/schemas/session.py
import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SessionStatus(str, Enum):
    OPEN = "open"
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TerrainTag(str, Enum):
    PARK = "park"
    ALL_MOUNTAIN = "all-mountain"
    GROOMERS = "groomers"


class Session(BaseModel):
    id: str
    filmer_id: str
    status: SessionStatus = SessionStatus.OPEN
    mountain_id: str
    date: dt.date
    start_time: str
    end_time: str
    terrain_tags: List[TerrainTag]
    rate: float
    notes: Optional[str] = None
    # Bound on acceptance; both null while open
    rider_id: Optional[str] = None
    request_id: Optional[str] = None
    # Requests ever submitted; a session with any cannot be hard-deleted
    request_count: int = 0
    reminder_sent_at: Optional[dt.datetime] = None
    created_at: dt.datetime
    updated_at: dt.datetime
    model_config = {"from_attributes": True}


class SessionCreate(BaseModel):
    mountain_id: str = Field(..., json_schema_extra={"example": "killington"})
    date: dt.date
    start_time: str = Field(..., json_schema_extra={"example": "09:00"})
    end_time: str = Field(..., json_schema_extra={"example": "12:00"})
    terrain_tags: List[TerrainTag]
    rate: float
    notes: Optional[str] = None


class SessionUpdate(BaseModel):
    # date, mountain and owner are fixed once the session exists
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    terrain_tags: Optional[List[TerrainTag]] = None
    rate: Optional[float] = None
    notes: Optional[str] = None


class SessionFilters(BaseModel):
    """Browse filters; status None means any status."""
    status: Optional[SessionStatus] = SessionStatus.OPEN
    filmer_id: Optional[str] = None
    mountain_id: Optional[str] = None
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    terrain_tags: Optional[List[TerrainTag]] = None
    limit: Optional[int] = Field(None, ge=1)
