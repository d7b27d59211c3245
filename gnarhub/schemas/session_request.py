# gnarhub/schemas/session_request.py
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from .session import TerrainTag


class RequestStatus(str, Enum):
    PENDING = "pending"
    COUNTER_OFFERED = "counter_offered"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class CounterOfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class CounterOffer(BaseModel):
    id: str
    start_time: str
    end_time: str
    amount: float
    message: Optional[str] = None
    status: CounterOfferStatus = CounterOfferStatus.PENDING
    created_at: datetime
    model_config = {"from_attributes": True}


class CounterOfferCreate(BaseModel):
    start_time: str
    end_time: str
    amount: float
    message: Optional[str] = None


class SessionRequest(BaseModel):
    id: str
    session_id: str
    rider_id: str
    # Denormalized from the session so filmers can list their inbox directly
    filmer_id: str
    status: RequestStatus = RequestStatus.PENDING
    message: str
    rider_terrain_tags: List[TerrainTag] = []
    amount: float
    payment_reference: Optional[str] = None
    counter_offer: Optional[CounterOffer] = None
    conversation_id: Optional[str] = None
    created_at: datetime
    responded_at: Optional[datetime] = None
    model_config = {"from_attributes": True}


class RequestCreate(BaseModel):
    message: str
    terrain_tags: List[TerrainTag] = []
    # Defaults to the session rate
    amount: Optional[float] = None
    payment_reference: Optional[str] = None
