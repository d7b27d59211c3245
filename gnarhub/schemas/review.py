# gnarhub/schemas/review.py
from datetime import datetime

from pydantic import BaseModel


class Review(BaseModel):
    id: str
    session_id: str
    filmer_id: str
    rider_id: str
    rating: int
    text: str
    could_keep_up: bool = False
    good_quality: bool = False
    good_vibes: bool = False
    created_at: datetime
    model_config = {"from_attributes": True}


class ReviewCreate(BaseModel):
    session_id: str
    rating: int
    text: str
    could_keep_up: bool = False
    good_quality: bool = False
    good_vibes: bool = False
