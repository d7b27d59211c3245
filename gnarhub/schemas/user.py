# gnarhub/schemas/user.py
from typing import Optional

from pydantic import BaseModel


class User(BaseModel):
    """Profile fields the booking core reads or maintains."""
    id: str
    display_name: Optional[str] = None
    is_filmer: bool = False
    average_rating: Optional[float] = None
    rating_sum: float = 0
    review_count: int = 0
    sessions_as_rider: int = 0
    sessions_as_filmer: int = 0
    model_config = {"from_attributes": True}


class UserCreate(BaseModel):
    id: str
    display_name: Optional[str] = None
    is_filmer: bool = False
