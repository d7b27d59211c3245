# gnarhub/schemas/conversation.py
from datetime import datetime
from typing import List

from pydantic import BaseModel


class Conversation(BaseModel):
    id: str
    session_id: str
    # Always stored sorted
    participants: List[str]
    created_at: datetime
    last_message_at: datetime
    model_config = {"from_attributes": True}
