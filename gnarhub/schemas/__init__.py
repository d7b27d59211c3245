from .conversation import Conversation
from .notification import NotificationEvent, NotificationKind
from .review import Review, ReviewCreate
from .session import (
    Session,
    SessionCreate,
    SessionFilters,
    SessionStatus,
    SessionUpdate,
    TerrainTag,
)
from .session_request import (
    CounterOffer,
    CounterOfferCreate,
    CounterOfferStatus,
    RequestCreate,
    RequestStatus,
    SessionRequest,
)
from .user import User, UserCreate
