# gnarhub/crud/__init__.py

from .crud_conversation import conversation
from .crud_review import review
from .crud_session import session
from .crud_session_request import session_request
from .crud_user import user
