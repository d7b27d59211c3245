# gnarhub/crud/crud_user.py
import logging
from typing import Any, Dict, Optional, Union

from gnarhub.constants.booking import COLLECTION_USERS
from gnarhub.core.exceptions import NotFoundError
from gnarhub.db.store import DocumentStore, Transaction
from gnarhub.schemas.user import User, UserCreate
from gnarhub.utils.validators import parse_model

logger = logging.getLogger(__name__)


class CRUDUser:
    """Minimal user profile access; identity itself is owned by the auth provider."""

    collection = COLLECTION_USERS

    async def get(self, db: DocumentStore, user_id: str) -> Optional[User]:
        doc = await db.get(self.collection, user_id)
        return User.model_validate(doc) if doc else None

    async def get_in_txn(self, txn: Transaction, user_id: str) -> User:
        doc = await txn.get(self.collection, user_id)
        if doc is None:
            raise NotFoundError("User", user_id)
        return User.model_validate(doc)

    async def create(
        self, db: DocumentStore, *, obj_in: Union[UserCreate, Dict[str, Any]]
    ) -> User:
        user_in = parse_model(UserCreate, obj_in)
        user = User(**user_in.model_dump())
        await db.set(self.collection, user.id, user.model_dump(mode="json"))
        logger.info(f"User profile {user.id} created")
        return user


user = CRUDUser()
