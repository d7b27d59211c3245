# gnarhub/crud/crud_conversation.py
"""
One conversation per (session, participant pair).

The document id is derived from the session id and the sorted participant
ids, so a lookup is a direct get instead of a scan over the session's
conversations, and concurrent first calls land on the same document.
"""

import hashlib
import logging
from typing import List, Optional, Sequence

from gnarhub.constants.booking import COLLECTION_CONVERSATIONS
from gnarhub.core.exceptions import NotFoundError, ValidationError
from gnarhub.db.store import DocumentStore, Op, Order, Transaction, where
from gnarhub.schemas.conversation import Conversation
from gnarhub.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def normalize_participants(participant_ids: Sequence[str]) -> List[str]:
    ids = [p for p in participant_ids or [] if p]
    if len(ids) != 2 or ids[0] == ids[1]:
        raise ValidationError(
            "A conversation needs exactly two distinct participants", field="participants"
        )
    return sorted(ids)


def conversation_id_for(session_id: str, participant_ids: Sequence[str]) -> str:
    participants = normalize_participants(participant_ids)
    digest = hashlib.sha256(
        "|".join([session_id, *participants]).encode("utf-8")
    ).hexdigest()
    return f"cnv_{digest[:24]}"


class CRUDConversation:
    collection = COLLECTION_CONVERSATIONS

    async def get(self, db: DocumentStore, conversation_id: str) -> Optional[Conversation]:
        doc = await db.get(self.collection, conversation_id)
        return Conversation.model_validate(doc) if doc else None

    async def get_or_create(
        self, db: DocumentStore, *, session_id: str, participant_ids: Sequence[str]
    ) -> Conversation:
        """Return the conversation for this session and pair, creating it on first call."""
        if not session_id:
            raise ValidationError("session_id is required", field="session_id")
        participants = normalize_participants(participant_ids)
        conversation_id = conversation_id_for(session_id, participants)

        async def _get_or_create(txn: Transaction) -> Conversation:
            existing = await txn.get(self.collection, conversation_id)
            if existing is not None:
                return Conversation.model_validate(existing)

            now = utcnow()
            conversation = Conversation(
                id=conversation_id,
                session_id=session_id,
                participants=participants,
                created_at=now,
                last_message_at=now,
            )
            txn.set(self.collection, conversation_id, conversation.model_dump(mode="json"))
            logger.info(f"Conversation {conversation_id} created for session {session_id}")
            return conversation

        return await db.run_transaction(_get_or_create)

    async def list_for_user(self, db: DocumentStore, *, user_id: str) -> List[Conversation]:
        docs = await db.query(
            self.collection,
            [where("participants", Op.ARRAY_CONTAINS, user_id)],
            order_by=Order("last_message_at", descending=True),
        )
        return [Conversation.model_validate(doc) for doc in docs]

    async def touch(self, db: DocumentStore, *, conversation_id: str) -> None:
        """Record new activity; called when the messaging side stores a message."""
        try:
            await db.update(
                self.collection, conversation_id, {"last_message_at": utcnow().isoformat()}
            )
        except NotFoundError:
            raise NotFoundError("Conversation", conversation_id) from None


conversation = CRUDConversation()
