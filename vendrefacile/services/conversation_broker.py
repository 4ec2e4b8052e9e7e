import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from sqlalchemy import case, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from vendrefacile.core.errors import Forbidden, InvalidInput, InvalidOperation, NotFound, StorageError
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.conversation import Conversation, Message
from vendrefacile.models.listing import Listing
from vendrefacile.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class ConversationResult:
    """Canonical conversation for a (listing, buyer) pair and whether this call created it."""
    conversation: Conversation
    created: bool


class ConversationBroker:
    """
    Opens buyer/seller threads and gates message access to participants.

    Creation never checks before inserting: the unique constraint on
    (listing, buyer) decides which concurrent request wins, and the others
    fall back to reading the winner's row from the primary.
    """

    def __init__(self, storage: StorageGateway):
        self.storage = storage

    def open_conversation(self, listing_id: int, caller_id: int) -> ConversationResult:
        """
        Create the conversation between the caller and the listing owner, or
        return the one that already exists.

        Args:
            listing_id: Listing the caller wants to ask about
            caller_id: Authenticated caller, who becomes the buyer

        Returns:
            ConversationResult with created=False when the thread already existed

        Raises:
            NotFound: the listing does not exist
            InvalidOperation: the caller owns the listing
            StorageError: the insert failed for a reason other than the uniqueness guard
        """
        db = self.storage.write

        # Owner must come from the primary; a replica may not have the listing yet
        seller_id = db.query(Listing.owner_id).filter(Listing.id == listing_id).scalar()
        if seller_id is None:
            raise NotFound("Listing not found")

        if seller_id == caller_id:
            raise InvalidOperation("You cannot message your own listing")

        conversation = Conversation(listing_id=listing_id, buyer_id=caller_id, seller_id=seller_id)
        db.add(conversation)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            existing = self._find_existing(listing_id, caller_id)
            if existing is None:
                logger.error(f"Conversation insert failed for listing {listing_id}, buyer {caller_id}: {str(e)}")
                raise StorageError("Could not create conversation")
            logger.info(f"Reusing conversation {existing.id} for listing {listing_id}, buyer {caller_id}")
            return ConversationResult(conversation=existing, created=False)

        db.refresh(conversation)
        logger.info(f"Created conversation {conversation.id} for listing {listing_id}, buyer {caller_id}")
        return ConversationResult(conversation=conversation, created=True)

    def _find_existing(self, listing_id: int, buyer_id: int):
        return (
            self.storage.write.query(Conversation)
            .filter(Conversation.listing_id == listing_id, Conversation.buyer_id == buyer_id)
            .first()
        )

    def list_conversations(self, caller_id: int) -> List[Dict[str, Any]]:
        """Conversations where the caller is buyer or seller, newest first."""
        buyer = aliased(User)
        seller = aliased(User)
        other_user = case(
            (Conversation.buyer_id == caller_id, seller.username),
            else_=buyer.username,
        ).label("other_user")

        rows = (
            self.storage.read.query(Conversation, Listing.title.label("listing_title"), other_user)
            .join(Listing, Listing.id == Conversation.listing_id)
            .join(buyer, buyer.id == Conversation.buyer_id)
            .join(seller, seller.id == Conversation.seller_id)
            .filter(or_(Conversation.buyer_id == caller_id, Conversation.seller_id == caller_id))
            .order_by(Conversation.created_at.desc(), Conversation.id.desc())
            .all()
        )
        return [
            {
                "id": conversation.id,
                "listing_id": conversation.listing_id,
                "buyer_id": conversation.buyer_id,
                "seller_id": conversation.seller_id,
                "created_at": conversation.created_at,
                "listing_title": listing_title,
                "other_user": other_name,
            }
            for conversation, listing_title, other_name in rows
        ]

    def _participant_conversation(self, conversation_id: int, caller_id: int) -> Conversation:
        # Missing and foreign conversations look the same to the caller
        conversation = (
            self.storage.write.query(Conversation)
            .filter(
                Conversation.id == conversation_id,
                or_(Conversation.buyer_id == caller_id, Conversation.seller_id == caller_id),
            )
            .first()
        )
        if conversation is None:
            raise Forbidden("Access denied")
        return conversation

    def list_messages(self, conversation_id: int, caller_id: int) -> List[Dict[str, Any]]:
        """Messages of a conversation the caller takes part in, oldest first."""
        self._participant_conversation(conversation_id, caller_id)

        rows = (
            self.storage.read.query(Message, User.username.label("sender_name"))
            .join(User, User.id == Message.sender_id)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )
        return [
            {
                "id": message.id,
                "conversation_id": message.conversation_id,
                "sender_id": message.sender_id,
                "content": message.content,
                "read": message.read,
                "created_at": message.created_at,
                "sender_name": sender_name,
            }
            for message, sender_name in rows
        ]

    def send_message(self, conversation_id: int, caller_id: int, content: str) -> Message:
        """Append a message from the caller to a conversation they take part in."""
        if content is None or not content.strip():
            raise InvalidInput("Message content must not be empty")

        conversation = self._participant_conversation(conversation_id, caller_id)

        db = self.storage.write
        message = Message(conversation_id=conversation.id, sender_id=caller_id, content=content)
        db.add(message)
        db.commit()
        db.refresh(message)
        logger.debug(f"User {caller_id} posted message {message.id} in conversation {conversation.id}")
        return message
