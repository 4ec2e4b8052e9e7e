from fastapi import APIRouter, Depends, Response, status
from typing import List

from vendrefacile.core.security import CallerIdentity, get_current_user
from vendrefacile.db.database import get_storage
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.schemas import (
    ConversationCreate,
    ConversationResponse,
    ConversationSummary,
    MessageCreate,
    MessageResponse,
    MessageWithSender,
)
from vendrefacile.services.conversation_broker import ConversationBroker

router = APIRouter(
    prefix="/conversations",
    tags=["conversations"]
)


@router.post("", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
def open_conversation(
    conversation_data: ConversationCreate,
    response: Response,
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    """
    Open a conversation with the owner of a listing.

    Returns 201 with the new conversation, or 200 with the existing one if
    the caller already has a conversation about this listing.
    """
    result = ConversationBroker(storage).open_conversation(conversation_data.listing_id, caller.id)
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return result.conversation


@router.get("", response_model=List[ConversationSummary])
def list_conversations(
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    """Get the caller's conversations, as buyer or seller, newest first."""
    return ConversationBroker(storage).list_conversations(caller.id)


@router.get("/{conversation_id}/messages", response_model=List[MessageWithSender])
def list_messages(
    conversation_id: int,
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    """Get the messages of a conversation, oldest first. Participants only."""
    return ConversationBroker(storage).list_messages(conversation_id, caller.id)


@router.post("/{conversation_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(
    conversation_id: int,
    message_data: MessageCreate,
    caller: CallerIdentity = Depends(get_current_user),
    storage: StorageGateway = Depends(get_storage),
):
    """Post a message in a conversation. Participants only."""
    return ConversationBroker(storage).send_message(conversation_id, caller.id, message_data.content)
