from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from backend.core.errors import NotFoundError
from backend.database import ensure_database_ready, get_db
from backend.documents import DocumentCollection

router = APIRouter(tags=['messages'])

Participant = Literal['patient', 'therapist']


class MessageAttachment(BaseModel):
    fileName: str | None = None
    fileUrl: str | None = None
    fileType: str | None = None

    class Config:
        extra = 'forbid'


class SendMessageRequest(BaseModel):
    conversationId: str | None = None
    senderId: str
    senderType: Participant
    receiverId: str
    receiverType: Participant
    subject: str | None = None
    content: str
    messageType: Literal['text', 'appointment-request', 'prescription', 'document', 'emergency'] = 'text'
    priority: Literal['low', 'normal', 'high', 'urgent'] = 'normal'
    attachments: list[MessageAttachment] = []

    class Config:
        extra = 'forbid'

    @field_validator('content')
    @classmethod
    def validate_content(cls, value: str) -> str:
        if not value.strip():
            raise ValueError('Message content is required.')
        return value


def get_messages(db: Session = Depends(get_db)) -> DocumentCollection:
    return DocumentCollection(db, 'messages', 'messageId')


def conversation_id_for(sender_id: str, receiver_id: str) -> str:
    return '-'.join(sorted([sender_id, receiver_id]))


def group_conversations(messages: list[dict], user_id: str) -> list[dict]:
    """Group newest-first messages by conversation, counting unread ones addressed to ``user_id``."""
    conversations: dict[str, dict] = {}
    for message in messages:
        conversation = conversations.setdefault(message['conversationId'], {
            'conversationId': message['conversationId'],
            'lastMessage': message,
            'unreadCount': 0,
            'messages': [],
        })
        conversation['messages'].append(message)
        if not message.get('isRead') and message.get('receiverId') == user_id:
            conversation['unreadCount'] += 1
    return list(conversations.values())


@router.post('', status_code=status.HTTP_201_CREATED)
def send_message(data: SendMessageRequest, messages: DocumentCollection = Depends(get_messages)):
    ensure_database_ready()

    body = data.model_dump(mode='json')
    body['conversationId'] = data.conversationId or conversation_id_for(data.senderId, data.receiverId)
    body.update({'isRead': False, 'readAt': None, 'isArchived': False})

    message = messages.create(body)
    return {'message': 'Message sent successfully', 'data': message}


@router.get('/conversation/{conversation_id}')
def get_conversation(conversation_id: str, messages: DocumentCollection = Depends(get_messages)):
    ensure_database_ready()

    results = messages.find(filters={'conversationId': conversation_id}, sort_key='createdAt')
    if not results:
        raise NotFoundError('No messages found in this conversation')
    return results


@router.get('/user/{user_id}')
def get_user_conversations(
    user_id: str,
    unread_only: bool = Query(default=False, alias='unreadOnly'),
    messages: DocumentCollection = Depends(get_messages),
):
    ensure_database_ready()

    if unread_only:
        results = messages.find(filters={'receiverId': user_id, 'isRead': False}, sort_key='createdAt', descending=True)
    else:
        results = messages.find(
            predicate=lambda message: user_id in (message.get('senderId'), message.get('receiverId')),
            sort_key='createdAt',
            descending=True,
        )
    if not results:
        raise NotFoundError('No messages found for this user')
    return group_conversations(results, user_id)


@router.get('/{message_id}')
def get_message(message_id: str, messages: DocumentCollection = Depends(get_messages)):
    ensure_database_ready()

    message = messages.get(message_id)
    if message is None:
        raise NotFoundError(f'Message with ID {message_id} not found')
    return message


@router.patch('/{message_id}/read')
def mark_message_read(message_id: str, messages: DocumentCollection = Depends(get_messages)):
    ensure_database_ready()

    message = messages.update(message_id, {'isRead': True, 'readAt': datetime.now(timezone.utc).isoformat()})
    if message is None:
        raise NotFoundError(f'Message with ID {message_id} not found')
    return {'message': 'Message marked as read', 'data': message}


@router.delete('/{message_id}')
def delete_message(message_id: str, messages: DocumentCollection = Depends(get_messages)):
    ensure_database_ready()

    if not messages.delete(message_id):
        raise NotFoundError(f'Message with ID {message_id} not found')
    return {'message': 'Message deleted successfully', 'messageId': message_id}
