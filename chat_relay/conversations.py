"""Conversation and message history endpoints."""

import logging
from typing import Dict, List

from fastapi import APIRouter, HTTPException, Request

from chat_relay.errors import InvalidRequestError, error_response
from chat_relay.schemas import CreateConversationRequest, CreateMessageRequest, parse_body

logger = logging.getLogger(__name__)

conversations_router = APIRouter(prefix="/api", tags=["conversations"])


@conversations_router.get("/conversations/{conversation_id}/messages")
async def list_messages(request: Request, conversation_id: str) -> List[Dict[str, object]]:
    """Messages of a conversation, oldest first."""
    store = request.app.state.store
    messages = await store.list_messages(conversation_id)
    return [message.to_dict() for message in messages]


@conversations_router.get("/conversations/{session_id}")
async def list_conversations(request: Request, session_id: str) -> List[Dict[str, object]]:
    """Conversations of a browser session, most recently updated first."""
    store = request.app.state.store
    conversations = await store.list_conversations(session_id)
    return [conversation.to_dict() for conversation in conversations]


@conversations_router.post("/conversations")
async def create_conversation(request: Request):
    try:
        body = await parse_body(request, CreateConversationRequest)
    except InvalidRequestError as exc:
        return error_response(exc)

    store = request.app.state.store
    conversation = await store.create_conversation(body.session_id, body.title)
    logger.info("Created conversation %s", conversation.id)
    return conversation.to_dict()


@conversations_router.delete("/conversations/{conversation_id}")
async def delete_conversation(request: Request, conversation_id: str) -> Dict[str, bool]:
    store = request.app.state.store
    removed = await store.delete_conversation(conversation_id)
    if not removed:
        raise HTTPException(
            status_code=404, detail=f"Conversation {conversation_id} not found"
        )
    return {"success": True}


@conversations_router.post("/messages")
async def save_message(request: Request):
    """Append a message and bump the conversation's ``updated_at``."""
    try:
        body = await parse_body(request, CreateMessageRequest)
    except InvalidRequestError as exc:
        return error_response(exc)

    store = request.app.state.store
    try:
        message = await store.append_message(
            body.conversation_id, body.role, body.content
        )
    except KeyError:
        raise HTTPException(
            status_code=404, detail=f"Conversation {body.conversation_id} not found"
        )
    return message.to_dict()
