"""In-memory conversation store."""

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

from chat_relay.models import Conversation, DEFAULT_CONVERSATION_TITLE, StoredMessage


class ConversationStore:
    """Conversations keyed by id, grouped by browser session."""

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[StoredMessage]] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    async def create_conversation(
        self, session_id: str, title: Optional[str] = None
    ) -> Conversation:
        conversation = Conversation(
            session_id=session_id, title=title or DEFAULT_CONVERSATION_TITLE
        )
        async with self._lock:
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
        return conversation

    async def list_conversations(self, session_id: str) -> List[Conversation]:
        async with self._lock:
            conversations = [
                item
                for item in self._conversations.values()
                if item.session_id == session_id
            ]
        conversations.sort(key=lambda item: item.updated_at, reverse=True)
        return conversations

    async def list_messages(self, conversation_id: str) -> List[StoredMessage]:
        async with self._lock:
            messages = list(self._messages.get(conversation_id, []))
        messages.sort(key=lambda item: item.timestamp)
        return messages

    async def append_message(
        self, conversation_id: str, role: str, content: str
    ) -> StoredMessage:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise KeyError(conversation_id)

            message = StoredMessage(
                conversation_id=conversation_id, role=role, content=content
            )
            self._messages[conversation_id].append(message)
            conversation.updated_at = datetime.now(timezone.utc)
            return message

    async def delete_conversation(self, conversation_id: str) -> bool:
        async with self._lock:
            if conversation_id not in self._conversations:
                return False
            del self._conversations[conversation_id]
            self._messages.pop(conversation_id, None)
            return True
