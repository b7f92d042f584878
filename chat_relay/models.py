"""Data models for the key pool and the conversation store."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List
import uuid

STATUS_AVAILABLE = "available"
STATUS_PENALIZED = "penalized"

ROLE_SYSTEM = "system"
ROLE_USER = "user"

DEFAULT_CONVERSATION_TITLE = "New Conversation"


def key_prefix(api_key: str) -> str:
    """Masked form of a key, safe to log or return."""
    if len(api_key) <= 11:
        return "*" * len(api_key)
    return f"{api_key[:8]}...{api_key[-3:]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class PoolState:
    """Round-robin state of the credential pool.

    ``rate_limited_until`` maps a pool index to the clock reading after which
    the key at that index may be handed out again.
    """

    keys: List[str] = field(default_factory=list)
    rate_limited_until: Dict[int, float] = field(default_factory=dict)
    cursor: int = 0


@dataclass
class Conversation:
    session_id: str
    title: str = DEFAULT_CONVERSATION_TITLE
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class StoredMessage:
    conversation_id: str
    role: str
    content: str
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
