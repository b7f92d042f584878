"""Request bodies accepted by the HTTP routes."""

from typing import List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.requests import Request

from chat_relay.errors import InvalidRequestError

ModelT = TypeVar("ModelT", bound=BaseModel)


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1)
    conversation_history: List[HistoryMessage] = Field(
        default_factory=list, alias="conversationHistory"
    )
    conversation_id: Optional[str] = Field(None, alias="conversationId")


class CreateConversationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., min_length=1, alias="sessionId")
    title: Optional[str] = Field(None, max_length=255)


class CreateMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(..., min_length=1, alias="conversationId")
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)


def _describe(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    if location:
        return f"{location}: {error['msg']}"
    return str(error["msg"])


async def parse_body(request: Request, model: Type[ModelT]) -> ModelT:
    """Validate a JSON request body, raising InvalidRequestError on failure."""
    try:
        payload = await request.json()
    except ValueError as exc:
        raise InvalidRequestError("Request body must be valid JSON") from exc

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidRequestError(_describe(exc)) from exc
