import json
import logging
import math
from typing import AsyncIterator, Dict, List, Optional, Protocol

import httpx
from starlette.background import BackgroundTask
from starlette.responses import Response, StreamingResponse

from chat_relay.config import Config
from chat_relay.errors import (
    KeysExhaustedError,
    KeysUnconfiguredError,
    RelayError,
    UpstreamError,
    error_response,
)
from chat_relay.models import ROLE_SYSTEM, ROLE_USER, key_prefix
from chat_relay.schemas import ChatRequest

logger = logging.getLogger(__name__)

# First attempt plus one retry with a different key after a 429.
MAX_ATTEMPTS = 2

DONE_EVENT = "data: [DONE]\n\n"


class KeyManager(Protocol):
    async def next_available(self) -> Optional[str]: ...

    async def penalize(self, api_key: str, duration: Optional[float] = None) -> None: ...

    def __len__(self) -> int: ...


def build_messages(chat_request: ChatRequest, system_prompt: str) -> List[Dict[str, str]]:
    """System directive, then prior turns in order, then the new prompt."""
    messages = [{"role": ROLE_SYSTEM, "content": system_prompt}]
    messages.extend(
        {"role": item.role, "content": item.content}
        for item in chat_request.conversation_history
    )
    messages.append({"role": ROLE_USER, "content": chat_request.message})
    return messages


def format_event(content: str) -> str:
    return f"data: {json.dumps({'content': content})}\n\n"


async def select_credential(key_manager: KeyManager, retry_after: int = 60) -> str:
    api_key = await key_manager.next_available()
    if api_key is not None:
        return api_key
    if len(key_manager) == 0:
        raise KeysUnconfiguredError()
    raise KeysExhaustedError(retry_after=retry_after)


async def open_upstream(
    http_client: httpx.AsyncClient,
    config: Config,
    messages: List[Dict[str, str]],
    api_key: str,
) -> httpx.Response:
    """Send the completion request and return the response unread."""
    request = http_client.build_request(
        "POST",
        "/chat/completions",
        json={
            "model": config.upstream_model,
            "messages": messages,
            "stream": True,
        },
        headers={
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": config.app_referer,
            "X-Title": config.app_title,
        },
    )
    try:
        return await http_client.send(request, stream=True)
    except httpx.RequestError as exc:
        logger.error(
            "Request error (key=%s): %s", key_prefix(api_key), exc.__class__.__name__
        )
        raise UpstreamError(502) from exc


async def relay(
    messages: List[Dict[str, str]],
    key_manager: KeyManager,
    http_client: httpx.AsyncClient,
    config: Config,
    api_key: str,
) -> httpx.Response:
    """
    Open a successful upstream stream, rotating once on rate limiting.

    Flow:
    1. Send the request with ``api_key``
    2. 2xx -> return the open response for re-streaming
    3. 429 -> penalize the key, ask the pool for another one:
       - none left -> KeysExhaustedError
       - otherwise retry once; a second 429 also ends in KeysExhaustedError
    4. Any other status -> UpstreamError carrying that status, no retry
    """
    retry_after = math.ceil(config.rate_limit_seconds)

    for attempt in range(MAX_ATTEMPTS):
        response = await open_upstream(http_client, config, messages, api_key)
        if response.is_success:
            return response

        try:
            error_body = await response.aread()
        except httpx.HTTPError as exc:
            logger.warning("Could not read upstream error body: %s", exc)
            error_body = b""
        finally:
            await response.aclose()

        if response.status_code != 429:
            logger.error(
                "Upstream error %s (key=%s): %s",
                response.status_code,
                key_prefix(api_key),
                error_body[:500].decode("utf-8", errors="replace"),
            )
            raise UpstreamError(response.status_code)

        logger.warning(
            "429 from upstream (key=%s, attempt=%s)",
            key_prefix(api_key),
            attempt + 1,
        )
        await key_manager.penalize(api_key)

        if attempt + 1 == MAX_ATTEMPTS:
            break
        next_key = await key_manager.next_available()
        if next_key is None:
            break
        api_key = next_key

    raise KeysExhaustedError(retry_after=retry_after)


def _delta_content(chunk: object) -> Optional[str]:
    if not isinstance(chunk, dict):
        return None
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


async def reframe_stream(response: httpx.Response) -> AsyncIterator[str]:
    """Re-emit upstream SSE deltas as ``{"content": ...}`` events.

    Lines are reassembled by httpx, so a payload split across transport
    chunks is parsed once it is complete. Unparsable payloads are logged and
    dropped. Exactly one ``[DONE]`` follows when upstream completes; a
    transport failure ends the stream without it. The upstream response is
    closed on every exit path, including the caller going away.
    """
    completed = False
    try:
        async for line in response.aiter_lines():
            line = line.strip()
            if not line.startswith("data:"):
                continue
            data = line[5:].strip()

            if data == "[DONE]":
                completed = True
                break

            try:
                chunk = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("Skipping unparsable upstream fragment: %.200s", data)
                continue

            if isinstance(chunk, dict) and "error" in chunk:
                logger.error("Upstream reported an error mid-stream: %s", chunk["error"])
                continue

            content = _delta_content(chunk)
            if content:
                yield format_event(content)
        else:
            completed = True
    except httpx.HTTPError as exc:
        logger.error("Error streaming response: %s", exc)
    finally:
        await response.aclose()

    if completed:
        yield DONE_EVENT


async def stream_chat(
    chat_request: ChatRequest,
    key_manager: KeyManager,
    http_client: httpx.AsyncClient,
    config: Config,
) -> Response:
    """Run one chat exchange and map its outcome onto an HTTP response."""
    messages = build_messages(chat_request, config.system_prompt)

    try:
        api_key = await select_credential(
            key_manager, retry_after=math.ceil(config.rate_limit_seconds)
        )
        upstream = await relay(messages, key_manager, http_client, config, api_key)
    except RelayError as exc:
        if isinstance(exc, KeysUnconfiguredError):
            logger.error("Chat request rejected: no upstream API keys configured")
        return error_response(exc)

    return StreamingResponse(
        reframe_stream(upstream),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        background=BackgroundTask(upstream.aclose),
    )
