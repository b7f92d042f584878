"""FastAPI application for the chat relay."""

import logging
from contextlib import asynccontextmanager
from typing import Dict

import httpx
import uvicorn
from fastapi import FastAPI, Request

from chat_relay.admin import admin_router
from chat_relay.config import load_config
from chat_relay.conversations import conversations_router
from chat_relay.errors import InvalidRequestError, error_response
from chat_relay.key_manager import KeyManager
from chat_relay.relay import stream_chat
from chat_relay.schemas import ChatRequest, parse_body
from chat_relay.store import ConversationStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle: startup and shutdown."""
    config = load_config()

    logging.basicConfig(level=getattr(logging, config.log_level))

    # No read timeout: a completion stream stays open as long as upstream sends.
    http_client = httpx.AsyncClient(
        base_url=config.upstream_base_url,
        timeout=httpx.Timeout(10.0, read=None),
        limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
    )

    app.state.config = config
    app.state.http_client = http_client
    app.state.key_manager = KeyManager(config)
    app.state.store = ConversationStore()

    if config.api_keys:
        logger.info("Chat relay started with %d keys", len(config.api_keys))
    else:
        logger.error(
            "Chat relay started without API keys; set OPENROUTER_API_KEY_1 "
            "or OPENROUTER_API_KEY"
        )

    yield

    await http_client.aclose()
    logger.info("Chat relay stopped")


app = FastAPI(title="Chat Relay", lifespan=lifespan)

app.include_router(admin_router)
app.include_router(conversations_router)


def _pool_summary(request: Request) -> Dict[str, object]:
    key_manager = request.app.state.key_manager
    status = key_manager.get_status()
    return {
        "keys_available": status["available_keys"],
        "total_keys": status["total_keys"],
        "exhausted": key_manager.all_penalized(),
    }


@app.get("/")
async def root(request: Request) -> Dict[str, object]:
    return {"service": "Chat Relay", "status": "running", **_pool_summary(request)}


@app.get("/health")
async def health_check(request: Request) -> Dict[str, object]:
    """Health check endpoint with key pool status."""
    summary = _pool_summary(request)
    if summary["total_keys"] == 0:
        status = "misconfigured"
    elif summary["exhausted"]:
        status = "degraded"
    else:
        status = "healthy"
    return {"status": status, **summary}


@app.post("/api/chat")
async def chat(request: Request):
    """Relay one chat exchange upstream and stream the reply back."""
    try:
        chat_request = await parse_body(request, ChatRequest)
    except InvalidRequestError as exc:
        return error_response(exc)

    return await stream_chat(
        chat_request=chat_request,
        key_manager=request.app.state.key_manager,
        http_client=request.app.state.http_client,
        config=request.app.state.config,
    )


def run() -> None:
    """Serve the app with uvicorn using HOST and PORT from the environment."""
    config = load_config()
    uvicorn.run(app, host=config.host, port=config.port)
