"""Relay failures and their HTTP representation."""

from typing import Dict, Optional

from starlette.responses import JSONResponse


class RelayError(Exception):
    """Base class for failures surfaced to the chat caller."""

    status_code: int = 500
    message: str = "Failed to get response from AI service"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def body(self) -> Dict[str, object]:
        return {"error": self.message}

    def headers(self) -> Dict[str, str]:
        return {}


class KeysUnconfiguredError(RelayError):
    """No upstream API keys were configured at startup."""

    status_code = 500
    message = "Upstream API key not configured"


class KeysExhaustedError(RelayError):
    """Every configured key is currently rate limited."""

    status_code = 503
    message = "Server is busy. Please try again later."

    def __init__(self, retry_after: int = 60):
        super().__init__()
        self.retry_after = retry_after

    def body(self) -> Dict[str, object]:
        return {"error": self.message, "rateLimited": True, "exhausted": True}

    def headers(self) -> Dict[str, str]:
        return {"Retry-After": str(self.retry_after)}


class InvalidRequestError(RelayError):
    """The caller sent a body that does not match the expected schema."""

    status_code = 400
    message = "Invalid request"


class UpstreamError(RelayError):
    """The completion provider answered with a non-success status."""

    message = "Failed to get response from AI service"

    def __init__(self, status_code: int):
        super().__init__(status_code=status_code)


def error_response(exc: RelayError) -> JSONResponse:
    return JSONResponse(
        content=exc.body(), status_code=exc.status_code, headers=exc.headers()
    )
