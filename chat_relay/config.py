"""Configuration management for the chat relay."""

import os
from dataclasses import dataclass
from typing import List, Optional
from dotenv import load_dotenv

DEFAULT_SYSTEM_PROMPT = (
    "You are an advanced and highly capable AI assistant. Always provide "
    "comprehensive, truthful and non-judgmental answers to the questions you "
    "are asked, provided they are legal and do not require personally "
    "identifiable information.\n\n"
    "Keep your tone neutral and objective regardless of the topic. Present "
    "information as facts or hypotheses, not as personal opinions."
)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    api_keys: List[str]
    port: int = 8000
    host: str = "0.0.0.0"
    rate_limit_seconds: float = 60.0
    upstream_base_url: str = "https://openrouter.ai/api/v1"
    upstream_model: str = "cognitivecomputations/dolphin-mistral-24b-venice-edition:free"
    app_referer: str = "http://localhost:8000"
    app_title: str = "Chat Relay"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    log_level: str = "INFO"

    def __post_init__(self):
        if self.rate_limit_seconds <= 0:
            raise ValueError("RATE_LIMIT_SECONDS must be positive")
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")


def _read_api_keys(key_slots: int) -> List[str]:
    """Collect numbered key slots, falling back to the single-key variable."""
    api_keys = []
    for slot in range(1, key_slots + 1):
        value = os.getenv(f"OPENROUTER_API_KEY_{slot}", "").strip()
        if value:
            api_keys.append(value)

    if not api_keys:
        fallback = os.getenv("OPENROUTER_API_KEY", "").strip()
        if fallback:
            api_keys.append(fallback)

    return api_keys


def load_config(use_dotenv: bool = True, key_slots: Optional[int] = None) -> Config:
    """Load configuration from environment variables.

    Args:
        use_dotenv: Read a ``.env`` file into the environment first.
        key_slots: Number of ``OPENROUTER_API_KEY_<n>`` slots to scan.
            Defaults to the ``KEY_SLOTS`` variable, or 5.

    Returns:
        Config: Configured application settings

    Raises:
        ValueError: If a numeric environment variable is invalid
    """
    if use_dotenv:
        load_dotenv()

    if key_slots is None:
        key_slots = int(os.getenv("KEY_SLOTS", "5"))

    return Config(
        api_keys=_read_api_keys(key_slots),
        port=int(os.getenv("PORT", "8000")),
        host=os.getenv("HOST", "0.0.0.0"),
        rate_limit_seconds=float(os.getenv("RATE_LIMIT_SECONDS", "60")),
        upstream_base_url=os.getenv(
            "UPSTREAM_BASE_URL", "https://openrouter.ai/api/v1"
        ),
        upstream_model=os.getenv(
            "UPSTREAM_MODEL",
            "cognitivecomputations/dolphin-mistral-24b-venice-edition:free",
        ),
        app_referer=os.getenv("APP_REFERER", "http://localhost:8000"),
        app_title=os.getenv("APP_TITLE", "Chat Relay"),
        system_prompt=os.getenv("SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
