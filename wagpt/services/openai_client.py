import os
from dataclasses import dataclass
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from wagpt.config import (
    FALLBACK_TEXT,
    MODEL,
    NO_RESPONSE_TEXT,
    OPENAI_MAX_RETRIES,
    OPENAI_TIMEOUT_SECONDS,
    logger,
)


class MissingAPIKeyError(RuntimeError):
    """Raised when no OpenAI API key is configured."""


@dataclass
class Completion:
    """Result of a completion call. ok is False whenever text is a fallback."""

    text: str
    ok: bool = True
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "Completion":
        return cls(text=FALLBACK_TEXT, ok=False, error=error)


class OpenAIClient:
    """Manages OpenAI API interactions."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = MODEL,
        client: Any = None,
    ):
        """
        Initialize OpenAI client.

        A prebuilt client may be passed in; otherwise an AsyncOpenAI client
        is created from api_key (or OPENAI_API_KEY).
        """
        if client is None:
            if api_key is None:
                api_key = os.getenv("OPENAI_API_KEY", "").strip()
            if not api_key:
                raise MissingAPIKeyError(
                    "OpenAI API key is missing! Check your .env file.\n"
                    "Set it then re-run:\n"
                    "  export OPENAI_API_KEY='sk-proj-...'\n"
                )

            kwargs = {"api_key": api_key, "max_retries": OPENAI_MAX_RETRIES}
            if OPENAI_TIMEOUT_SECONDS is not None:
                kwargs["timeout"] = OPENAI_TIMEOUT_SECONDS
            client = AsyncOpenAI(**kwargs)

        self.client = client
        self.model = model

    async def complete(self, prompt: str) -> Completion:
        """
        Send a single-turn prompt to OpenAI and get a response.

        Never raises: failures are logged and turned into a fallback reply.
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )

            if not response.choices:
                return Completion(NO_RESPONSE_TEXT, ok=False, error="no choices")

            reply = (response.choices[0].message.content or "").strip()
            if not reply:
                return Completion(NO_RESPONSE_TEXT, ok=False, error="empty content")

            return Completion(reply)

        except openai.RateLimitError as e:
            logger.error("OpenAI rate-limited: %r", e)
            return Completion.failed(repr(e))

        except openai.AuthenticationError as e:
            logger.error("OpenAI auth failed: %r", e)
            return Completion.failed(repr(e))

        except Exception as e:
            logger.exception("OpenAI error: %r", e)
            return Completion.failed(repr(e))
