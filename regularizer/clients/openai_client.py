"""
OpenAI chat transport with rate limiting using aiolimiter.
"""
import asyncio
import os
from typing import Optional
from aiolimiter import AsyncLimiter
from openai import AsyncOpenAI
from loguru import logger

from regularizer.config import OPENAI_API_KEY, CLASSIFIER_RATE, CONCURRENCY


class OpenAIClient:
    """
    Shared transport for classifier sessions.

    Holds the HTTP client and the limits on outgoing traffic: an AsyncLimiter
    for requests per second and a semaphore for requests in flight. It keeps no
    conversation state; each classifier session supplies its own messages.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_rate: int = CLASSIFIER_RATE,
        concurrency: int = CONCURRENCY,
        client: Optional[AsyncOpenAI] = None,
    ):
        if client is None:
            api_key = api_key or OPENAI_API_KEY or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError("OPENAI_API_KEY must be set in environment or config")
            client = AsyncOpenAI(api_key=api_key)
        self.client = client
        # Token bucket: max_rate requests per second across all sessions
        self.rate_limiter = AsyncLimiter(max_rate=max_rate, time_period=1.0)
        self.in_flight = asyncio.Semaphore(concurrency)

    async def chat_completions_create(self, **kwargs):
        """
        Create a chat completion with rate limiting.
        Accepts all arguments that AsyncOpenAI.chat.completions.create accepts.

        Returns:
            The response from OpenAI's chat completions API.
        """
        async with self.in_flight:
            async with self.rate_limiter:
                try:
                    return await self.client.chat.completions.create(**kwargs)
                except Exception as e:
                    logger.debug(f"⚠️ OpenAI API request failed: {e}")
                    raise

    async def close(self):
        """Close the underlying HTTP client."""
        await self.client.close()
