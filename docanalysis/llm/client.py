# docanalysis/llm/client.py

import logging
import time
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from docanalysis.config import Settings
from docanalysis.errors import CompletionError, ConfigurationError

logger = logging.getLogger(__name__)


class CompletionClient:
    """
    Client for the OpenAI chat completions API.

    Handles prompt formatting and API calls with error handling.
    """

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        """
        Initialize OpenAI client.

        Args:
            settings: Runtime settings (model, temperature, credentials)
            client: Pre-built client; created from settings when omitted
        """
        if client is None:

            if not settings.openai_api_key:
                raise ConfigurationError(
                    "OPENAI_API_KEY environment variable not set. "
                    "Please set it before running the application."
                )

            client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.llm_timeout_seconds,
            )

        self.client = client
        self.model = settings.llm_model
        self.temperature = settings.llm_temperature
        self.max_tokens = settings.llm_max_tokens

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """
        Generate text using OpenAI API.

        Args:
            system_prompt: Role, tone and output contract
            user_prompt: Project data, documents and retrieved context

        Returns:
            Generated text response

        Raises:
            CompletionError: If the API call fails or returns no content
        """
        start_time = time.time()

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )

        except OpenAIError as e:

            logger.error(
                "Completion request failed",
                extra={
                    "model": self.model,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )

            raise CompletionError(f"OpenAI API call failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None

        if not content or not content.strip():
            raise CompletionError("OpenAI API returned an empty completion")

        logger.info(
            "Completion generated",
            extra={
                "model": self.model,
                "response_length": len(content),
                "latency_seconds": round(time.time() - start_time, 3),
            },
        )

        return content

    async def close(self):

        close = getattr(self.client, "close", None)

        if close is not None:
            await close()
