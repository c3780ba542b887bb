"""LLM client for takeover message generation using Anthropic Claude models.

The takeover core hands this client a fully built prompt (conversation
context, style summary and instructions) and gets back the raw text of one
message. Output is untrusted: the caller sanitizes it before sending.
"""

import os
import logging
from typing import Optional, Dict, Any

import anthropic

from src.takeover.exceptions import GenerationError


# Configure logger
logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are texting on my behalf while I am busy. Write exactly as I would: match my tone, message length, capitalization, punctuation and emoji habits from the samples you are given. Never mention that you are an assistant or that someone else is writing. Reply with only the text of the message."""


class LLMClient:
    """LLM client generating single messages with Anthropic Claude."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-3-5-sonnet-20241022",
        max_tokens: int = 300,
        temperature: float = 0.8
    ):
        """Create the client.

        Args:
            api_key: Anthropic API key; falls back to ANTHROPIC_API_KEY.
            model: Claude model that writes the messages.
            max_tokens: Token cap for one message.
            temperature: Sampling temperature; higher reads less formulaic.

        Raises:
            ValueError: If no API key is available.
        """
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError(
                "No Anthropic API key: pass api_key or set "
                "ANTHROPIC_API_KEY"
            )

        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.request_count = 0

        self.client = anthropic.AsyncAnthropic(api_key=self.api_key)

        logger.info(f"Generating messages with {model}")

    async def generate(self, prompt: str) -> str:
        """Generate one message for the given prompt.

        Args:
            prompt: Complete user prompt built by the takeover core.

        Returns:
            Raw text of the model's reply.

        Raises:
            GenerationError: If the API call fails or returns no text.
        """
        self.request_count += 1

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=SYSTEM_PROMPT,
                messages=[{
                    "role": "user",
                    "content": prompt
                }]
            )
        except anthropic.APIError as e:
            logger.error(f"Generation request failed: {e}")
            raise GenerationError(f"Anthropic API error: {e}") from e

        text_blocks = [
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        ]
        if not text_blocks:
            raise GenerationError("Model returned no text content")

        response_text = "".join(text_blocks)
        logger.debug(f"Generated {len(response_text)} chars")
        return response_text

    def get_model_info(self) -> Dict[str, Any]:
        """Describe the client for status output.

        Returns:
            Model settings and how many requests have been made.
        """
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "request_count": self.request_count,
            "provider": "anthropic"
        }
