"""
Generative model collaborators.

ModelClient is the seam the tool invoker calls through; ClaudeModelClient is
the production implementation on top of the Anthropic SDK. Tests substitute
fakes with the same `generate` coroutine.
"""

import base64
import logging
from typing import Optional, Protocol

import httpx
from anthropic import AsyncAnthropic

from platewise.config import settings


logger = logging.getLogger(__name__)


class ModelClient(Protocol):
    async def generate(
        self, prompt_variables: dict, image: Optional[bytes] = None
    ) -> str: ...


def detect_media_type(image: bytes) -> str:
    """Determine media type from the image's magic bytes."""
    if image.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image.startswith(b"GIF87a") or image.startswith(b"GIF89a"):
        return "image/gif"
    if image[:4] == b"RIFF" and image[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


class ClaudeModelClient:
    """Single-shot Claude call returning the concatenated text of the reply."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        timeout = httpx.Timeout(
            timeout=settings.anthropic_timeout,
            connect=settings.anthropic_connect_timeout,
        )
        self.client = AsyncAnthropic(
            api_key=api_key or settings.anthropic_api_key,
            timeout=timeout,
            max_retries=0,  # the tool invoker owns the retry policy
        )
        self.model = model or settings.analysis_model

    async def generate(
        self, prompt_variables: dict, image: Optional[bytes] = None
    ) -> str:
        content = []
        if image:
            content.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": detect_media_type(image),
                        "data": base64.standard_b64encode(image).decode("utf-8"),
                    },
                }
            )
        content.append({"type": "text", "text": prompt_variables.get("prompt", "")})

        response = await self.client.messages.create(
            model=self.model,
            max_tokens=prompt_variables.get("max_tokens", settings.tool_max_tokens),
            temperature=settings.analysis_temperature,
            system=prompt_variables.get("system", ""),
            messages=[{"role": "user", "content": content}],
        )

        # Extract text from response (handle multi-block responses)
        response_text = ""
        for block in response.content:
            if hasattr(block, "text"):
                response_text += block.text

        logger.debug(
            "Model %s replied with %d characters", self.model, len(response_text)
        )
        return response_text
