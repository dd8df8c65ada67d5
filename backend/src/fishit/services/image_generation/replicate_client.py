"""Replicate API image generator with error classification."""

import asyncio
from typing import Any

import httpx
import replicate
import structlog

from fishit.services.exceptions import ImageGenerationError
from fishit.services.image_generation.prompts import build_prompt

logger = structlog.get_logger()

DEFAULT_MODEL = "black-forest-labs/flux-schnell"


def classify_error(exception: Exception) -> ImageGenerationError:
    """Classify exception into a retryable or permanent generation error.

    Classification rules:
        - Timeout errors → retryable
        - 429 (rate limit) → retryable
        - 503 (service unavailable) → retryable
        - 401/403 (authentication) → permanent
        - Content policy violations → retryable (the seed changes nothing, but the sweep bounds it)
        - Connection errors → retryable
        - Other errors → permanent
    """
    error_message = str(exception)
    error_message_lower = error_message.lower()

    if "timeout" in error_message_lower:
        return _error(f"Network timeout: {error_message}", retryable=True)

    if "429" in error_message or "rate limit" in error_message_lower:
        return _error(f"Rate limit exceeded: {error_message}", retryable=True)

    if "503" in error_message or "service unavailable" in error_message_lower:
        return _error(f"Service unavailable: {error_message}", retryable=True)

    if (
        "401" in error_message
        or "403" in error_message
        or "unauthorized" in error_message_lower
        or "forbidden" in error_message_lower
        or "authentication" in error_message_lower
        or "invalid api token" in error_message_lower
    ):
        return _error(f"Authentication failed: {error_message}", retryable=False)

    if (
        "content policy" in error_message_lower
        or "nsfw" in error_message_lower
        or "safety" in error_message_lower
    ):
        return _error(f"Content policy violation: {error_message}", retryable=True)

    if isinstance(exception, (ConnectionError, OSError)):
        return _error(f"Connection error: {error_message}", retryable=True)

    return _error(f"Permanent error: {error_message}", retryable=False)


def _error(message: str, retryable: bool) -> ImageGenerationError:
    error = ImageGenerationError(message)
    error.retryable = retryable
    return error


class ReplicateImageGenerator:
    """Image generator running a Replicate model (flux-schnell by default)."""

    def __init__(
        self,
        api_token: str,
        model_version: str | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_token:
            raise ImageGenerationError("REPLICATE_API_TOKEN not configured")

        self.model = model_version or DEFAULT_MODEL
        self.timeout = timeout
        self.transport = transport
        self.client = replicate.Client(api_token=api_token)

    async def generate(self, tier: str, zone: str, seed: int) -> bytes:
        """Generate a fish image with the configured model.

        Raises:
            ImageGenerationError: SDK failure, unexpected output or download failure
        """
        prompt = build_prompt(tier, zone)

        try:
            # SDK is synchronous
            output = await asyncio.to_thread(
                self.client.run,
                self.model,
                input={"prompt": prompt, "seed": seed, "aspect_ratio": "1:1", "output_format": "png"},
            )
        except ImageGenerationError:
            raise
        except Exception as e:
            classified = classify_error(e)
            logger.warning(
                "replicate.generation_failed",
                tier=tier,
                seed=seed,
                error=str(e),
                retryable=classified.retryable,
            )
            raise classified from e

        image = await self._read_output(output)

        logger.info(
            "replicate.image_generated",
            model=self.model,
            tier=tier,
            zone=zone,
            seed=seed,
            size_bytes=len(image),
        )
        return image

    async def _read_output(self, output: Any) -> bytes:
        """Resolve model output (file object or URL, possibly in a list) to bytes."""
        if isinstance(output, list):
            if not output:
                raise ImageGenerationError("Replicate returned no images")
            output = output[0]

        if hasattr(output, "read"):
            return await asyncio.to_thread(output.read)

        if isinstance(output, str):
            return await self._download(output)

        raise ImageGenerationError(f"Unexpected output format from Replicate: {type(output)}")

    async def _download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise classify_error(e) from e

        if not response.content:
            raise ImageGenerationError("Replicate image download returned an empty body")
        return response.content
