"""Pollinations.ai image generation client.

Pollinations serves images for a URL-encoded prompt with plain HTTP GET and
needs no API key. The seed query parameter makes results repeatable.
"""

from urllib.parse import quote

import httpx
import structlog

from fishit.services.exceptions import ImageGenerationError
from fishit.services.image_generation.prompts import build_prompt

logger = structlog.get_logger()


class PollinationsImageGenerator:
    """Image generator backed by image.pollinations.ai."""

    def __init__(
        self,
        base_url: str = "https://image.pollinations.ai",
        size: int = 1024,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.size = size
        self.timeout = timeout
        self.transport = transport

    def build_url(self, prompt: str) -> str:
        return f"{self.base_url}/prompt/{quote(prompt, safe='')}"

    async def generate(self, tier: str, zone: str, seed: int) -> bytes:
        """Generate a fish image.

        Args:
            tier: Fish tier (Junk, Common, Rare, Epic, Legendary)
            zone: Zone where the fish was caught
            seed: Generation seed

        Returns:
            Raw image bytes

        Raises:
            ImageGenerationError: Non-2xx response, empty body or network failure
        """
        prompt = build_prompt(tier, zone)
        params = {
            "width": self.size,
            "height": self.size,
            "seed": seed,
            "nologo": "true",
        }

        logger.debug("pollinations.request", tier=tier, zone=zone, seed=seed)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.build_url(prompt), params=params)
        except httpx.TimeoutException as e:
            raise ImageGenerationError(f"Pollinations request timeout: {e}") from e
        except httpx.HTTPError as e:
            raise ImageGenerationError(f"Pollinations network error: {e}") from e

        if not response.is_success:
            raise ImageGenerationError(
                f"Pollinations API error ({response.status_code}): {response.reason_phrase}"
            )

        if not response.content:
            raise ImageGenerationError("Pollinations returned an empty image")

        logger.info(
            "pollinations.image_generated",
            tier=tier,
            zone=zone,
            seed=seed,
            size_bytes=len(response.content),
        )
        return response.content
