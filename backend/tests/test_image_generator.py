"""Image generation tests: prompts, Pollinations over MockTransport, Replicate errors."""

from unittest.mock import MagicMock

import httpx
import pytest

from fishit.core.config import Settings
from fishit.services.exceptions import ImageGenerationError
from fishit.services.image_generation.factory import build_image_generator
from fishit.services.image_generation.pollinations_client import PollinationsImageGenerator
from fishit.services.image_generation.prompts import (
    BASE_STYLE,
    TIER_PROMPTS,
    ZONE_CONTEXTS,
    build_prompt,
    validate_prompt,
)
from fishit.services.image_generation.replicate_client import (
    ReplicateImageGenerator,
    classify_error,
)


class TestPrompts:
    def test_prompt_combines_tier_zone_and_style(self):
        prompt = build_prompt("Legendary", "Abyssal")

        assert prompt.startswith(TIER_PROMPTS["Legendary"])
        assert ZONE_CONTEXTS["Abyssal"] in prompt
        assert prompt.endswith(BASE_STYLE)

    def test_unknown_tier_and_zone_fall_back(self):
        assert build_prompt("Mythic", "Space") == build_prompt("Common", "Shallow")

    def test_every_combination_fits_length_limit(self):
        for tier in TIER_PROMPTS:
            for zone in ZONE_CONTEXTS:
                assert len(build_prompt(tier, zone)) <= 1000

    def test_validate_prompt(self):
        assert validate_prompt("a fish") == "a fish"
        with pytest.raises(ValueError, match="empty"):
            validate_prompt("")
        with pytest.raises(ValueError, match="maximum length"):
            validate_prompt("x" * 1001)


@pytest.mark.asyncio
async def test_pollinations_request_carries_prompt_and_seed():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=b"\x89PNG image")

    generator = PollinationsImageGenerator(
        base_url="https://image.example/", size=512, transport=httpx.MockTransport(handler)
    )

    image = await generator.generate("Rare", "Reef", 567890)

    assert image == b"\x89PNG image"
    request = requests[0]
    assert request.url.host == "image.example"
    assert request.url.path.startswith("/prompt/")
    assert request.url.params["seed"] == "567890"
    assert request.url.params["width"] == "512"
    assert request.url.params["height"] == "512"
    assert request.url.params["nologo"] == "true"


def test_pollinations_url_encodes_prompt():
    generator = PollinationsImageGenerator(base_url="https://image.example")

    assert generator.build_url("a fish, 8k") == "https://image.example/prompt/a%20fish%2C%208k"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(429, text="slow down"),
        httpx.Response(200, content=b""),
    ],
)
@pytest.mark.asyncio
async def test_pollinations_failures_raise_generation_error(response):
    generator = PollinationsImageGenerator(transport=httpx.MockTransport(lambda request: response))

    with pytest.raises(ImageGenerationError):
        await generator.generate("Rare", "Reef", 1)


@pytest.mark.asyncio
async def test_pollinations_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    generator = PollinationsImageGenerator(transport=httpx.MockTransport(handler))

    with pytest.raises(ImageGenerationError, match="network error"):
        await generator.generate("Rare", "Reef", 1)


@pytest.mark.parametrize(
    "error, retryable",
    [
        (Exception("Request timeout after 60s"), True),
        (Exception("HTTP 429: rate limit"), True),
        (Exception("503 Service Unavailable"), True),
        (Exception("401 Unauthorized"), False),
        (Exception("Invalid API token"), False),
        (Exception("NSFW content detected"), True),
        (ConnectionError("connection reset"), True),
        (Exception("model schema mismatch"), False),
    ],
)
def test_replicate_classify_error(error, retryable):
    classified = classify_error(error)

    assert isinstance(classified, ImageGenerationError)
    assert classified.retryable is retryable


def test_replicate_requires_token():
    with pytest.raises(ImageGenerationError, match="REPLICATE_API_TOKEN"):
        ReplicateImageGenerator(api_token="")


@pytest.mark.asyncio
async def test_replicate_reads_file_output():
    generator = ReplicateImageGenerator(api_token="r8_test")
    output = MagicMock()
    output.read.return_value = b"png"
    generator.client = MagicMock()
    generator.client.run.return_value = [output]

    assert await generator.generate("Epic", "DeepSea", 42) == b"png"

    assert generator.client.run.call_args.args == ("black-forest-labs/flux-schnell",)
    assert generator.client.run.call_args.kwargs["input"]["seed"] == 42
    assert generator.client.run.call_args.kwargs["input"]["prompt"] == build_prompt("Epic", "DeepSea")


@pytest.mark.asyncio
async def test_replicate_downloads_url_output():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"downloaded"))
    generator = ReplicateImageGenerator(api_token="r8_test", transport=transport)
    generator.client = MagicMock()
    generator.client.run.return_value = "https://replicate.delivery/out.png"

    assert await generator.generate("Rare", "Reef", 1) == b"downloaded"


@pytest.mark.asyncio
async def test_replicate_sdk_errors_are_classified():
    generator = ReplicateImageGenerator(api_token="r8_test")
    generator.client = MagicMock()
    generator.client.run.side_effect = Exception("401 Unauthorized")

    with pytest.raises(ImageGenerationError) as exc_info:
        await generator.generate("Rare", "Reef", 1)

    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_replicate_empty_output():
    generator = ReplicateImageGenerator(api_token="r8_test")
    generator.client = MagicMock()
    generator.client.run.return_value = []

    with pytest.raises(ImageGenerationError, match="no images"):
        await generator.generate("Rare", "Reef", 1)


def test_factory_selects_provider():
    pollinations = build_image_generator(Settings(IMAGE_PROVIDER="pollinations"))
    replicate = build_image_generator(
        Settings(IMAGE_PROVIDER="replicate", REPLICATE_API_TOKEN="r8_test")
    )

    assert isinstance(pollinations, PollinationsImageGenerator)
    assert isinstance(replicate, ReplicateImageGenerator)
