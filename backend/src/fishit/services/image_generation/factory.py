"""Image generator selection."""

from fishit.core.config import Settings
from fishit.services.image_generation.pollinations_client import PollinationsImageGenerator
from fishit.services.image_generation.replicate_client import ReplicateImageGenerator
from fishit.services.interfaces import ImageGenerator


def build_image_generator(settings: Settings) -> ImageGenerator:
    """Construct the image generator selected by IMAGE_PROVIDER."""
    if settings.image_provider == "replicate":
        return ReplicateImageGenerator(
            api_token=settings.replicate_api_token,
            model_version=settings.replicate_model_version or None,
            timeout=settings.image_timeout_seconds,
        )

    return PollinationsImageGenerator(
        base_url=settings.pollinations_base_url,
        size=settings.image_size,
        timeout=settings.image_timeout_seconds,
    )
