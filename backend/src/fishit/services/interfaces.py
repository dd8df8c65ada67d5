"""Narrow interfaces of the pipeline's external collaborators.

The pipeline only depends on these protocols; concrete clients live in
image_generation/, ipfs/ and blockchain/.
"""

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class StorageRefs:
    """Content identifiers returned by the storage publisher."""

    image_ref: str  # CID of the image
    metadata_ref: str  # CID of the metadata JSON
    metadata_uri: str  # ipfs://<metadata CID>, written on-chain


class ImageGenerator(Protocol):
    async def generate(self, tier: str, zone: str, seed: int) -> bytes:
        """Generate image bytes for a fish. Raises ImageGenerationError."""
        ...


class StoragePublisher(Protocol):
    async def publish(self, image: bytes, metadata_fields: dict[str, Any]) -> StorageRefs:
        """Upload image then metadata JSON. Raises StorageUploadError."""
        ...


class ChainFinalizer(Protocol):
    async def finalize(self, item_id: int, uri: str) -> str:
        """Write the token URI on-chain and return the tx hash. Raises ChainFinalizeError."""
        ...
