"""Pinata IPFS client for uploading fish images and metadata."""

import json
import re
from typing import Any

import httpx
import structlog

from fishit.services.exceptions import (
    IPFSAuthError,
    IPFSNetworkError,
    IPFSRateLimitError,
    IPFSValidationError,
    StorageUploadError,
)
from fishit.services.interfaces import StorageRefs

logger = structlog.get_logger()


def _slug(name: str) -> str:
    """Filesystem-friendly name, e.g. "Rare Fish #42" -> "rare-fish-42"."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "fish"


def _raise_for_pinata_status(response: httpx.Response, endpoint: str) -> None:
    """Map Pinata error responses onto the IPFS error family."""
    if response.status_code == 429:
        raise IPFSRateLimitError(f"Rate limit exceeded: {response.text}")
    elif response.status_code in (500, 502, 503, 504):
        raise IPFSNetworkError(f"Service unavailable ({response.status_code}): {response.text}")
    elif response.status_code == 401:
        raise IPFSAuthError(
            "Unauthorized: Invalid API key. "
            "Check PINATA_JWT configuration in .env file. "
            "Verify JWT token is active at https://app.pinata.cloud/developers/api-keys"
        )
    elif response.status_code == 403:
        raise IPFSAuthError(
            "Forbidden: Access denied. "
            f"Check PINATA_JWT permissions (requires {endpoint} access). "
            "Verify account status and quota limits at https://app.pinata.cloud/billing"
        )
    elif response.status_code == 400:
        raise IPFSValidationError(f"Bad request: {response.text}")
    elif not response.is_success:
        raise StorageUploadError(f"Pinata {endpoint} failed ({response.status_code}): {response.text}")


class PinataPublisher:
    """Storage publisher pinning images and metadata with Pinata."""

    def __init__(
        self,
        jwt_token: str,
        gateway_domain: str = "gateway.pinata.cloud",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Pinata client.

        Args:
            jwt_token: Pinata API JWT token (from PINATA_JWT env var)
            gateway_domain: Gateway domain for URL generation (default: public gateway)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.jwt_token = jwt_token
        self.gateway_domain = gateway_domain
        self.timeout = timeout
        self.transport = transport
        self.base_url = "https://api.pinata.cloud"
        self.headers = {"Authorization": f"Bearer {jwt_token}"}

    async def publish(self, image: bytes, metadata_fields: dict[str, Any]) -> StorageRefs:
        """Pin the image, then the metadata JSON referencing it.

        Args:
            image: Raw image bytes
            metadata_fields: Metadata JSON without "image" (name, description, attributes)

        Returns:
            StorageRefs with both CIDs and the ipfs:// metadata URI

        Raises:
            StorageUploadError: Any upload failure (see IPFS* subclasses)
        """
        name = metadata_fields.get("name", "fish")

        image_cid = await self.upload_image(image, name)
        metadata = {**metadata_fields, "image": f"ipfs://{image_cid}"}
        metadata_cid = await self.upload_metadata(metadata, name)

        logger.info(
            "pinata.published",
            name=name,
            image_cid=image_cid,
            metadata_cid=metadata_cid,
            gateway_url=self.get_gateway_url(metadata_cid),
        )
        return StorageRefs(
            image_ref=image_cid,
            metadata_ref=metadata_cid,
            metadata_uri=f"ipfs://{metadata_cid}",
        )

    async def upload_image(self, image: bytes, name: str) -> str:
        """Upload image bytes to IPFS via Pinata.

        Returns:
            IPFS CID of the image

        Raises:
            StorageUploadError: Rate limit, auth, validation or network failure
        """
        if not image:
            raise IPFSValidationError("Image is empty")

        filename = f"{_slug(name)}.png"
        files = {"file": (filename, image, "image/png")}
        data = {
            "pinataOptions": json.dumps({"cidVersion": 1}),
            "pinataMetadata": json.dumps({"name": f"FishIt-Img-{_slug(name)}"}),
        }

        response = await self._post("/pinning/pinFileToIPFS", files=files, data=data)
        _raise_for_pinata_status(response, "pinFileToIPFS")
        return response.json()["IpfsHash"]

    async def upload_metadata(self, metadata: dict[str, Any], name: str) -> str:
        """Upload metadata JSON to IPFS via Pinata.

        Returns:
            IPFS CID of the metadata JSON

        Raises:
            StorageUploadError: Rate limit, auth, validation or network failure
        """
        payload = {
            "pinataContent": metadata,
            "pinataOptions": {"cidVersion": 1},
            "pinataMetadata": {"name": f"FishIt-Meta-{_slug(name)}"},
        }

        response = await self._post("/pinning/pinJSONToIPFS", json=payload)
        _raise_for_pinata_status(response, "pinJSONToIPFS")
        return response.json()["IpfsHash"]

    async def test_authentication(self) -> bool:
        """Verify the JWT against Pinata's testAuthentication endpoint.

        Raises:
            IPFSAuthError: If the token is rejected
            StorageUploadError: Any other failure
        """
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/data/testAuthentication", headers=self.headers
                )
        except httpx.HTTPError as e:
            raise IPFSNetworkError(f"Network error: {e}") from e

        _raise_for_pinata_status(response, "testAuthentication")
        logger.info("pinata.authenticated")
        return True

    def get_gateway_url(self, cid: str) -> str:
        """Convert CID to gateway URL for browser access."""
        return f"https://{self.gateway_domain}/ipfs/{cid}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _post(self, path: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.post(f"{self.base_url}{path}", headers=self.headers, **kwargs)
        except httpx.TimeoutException as e:
            raise IPFSNetworkError(f"Request timeout after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise IPFSNetworkError(f"Network error: {e}") from e
