"""Service error hierarchy for the mint pipeline.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientNetworkError: RPC / network failures, retried on the next tick without status change
- ExternalServiceError: Image generation and storage failures (record marked failed)
- ChainFinalizeError: setTokenURI failures, split by how the pipeline reacts to them
- ConfigurationError: Missing or invalid startup configuration (fatal)
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class ConfigurationError(ServiceError):
    """Required connection parameters are missing or invalid.

    Raised at startup only. The process must not start when this is raised.
    """

    pass


class TransientNetworkError(ServiceError):
    """Transient error that may succeed on the next poll or sweep.

    Examples:
    - RPC node timeouts
    - eth_getLogs range / rate limit rejections
    - Connection refused
    """

    pass


class MintRecordNotFoundError(ServiceError):
    """No mint record exists for the requested item."""

    def __init__(self, item_id: int):
        super().__init__(f"Mint record {item_id} not found")
        self.item_id = item_id


# External service errors (generation + storage)
class ExternalServiceError(ServiceError):
    """Base exception for image generation and storage publishing failures."""

    pass


class ImageGenerationError(ExternalServiceError):
    """Image generation failed (non-2xx response, SDK error, invalid output)."""

    retryable: bool = True


class StorageUploadError(ExternalServiceError):
    """Base exception for IPFS upload errors."""

    pass


class IPFSRateLimitError(StorageUploadError):
    """Rate limit exceeded (429)."""

    pass


class IPFSNetworkError(StorageUploadError):
    """Network timeout or service unavailable."""

    pass


class IPFSAuthError(StorageUploadError):
    """Authentication failure (401, 403)."""

    pass


class IPFSValidationError(StorageUploadError):
    """Bad request (400)."""

    pass


# Chain finalization errors
class ChainFinalizeError(ServiceError):
    """Base exception for setTokenURI failures."""

    pass


class AlreadyDoneError(ChainFinalizeError):
    """Token URI is already set on-chain or the request is rejected as invalid.

    Benign: the pipeline treats the item as finalized.
    """

    pass


class SequencingConflictError(ChainFinalizeError):
    """Nonce / sequencing conflict with another pending transaction.

    Retried on the next sweep without counting as a failure.
    """

    pass


class UnknownFinalizeError(ChainFinalizeError):
    """Any other finalization failure (revert, timeout, submission error)."""

    pass
