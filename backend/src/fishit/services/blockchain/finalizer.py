"""Chain finalizer writing token URIs to the FishNFT contract."""

import asyncio

import structlog
from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted

from fishit.abi import get_contract_abi
from fishit.services.exceptions import (
    AlreadyDoneError,
    ChainFinalizeError,
    SequencingConflictError,
    UnknownFinalizeError,
)

logger = structlog.get_logger()

# Checked before ALREADY_DONE_MARKERS: "already known" is a nonce conflict
SEQUENCING_MARKERS = (
    "nonce too low",
    "nonce has already been used",
    "replacement transaction underpriced",
    "already known",
)

ALREADY_DONE_MARKERS = (
    "uri already set",
    "already set",
    "already finalized",
    "already revealed",
    "nonexistent token",
    "invalid token",
)


def classify_finalize_error(error: Exception) -> type[ChainFinalizeError]:
    """Map a raw web3/RPC error onto the finalize error family.

    Args:
        error: Exception raised while estimating, submitting or confirming

    Returns:
        SequencingConflictError, AlreadyDoneError or UnknownFinalizeError
    """
    message = str(error).lower()

    if any(marker in message for marker in SEQUENCING_MARKERS):
        return SequencingConflictError
    if any(marker in message for marker in ALREADY_DONE_MARKERS):
        return AlreadyDoneError
    return UnknownFinalizeError


class ChainFinalizer:
    """Submits setTokenURI transactions signed by the backend signer."""

    def __init__(
        self,
        w3: Web3,
        contract_address: str,
        signer_private_key: str,
        gas_multiplier: float = 1.2,
        block_confirmations: int = 2,
        transaction_timeout: int = 180,
        confirmation_poll_interval: float = 2.0,
    ):
        """
        Initialize chain finalizer.

        Args:
            w3: Web3 instance connected to the chain RPC
            contract_address: FishNFT contract address
            signer_private_key: Backend signer private key (0x-prefixed hex)
            gas_multiplier: Safety multiplier applied to estimated gas (default: 1.2)
            block_confirmations: Confirmation depth required before success (default: 2)
            transaction_timeout: Max wait time for the receipt and confirmations in seconds
            confirmation_poll_interval: Seconds between block number checks while confirming
        """
        self.w3 = w3
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.signer_private_key = signer_private_key
        self.gas_multiplier = gas_multiplier
        self.block_confirmations = block_confirmations
        self.transaction_timeout = transaction_timeout
        self.confirmation_poll_interval = confirmation_poll_interval

        self.contract = self.w3.eth.contract(
            address=self.contract_address, abi=get_contract_abi("FishNFT")
        )

        self.signer_account = Account.from_key(signer_private_key)
        self.signer_address = self.signer_account.address

        logger.info(
            "finalizer.initialized",
            signer_address=self.signer_address,
            contract_address=self.contract_address,
            gas_multiplier=gas_multiplier,
            block_confirmations=block_confirmations,
        )

    async def finalize(self, item_id: int, uri: str) -> str:
        """Write uri as the token URI of item_id and wait for confirmations.

        Args:
            item_id: Token ID
            uri: Metadata URI (ipfs://<CID>)

        Returns:
            Transaction hash (0x-prefixed hex string)

        Raises:
            AlreadyDoneError: URI already set or token rejected by the contract
            SequencingConflictError: Nonce conflict with another pending transaction
            UnknownFinalizeError: Revert, timeout or any other failure
        """
        # A previous attempt may have landed after its receipt wait timed out
        if await self.current_token_uri(item_id) == uri:
            logger.info("finalizer.uri_already_set", item_id=item_id, uri=uri)
            raise AlreadyDoneError(f"Token {item_id} URI already set to {uri}")

        try:
            tx_hash = await asyncio.to_thread(self._submit, item_id, uri)
        except Exception as e:
            error_cls = classify_finalize_error(e)
            logger.warning(
                "finalizer.submission_failed",
                item_id=item_id,
                error=str(e),
                classified_as=error_cls.__name__,
            )
            raise error_cls(f"setTokenURI submission failed for token {item_id}: {e}") from e

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info("finalizer.transaction_submitted", item_id=item_id, tx_hash=tx_hash_hex)

        try:
            receipt = await asyncio.to_thread(
                self.w3.eth.wait_for_transaction_receipt,
                tx_hash,
                timeout=self.transaction_timeout,
            )
        except TimeExhausted as e:
            logger.warning(
                "finalizer.transaction_timeout",
                item_id=item_id,
                tx_hash=tx_hash_hex,
                timeout=self.transaction_timeout,
            )
            raise UnknownFinalizeError(f"Transaction confirmation timeout: {tx_hash_hex}") from e
        except Exception as e:
            raise UnknownFinalizeError(f"Failed to fetch receipt for {tx_hash_hex}: {e}") from e

        if receipt["status"] == 0:
            logger.error(
                "finalizer.transaction_reverted",
                item_id=item_id,
                tx_hash=tx_hash_hex,
                block_number=receipt["blockNumber"],
            )
            raise UnknownFinalizeError(f"Transaction reverted: {tx_hash_hex}")

        await self._wait_for_confirmations(receipt["blockNumber"], tx_hash_hex)

        logger.info(
            "finalizer.transaction_confirmed",
            item_id=item_id,
            tx_hash=tx_hash_hex,
            block_number=receipt["blockNumber"],
            gas_used=receipt.get("gasUsed"),
        )
        return tx_hash_hex

    async def current_token_uri(self, item_id: int) -> str | None:
        """Read tokenURI(item_id), or None if the call fails."""
        try:
            return await asyncio.to_thread(self.contract.functions.tokenURI(item_id).call)
        except Exception as e:
            logger.debug("finalizer.token_uri_unavailable", item_id=item_id, error=str(e))
            return None

    def _submit(self, item_id: int, uri: str) -> bytes:
        """Estimate gas, sign and send the setTokenURI transaction (blocking)."""
        function = self.contract.functions.setTokenURI(item_id, uri)

        estimated_gas = function.estimate_gas({"from": self.signer_address})
        gas_limit = int(estimated_gas * self.gas_multiplier)
        nonce = self.w3.eth.get_transaction_count(self.signer_address, "pending")

        transaction = function.build_transaction(
            {
                "from": self.signer_address,
                "nonce": nonce,
                "gas": gas_limit,
                "chainId": self.w3.eth.chain_id,
            }  # type: ignore[arg-type]
        )

        signed_txn = self.w3.eth.account.sign_transaction(
            transaction, private_key=self.signer_private_key
        )

        logger.debug(
            "finalizer.transaction_signed",
            item_id=item_id,
            nonce=nonce,
            estimated_gas=estimated_gas,
            gas_limit=gas_limit,
        )
        return self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)

    async def _wait_for_confirmations(self, receipt_block: int, tx_hash_hex: str) -> None:
        """Block until the receipt's block has block_confirmations confirmations.

        Raises:
            UnknownFinalizeError: If the depth is not reached within the timeout
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.transaction_timeout

        while True:
            try:
                current = await asyncio.to_thread(lambda: self.w3.eth.block_number)
            except Exception as e:
                raise UnknownFinalizeError(f"Failed to read block number: {e}") from e

            confirmations = current - receipt_block + 1
            if confirmations >= self.block_confirmations:
                return

            if loop.time() >= deadline:
                raise UnknownFinalizeError(
                    f"Transaction {tx_hash_hex} reached {confirmations} of "
                    f"{self.block_confirmations} confirmations before timeout"
                )
            await asyncio.sleep(self.confirmation_poll_interval)

    async def check_authorization(self) -> bool:
        """Check that the signer may call setTokenURI.

        Compares backendSigner() with the signer address, falling back to owner()
        for contracts without a backend signer role.

        Returns:
            True if the signer is authorized, False otherwise (logged as a warning)
        """
        try:
            authorized = await asyncio.to_thread(self.contract.functions.backendSigner().call)
            role = "backend_signer"
        except Exception:
            logger.debug("finalizer.backend_signer_unavailable")
            try:
                authorized = await asyncio.to_thread(self.contract.functions.owner().call)
                role = "owner"
            except Exception as e:
                logger.warning("finalizer.authorization_check_failed", error=str(e))
                return False

        if authorized.lower() != self.signer_address.lower():
            logger.warning(
                "finalizer.signer_not_authorized",
                role=role,
                expected=authorized,
                signer_address=self.signer_address,
            )
            return False

        logger.info("finalizer.signer_authorized", role=role, signer_address=self.signer_address)
        return True
