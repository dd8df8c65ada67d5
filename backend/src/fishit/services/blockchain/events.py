"""FishCaught event decoding.

Event structure (FishingGame contract):
    event FishCaught(
        address indexed user,      // topics[1]
        uint256 indexed tokenId,   // topics[2]
        uint8 tier,                // data[0:32]
        uint8 zone,                // data[32:64]
        uint8 bait,                // data[64:96]
        uint256 randomWord         // data[96:128]
    );
"""

from dataclasses import dataclass
from typing import Any

from eth_utils.abi import event_signature_to_log_topic
from web3 import Web3

from fishit.models.mint_record import BaitType, FishTier, FishZone

FISH_CAUGHT_SIGNATURE = "FishCaught(address,uint256,uint8,uint8,uint8,uint256)"
FISH_CAUGHT_TOPIC = event_signature_to_log_topic(FISH_CAUGHT_SIGNATURE)

_TIERS = list(FishTier)
_ZONES = list(FishZone)
_BAITS = list(BaitType)


@dataclass(frozen=True)
class FishCaughtEvent:
    """Normalized FishCaught event handed to the mint pipeline."""

    item_id: int
    owner_address: str
    tier: str
    zone: str
    bait_type: str
    random_seed: str
    mint_tx_ref: str
    block_number: int
    log_index: int = 0


def parse_tier(index: int) -> str:
    return _TIERS[index].value if 0 <= index < len(_TIERS) else FishTier.COMMON.value


def parse_zone(index: int) -> str:
    return _ZONES[index].value if 0 <= index < len(_ZONES) else FishZone.SHALLOW.value


def parse_bait_type(index: int) -> str:
    return _BAITS[index].value if 0 <= index < len(_BAITS) else BaitType.COMMON.value


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    return bytes(value)


def decode_fish_caught(log: Any) -> FishCaughtEvent:
    """Decode a FishCaught event from a raw eth_getLogs entry.

    Args:
        log: Raw log receipt (topics and data as bytes/HexBytes or hex strings)

    Returns:
        Normalized event

    Raises:
        ValueError: If the log does not carry the expected topics/data layout
    """
    topics = log["topics"]
    if len(topics) < 3:
        raise ValueError(f"FishCaught log has {len(topics)} topics, expected 3")

    owner = Web3.to_checksum_address(_as_bytes(topics[1])[-20:])
    item_id = int.from_bytes(_as_bytes(topics[2]), "big")

    data = _as_bytes(log["data"])
    if len(data) < 128:
        raise ValueError(f"FishCaught data is {len(data)} bytes, expected 128")

    words = [int.from_bytes(data[i : i + 32], "big") for i in range(0, 128, 32)]
    tier, zone, bait, random_word = words

    return FishCaughtEvent(
        item_id=item_id,
        owner_address=owner,
        tier=parse_tier(tier),
        zone=parse_zone(zone),
        bait_type=parse_bait_type(bait),
        random_seed=str(random_word),
        mint_tx_ref=Web3.to_hex(_as_bytes(log["transactionHash"])),
        block_number=int(log["blockNumber"]),
        log_index=int(log.get("logIndex", 0)),
    )
