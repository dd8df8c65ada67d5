"""ERC721 metadata for fish NFTs."""

from typing import Any

from fishit.models.mint_record import MintRecord


def build_metadata_fields(record: MintRecord) -> dict[str, Any]:
    """Build the metadata JSON of a fish, without the image reference.

    The storage publisher injects "image" once the image is pinned.
    """
    return {
        "name": f"{record.tier} Fish #{record.item_id}",
        "description": (
            f"A {record.tier} fish caught in the {record.zone} zone "
            f"using {record.bait_type} bait."
        ),
        "attributes": [
            {"trait_type": "Tier", "value": record.tier},
            {"trait_type": "Zone", "value": record.zone},
            {"trait_type": "Bait", "value": record.bait_type},
            {"trait_type": "Seed", "value": record.random_seed},
        ],
    }
