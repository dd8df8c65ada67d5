"""Contract ABIs shipped with the package.

FishNFT.json covers the token functions the finalizer calls, FishingGame.json
the FishCaught event the watcher decodes.
"""

import json
from functools import lru_cache
from pathlib import Path

ABI_DIR = Path(__file__).parent


@lru_cache(maxsize=None)
def get_contract_abi(contract_name: str = "FishNFT") -> list[dict]:
    """Load a contract ABI by name ("FishNFT" or "FishingGame").

    Raises:
        FileNotFoundError: If no ABI file exists for contract_name
    """
    abi_path = ABI_DIR / f"{contract_name}.json"
    if not abi_path.exists():
        raise FileNotFoundError(f"ABI file not found: {abi_path}")

    return json.loads(abi_path.read_text())
