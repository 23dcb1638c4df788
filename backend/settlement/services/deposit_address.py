"""Deposit address allocation for new transfers."""

import hashlib
from dataclasses import dataclass
from typing import Optional

from web3 import Web3

from settlement.config import settings

# Largest non-hardened BIP-32 child index
_MAX_DERIVATION_INDEX = 2_147_483_647


@dataclass(frozen=True)
class DepositAddress:
    deposit_address: str
    deposit_memo: Optional[str] = None
    derivation_path: Optional[str] = None


def normalize_deposit_address(chain: str, address: str) -> str:
    """Canonical form used for storage and lookups (EIP-55 checksum on EVM chains)."""
    address = address.strip()
    if chain == "base" and Web3.is_address(address):
        return Web3.to_checksum_address(address)
    return address


class HdWalletDepositStrategy:
    """
    Deterministic per-transfer deposit addresses derived from a master seed.

    The seed and transfer id are hashed into an index; a custody service holding
    the real key material derives the same address from the recorded path.
    """

    def __init__(self, master_seed: Optional[str] = None):
        self.master_seed = master_seed or settings.DEPOSIT_MASTER_SEED

    def _index_hash(self, transfer_id: str) -> str:
        return hashlib.sha256(f"{self.master_seed}:{transfer_id}".encode("utf-8")).hexdigest()

    @staticmethod
    def _derivation_index(index_hash: str) -> int:
        return int(index_hash[:8], 16) % _MAX_DERIVATION_INDEX

    def generate_address(self, chain: str, transfer_id: str) -> DepositAddress:
        index_hash = self._index_hash(transfer_id)
        index = self._derivation_index(index_hash)

        if chain == "base":
            return DepositAddress(
                deposit_address=Web3.to_checksum_address(f"0x{index_hash[:40]}"),
                derivation_path=f"m/44'/60'/0'/0/{index}",
            )

        if chain == "solana":
            account = hashlib.sha256(f"{index_hash}:sol".encode("utf-8")).hexdigest()[:44]
            return DepositAddress(
                deposit_address=account,
                deposit_memo=transfer_id[:16],
                derivation_path=f"solana:account:{index}",
            )

        return DepositAddress(deposit_address=f"dep_{index_hash[:32]}")


# Global strategy instance
deposit_strategy = HdWalletDepositStrategy()
