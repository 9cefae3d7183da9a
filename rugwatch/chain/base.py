"""
Chain data provider interface.

Implementations return plain dicts so results can be stored directly in
on-chain evidence details. Every method may raise UnsupportedNetworkError
for networks without a handler; transport failures are left to the caller's
call_with_timeout wrapper to normalize.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from web3 import Web3

from rugwatch.core.exceptions import ValidationError
from rugwatch.warning_signs.models import Network

EVM_NETWORKS = frozenset({Network.ETHEREUM, Network.BSC, Network.POLYGON})


def check_address(address: str | None, network: Network, field_name: str) -> None:
    """ValidationError when an EVM network is given something that is not a 20-byte hex address."""
    if address is None or network not in EVM_NETWORKS:
        return
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValidationError(
            f"Invalid {field_name} for {network.value}: {address!r}",
            {"field": field_name, "value": address},
        )


class ChainDataProvider(ABC):
    name = "chain"

    @abstractmethod
    async def get_token_info(self, address: str, network: Network) -> dict[str, Any]:
        """name, symbol, decimals, total_supply."""
        ...

    @abstractmethod
    async def analyze_contract_risks(self, address: str, network: Network) -> dict[str, Any]:
        """is_contract, has_code, code_size (bytes), risks (named opcode matches)."""
        ...

    @abstractmethod
    async def check_liquidity_pool(self, pair_address: str, network: Network) -> dict[str, Any]:
        """token0, token1, reserve0, reserve1 for a Uniswap-V2 style pair."""
        ...

    @abstractmethod
    async def monitor_large_transfers(
        self, address: str, network: Network, threshold_wei: int
    ) -> list[dict[str, Any]]:
        """Recent Transfer events with value >= threshold_wei."""
        ...

    @abstractmethod
    async def track_team_wallets(self, addresses: list[str], network: Network) -> list[dict[str, Any]]:
        """balance, tx_count and recent log count per wallet."""
        ...
