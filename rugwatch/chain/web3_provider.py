"""
EVM chain data via web3.py AsyncWeb3 (Ethereum, BSC, Polygon).

One AsyncWeb3 client per network, created lazily from the configured RPC
URLs. Solana and Other have no handler and raise UnsupportedNetworkError.
"""

from __future__ import annotations

import asyncio
from typing import Any

from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider

from rugwatch.chain.base import ChainDataProvider
from rugwatch.config import Settings, get_settings
from rugwatch.core.exceptions import UnsupportedNetworkError
from rugwatch.logging import get_logger
from rugwatch.warning_signs.models import Network, utcnow

logger = get_logger(__name__)

ERC20_ABI = [
    {"constant": True, "inputs": [], "name": "name", "outputs": [{"name": "", "type": "string"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "symbol", "outputs": [{"name": "", "type": "string"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "decimals", "outputs": [{"name": "", "type": "uint8"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "totalSupply", "outputs": [{"name": "", "type": "uint256"}], "type": "function"},
]

UNISWAP_V2_PAIR_ABI = [
    {
        "constant": True,
        "inputs": [],
        "name": "getReserves",
        "outputs": [
            {"name": "reserve0", "type": "uint112"},
            {"name": "reserve1", "type": "uint112"},
            {"name": "blockTimestampLast", "type": "uint32"},
        ],
        "type": "function",
    },
    {"constant": True, "inputs": [], "name": "token0", "outputs": [{"name": "", "type": "address"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "token1", "outputs": [{"name": "", "type": "address"}], "type": "function"},
]

TRANSFER_TOPIC = "0x" + bytes(AsyncWeb3.keccak(text="Transfer(address,address,uint256)")).hex()

RISK_OPCODES = {
    0xFF: "selfdestruct",
    0xF4: "delegatecall",
    0xF2: "callcode",
}

_PUSH1 = 0x60
_PUSH32 = 0x7F


def scan_bytecode(code: bytes) -> list[str]:
    """
    Named risky opcodes present in runtime bytecode, in first-seen order.

    Walks opcodes and skips PUSH1..PUSH32 immediates so constant data that
    happens to contain 0xff or 0xf4 is not reported.
    """
    found: list[str] = []
    i = 0
    n = len(code)
    while i < n:
        op = code[i]
        name = RISK_OPCODES.get(op)
        if name and name not in found:
            found.append(name)
        if _PUSH1 <= op <= _PUSH32:
            i += op - _PUSH1 + 1
        i += 1
    return found


def _hex(value: Any) -> str:
    return "0x" + bytes(value).hex()


def _topic_address(topic: Any) -> str:
    return AsyncWeb3.to_checksum_address("0x" + bytes(topic)[-20:].hex())


class Web3ChainProvider(ChainDataProvider):
    name = "web3"

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._clients: dict[Network, AsyncWeb3] = {}

    def _web3_for(self, network: Network) -> AsyncWeb3:
        if network in self._clients:
            return self._clients[network]
        url = self.settings.rpc_url_for(network.value)
        if not url:
            raise UnsupportedNetworkError(network.value)
        w3 = AsyncWeb3(AsyncHTTPProvider(url, request_kwargs={"timeout": self.settings.provider_timeout_sec}))
        self._clients[network] = w3
        logger.debug("web3_client_created", network=network.value)
        return w3

    async def get_token_info(self, address: str, network: Network) -> dict[str, Any]:
        w3 = self._web3_for(network)
        contract = w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=ERC20_ABI)
        name, symbol, decimals, total_supply = await asyncio.gather(
            contract.functions.name().call(),
            contract.functions.symbol().call(),
            contract.functions.decimals().call(),
            contract.functions.totalSupply().call(),
        )
        return {
            "name": name,
            "symbol": symbol,
            "decimals": int(decimals),
            "total_supply": str(total_supply),
        }

    async def analyze_contract_risks(self, address: str, network: Network) -> dict[str, Any]:
        w3 = self._web3_for(network)
        checksum = AsyncWeb3.to_checksum_address(address)
        code, tx_count = await asyncio.gather(
            w3.eth.get_code(checksum),
            w3.eth.get_transaction_count(checksum),
        )
        code = bytes(code)
        has_code = len(code) > 0
        return {
            "is_contract": has_code and tx_count > 0,
            "has_code": has_code,
            "code_size": len(code),
            "risks": scan_bytecode(code),
            "timestamp": utcnow().isoformat(),
        }

    async def check_liquidity_pool(self, pair_address: str, network: Network) -> dict[str, Any]:
        w3 = self._web3_for(network)
        pair = w3.eth.contract(address=AsyncWeb3.to_checksum_address(pair_address), abi=UNISWAP_V2_PAIR_ABI)
        reserves, token0, token1 = await asyncio.gather(
            pair.functions.getReserves().call(),
            pair.functions.token0().call(),
            pair.functions.token1().call(),
        )
        return {
            "token0": token0,
            "token1": token1,
            "reserve0": int(reserves[0]),
            "reserve1": int(reserves[1]),
            "timestamp": utcnow().isoformat(),
        }

    async def monitor_large_transfers(
        self, address: str, network: Network, threshold_wei: int
    ) -> list[dict[str, Any]]:
        w3 = self._web3_for(network)
        latest = await w3.eth.block_number
        logs = await w3.eth.get_logs(
            {
                "fromBlock": max(0, latest - self.settings.transfer_scan_blocks),
                "toBlock": "latest",
                "address": AsyncWeb3.to_checksum_address(address),
                "topics": [TRANSFER_TOPIC],
            }
        )
        transfers = []
        for log in logs:
            topics = log["topics"]
            if len(topics) < 3:
                continue
            value = int.from_bytes(bytes(log["data"]), "big") if log["data"] else 0
            if value < threshold_wei:
                continue
            transfers.append(
                {
                    "transaction_hash": _hex(log["transactionHash"]),
                    "from": _topic_address(topics[1]),
                    "to": _topic_address(topics[2]),
                    "value": str(value),
                    "block_number": int(log["blockNumber"]),
                }
            )
        logger.debug("large_transfers_scanned", network=network.value, logs=len(logs), matched=len(transfers))
        return transfers

    async def _wallet_activity(self, w3: AsyncWeb3, address: str, from_block: int) -> dict[str, Any]:
        checksum = AsyncWeb3.to_checksum_address(address)
        balance, tx_count, logs = await asyncio.gather(
            w3.eth.get_balance(checksum),
            w3.eth.get_transaction_count(checksum),
            w3.eth.get_logs({"fromBlock": from_block, "toBlock": "latest", "address": checksum}),
        )
        return {
            "address": checksum,
            "balance": str(balance),
            "tx_count": int(tx_count),
            "recent_transactions": len(logs),
            "timestamp": utcnow().isoformat(),
        }

    async def track_team_wallets(self, addresses: list[str], network: Network) -> list[dict[str, Any]]:
        w3 = self._web3_for(network)
        latest = await w3.eth.block_number
        from_block = max(0, latest - self.settings.transfer_scan_blocks)
        return list(await asyncio.gather(*(self._wallet_activity(w3, a, from_block) for a in addresses)))
