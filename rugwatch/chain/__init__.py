"""Blockchain data providers (EVM via web3.py)."""

from rugwatch.chain.base import ChainDataProvider
from rugwatch.chain.web3_provider import Web3ChainProvider, scan_bytecode

__all__ = ["ChainDataProvider", "Web3ChainProvider", "scan_bytecode"]
