"""
Pytest fixtures for Rugwatch tests. Uses a temporary SQLite database per test
and an in-memory chain provider so no RPC endpoint is contacted.
"""

from __future__ import annotations

from typing import Any

import pytest

from rugwatch.alerts import NotificationDispatcher
from rugwatch.analysis_engine.scorer import RiskScorer
from rugwatch.chain.base import ChainDataProvider
from rugwatch.config import Settings
from rugwatch.core.exceptions import UnsupportedNetworkError
from rugwatch.database import Database
from rugwatch.warning_signs.models import Network
from rugwatch.warning_signs.service import WarningService

TOKEN_ADDRESS = "0x1111111111111111111111111111111111111111"
PAIR_ADDRESS = "0x2222222222222222222222222222222222222222"


def evm_address(n: int) -> str:
    """Well-formed 20-byte hex address for fixtures that need many distinct contracts."""
    return "0x" + format(n, "040x")


class FakeChainProvider(ChainDataProvider):
    """
    Canned chain responses. Set `error` to make every call raise it; set
    `reserves` to change what the pool returns on the next call and
    `transfers` to feed the transfer scan.
    """

    name = "fake"
    supported = {Network.ETHEREUM, Network.BSC, Network.POLYGON}

    def __init__(self) -> None:
        self.risks: list[str] = []
        self.reserves: tuple[int, int] = (500, 500)
        self.error: Exception | None = None
        self.calls: list[tuple[str, str]] = []
        self.transfers: list[dict[str, Any]] = []

    def _check(self, operation: str, network: Network) -> None:
        self.calls.append((operation, network.value))
        if network not in self.supported:
            raise UnsupportedNetworkError(network.value)
        if self.error is not None:
            raise self.error

    async def get_token_info(self, address: str, network: Network) -> dict[str, Any]:
        self._check("get_token_info", network)
        return {"name": "Safe Moon Rocket", "symbol": "SMR", "decimals": 18, "total_supply": "1000000"}

    async def analyze_contract_risks(self, address: str, network: Network) -> dict[str, Any]:
        self._check("analyze_contract_risks", network)
        return {
            "is_contract": True,
            "has_code": True,
            "code_size": 2048,
            "risks": list(self.risks),
            "timestamp": "2026-01-01T00:00:00+00:00",
        }

    async def check_liquidity_pool(self, pair_address: str, network: Network) -> dict[str, Any]:
        self._check("check_liquidity_pool", network)
        reserve0, reserve1 = self.reserves
        return {"token0": TOKEN_ADDRESS, "token1": PAIR_ADDRESS, "reserve0": reserve0, "reserve1": reserve1}

    async def monitor_large_transfers(self, address: str, network: Network, threshold_wei: int) -> list[dict[str, Any]]:
        self._check("monitor_large_transfers", network)
        return [t for t in self.transfers if int(t["value"]) >= threshold_wei]

    async def track_team_wallets(self, addresses: list[str], network: Network) -> list[dict[str, Any]]:
        self._check("track_team_wallets", network)
        return [{"address": a, "balance": "0", "tx_count": 0, "recent_logs": 0} for a in addresses]


def warning_payload(**overrides: Any) -> dict[str, Any]:
    """Minimal valid create-warning body."""
    data: dict[str, Any] = {
        "project_name": "Safe Moon Rocket",
        "token_symbol": "smr",
        "network": "BSC",
        "contract_address": TOKEN_ADDRESS,
        "description": "Team wallet moved a large share of supply",
        "risk_types": ["Liquidity Reduction"],
    }
    data.update(overrides)
    return data


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'rugwatch.db'}"


@pytest.fixture
def db(database_url):
    """Fresh SQLite database with schema, disposed after the test."""
    database = Database(database_url)
    database.ensure_schema()
    yield database
    database.dispose()


@pytest.fixture
def fake_chain() -> FakeChainProvider:
    return FakeChainProvider()


@pytest.fixture
def dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


@pytest.fixture
def service(db, dispatcher, fake_chain) -> WarningService:
    return WarningService(db, RiskScorer(), dispatcher, chain=fake_chain, provider_timeout_sec=1.0)


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(database_url=database_url, monitoring_interval_sec=3600.0, provider_timeout_sec=1.0)


@pytest.fixture
def client(settings, db, fake_chain):
    """FastAPI TestClient with lifespan running against the temporary database."""
    from fastapi.testclient import TestClient

    from rugwatch.api_server.server import create_app

    app = create_app(settings, chain=fake_chain, db=db)
    with TestClient(app) as test_client:
        yield test_client
