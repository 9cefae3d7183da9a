"""
Application settings and environment configuration.

Typed settings (RPC endpoints, database URL, monitoring interval, provider
timeouts, API bind address) for use across the scheduler, providers and API.
"""

from __future__ import annotations

from dataclasses import dataclass

from rugwatch.config.env import env_float, env_int, env_str, load_rugwatch_env

DEFAULT_DATABASE_URL = "sqlite:///rugwatch.db"
DEFAULT_MONITORING_INTERVAL_SEC = 300.0  # 5 minutes
DEFAULT_PROVIDER_TIMEOUT_SEC = 15.0
DEFAULT_ESCALATION_REPORT_THRESHOLD = 5
DEFAULT_TRANSFER_SCAN_BLOCKS = 1000

DEFAULT_ETH_NODE_URL = "https://eth.llamarpc.com"
DEFAULT_BSC_NODE_URL = "https://bsc-dataseed.binance.org"
DEFAULT_POLYGON_NODE_URL = "https://polygon-rpc.com"


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    monitoring_interval_sec: float = DEFAULT_MONITORING_INTERVAL_SEC
    provider_timeout_sec: float = DEFAULT_PROVIDER_TIMEOUT_SEC
    escalation_report_threshold: int = DEFAULT_ESCALATION_REPORT_THRESHOLD
    transfer_scan_blocks: int = DEFAULT_TRANSFER_SCAN_BLOCKS
    eth_node_url: str = DEFAULT_ETH_NODE_URL
    bsc_node_url: str = DEFAULT_BSC_NODE_URL
    polygon_node_url: str = DEFAULT_POLYGON_NODE_URL
    risk_model_path: str = ""
    """Path to a joblib-persisted classifier; empty means rule-based fallback."""
    submitter_hash_secret: str = "rugwatch-dev-secret"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    def rpc_url_for(self, network: str) -> str:
        """Return RPC endpoint for an EVM network name (case-insensitive); '' if none."""
        mapping = {
            "ethereum": self.eth_node_url,
            "bsc": self.bsc_node_url,
            "polygon": self.polygon_node_url,
        }
        return mapping.get(network.lower(), "")


def get_settings() -> Settings:
    """Return the current application settings (environment read on every call)."""
    load_rugwatch_env()
    return Settings(
        database_url=env_str("DATABASE_URL", DEFAULT_DATABASE_URL),
        monitoring_interval_sec=env_float("MONITORING_INTERVAL_SEC", DEFAULT_MONITORING_INTERVAL_SEC),
        provider_timeout_sec=env_float("PROVIDER_TIMEOUT_SEC", DEFAULT_PROVIDER_TIMEOUT_SEC),
        escalation_report_threshold=env_int("ESCALATION_REPORT_THRESHOLD", DEFAULT_ESCALATION_REPORT_THRESHOLD),
        transfer_scan_blocks=env_int("TRANSFER_SCAN_BLOCKS", DEFAULT_TRANSFER_SCAN_BLOCKS),
        eth_node_url=env_str("ETH_NODE_URL", DEFAULT_ETH_NODE_URL),
        bsc_node_url=env_str("BSC_NODE_URL", DEFAULT_BSC_NODE_URL),
        polygon_node_url=env_str("POLYGON_NODE_URL", DEFAULT_POLYGON_NODE_URL),
        risk_model_path=env_str("RISK_MODEL_PATH"),
        submitter_hash_secret=env_str("SUBMITTER_HASH_SECRET", "rugwatch-dev-secret"),
        api_host=env_str("API_HOST", "0.0.0.0"),
        api_port=env_int("API_PORT", 8000),
    )
