# surety_oracle/config.py
"""
Startup configuration.

Network endpoints and contract addresses come from a JSON file keyed by
network name (the same file the dApp uses), with environment overrides:

  SURETY_CONFIG                path to the JSON file (default ./config.json)
  SURETY_NETWORK               network key (default localhost)
  SURETY_RPC_URL               overrides <network>.url
  SURETY_APP_ADDRESS           overrides <network>.appAddress
  SURETY_ABI_PATH              ABI or truffle artifact for FlightSuretyApp
  SURETY_ORACLE_OFFSET         first node account used as an oracle (10)
  SURETY_ORACLE_COUNT          number of oracle accounts (20)
  SURETY_REGISTRATION_FEE_ETH  fee sent with registerOracle (1)
  SURETY_MAX_INDEX             highest index the contract assigns (9)
  SURETY_POLL_INTERVAL         seconds between event polls (2.0)
  SURETY_BACKOFF_MAX           cap on reconnect backoff in seconds (30)
  SURETY_FROM_BLOCK            first block to replay events from (0)
  SURETY_PORT                  health server port (3000)

Read once at startup.
"""

import json
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from web3 import Web3

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_NETWORK = "localhost"


class ConfigError(Exception):
    """Configuration is missing or unusable."""


@dataclass
class Settings:
    rpc_url: str
    app_address: str
    data_address: Optional[str] = None
    network: str = DEFAULT_NETWORK
    abi_path: Optional[str] = None
    oracle_offset: int = 10
    oracle_count: int = 20
    registration_fee_wei: int = Web3.to_wei(1, "ether")
    max_index: int = 9
    poll_interval: float = 2.0
    backoff_max: float = 30.0
    from_block: int = 0
    port: int = 3000


def _read_network(path: Path, network: str) -> dict:
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    if network not in data:
        raise ConfigError(f"Network '{network}' not found in {path} (have: {', '.join(data)})")
    return data[network]


def _number(env, name, default, cast):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name}={raw!r} is not a valid {cast.__name__}") from e


def load_settings(env=None) -> Settings:
    env = os.environ if env is None else env
    network = env.get("SURETY_NETWORK", DEFAULT_NETWORK)
    net = _read_network(Path(env.get("SURETY_CONFIG", DEFAULT_CONFIG_PATH)), network)

    rpc_url = env.get("SURETY_RPC_URL") or net.get("url") or "http://localhost:8545"
    app_address = env.get("SURETY_APP_ADDRESS") or net.get("appAddress")
    if not app_address:
        raise ConfigError("No FlightSuretyApp address: set appAddress or SURETY_APP_ADDRESS")
    if not Web3.is_address(app_address):
        raise ConfigError(f"Invalid FlightSuretyApp address: {app_address}")

    fee_eth = env.get("SURETY_REGISTRATION_FEE_ETH", "1")
    try:
        fee_wei = Web3.to_wei(Decimal(fee_eth), "ether")
    except (InvalidOperation, ValueError) as e:
        raise ConfigError(f"SURETY_REGISTRATION_FEE_ETH={fee_eth!r} is not a number") from e

    settings = Settings(
        rpc_url=rpc_url,
        app_address=app_address,
        data_address=net.get("dataAddress"),
        network=network,
        abi_path=env.get("SURETY_ABI_PATH") or None,
        oracle_offset=_number(env, "SURETY_ORACLE_OFFSET", 10, int),
        oracle_count=_number(env, "SURETY_ORACLE_COUNT", 20, int),
        registration_fee_wei=fee_wei,
        max_index=_number(env, "SURETY_MAX_INDEX", 9, int),
        poll_interval=_number(env, "SURETY_POLL_INTERVAL", 2.0, float),
        backoff_max=_number(env, "SURETY_BACKOFF_MAX", 30.0, float),
        from_block=_number(env, "SURETY_FROM_BLOCK", 0, int),
        port=_number(env, "SURETY_PORT", 3000, int),
    )
    if settings.oracle_count < 1 or settings.oracle_offset < 0:
        raise ConfigError("SURETY_ORACLE_COUNT must be >= 1 and SURETY_ORACLE_OFFSET >= 0")
    return settings
