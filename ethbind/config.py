"""
Configuration for ethbind.

``EthereumConfig`` holds the node and polling settings used by the transport
and the invoker. ``NetworkConfig`` resolves well-known networks (chain id,
RPC URL, deployed contract addresses) from the packaged ``networks.json``.
"""
import importlib.resources
import json
import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Receipt polling attempts before giving up
ATTEMPTS_DEFAULT = 240


class EthereumConfig(BaseModel):
    """
    Ethereum node and transaction settings.

    Attributes:
        url: JSON-RPC endpoint of the node
        gas_price: Static gas price in wei (None: ask the node)
        gas_limit: Static gas limit (None: estimate per transaction)
        confirmation_period: Blocks to wait on top of the mined block
        poll_interval: First receipt polling interval in seconds
        backoff_factor: Multiplier applied to the interval after each poll
        max_poll_interval: Upper bound for the polling interval in seconds
        max_attempts: Maximum receipt polls per wait
        receipt_timeout: Default deadline for a wait in seconds
        max_transport_retries: Consecutive transport failures tolerated while polling
        request_timeout: HTTP request timeout in seconds
        retry_count: HTTP-level retries for 5xx responses and connection errors
        chain_id: Chain id put in signed transactions (None: ask the node)
        node_login: Basic auth login for the node
        node_password: Basic auth password for the node
    """
    url: str = "http://127.0.0.1:8545"
    gas_price: Optional[int] = Field(None, ge=0)
    gas_limit: Optional[int] = Field(None, gt=0)
    confirmation_period: int = Field(0, ge=0)
    poll_interval: float = Field(1.0, gt=0)
    backoff_factor: float = Field(1.5, ge=1.0)
    max_poll_interval: float = Field(15.0, gt=0)
    max_attempts: int = Field(ATTEMPTS_DEFAULT, gt=0)
    receipt_timeout: float = Field(120.0, gt=0)
    max_transport_retries: int = Field(5, ge=0)
    request_timeout: int = Field(30, gt=0)
    retry_count: int = Field(3, ge=0)
    chain_id: Optional[int] = None
    node_login: Optional[str] = None
    node_password: Optional[str] = None

    @classmethod
    def from_env(cls, prefix: str = "ETH_", **overrides: Any) -> "EthereumConfig":
        """
        Load settings from environment variables.

        Each field maps to ``<prefix><FIELD_NAME>``, e.g. ``ETH_URL`` or
        ``ETH_GAS_PRICE``. Explicit keyword overrides win over the environment.
        """
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            env_value = os.environ.get(f"{prefix}{name.upper()}")
            if env_value is not None and env_value != "":
                values[name] = env_value
        values.update({k: v for k, v in overrides.items() if v is not None})
        config = cls.model_validate(values)
        logger.debug(f"Loaded Ethereum config for {config.url}")
        return config


class NetworkConfig:
    """Access to the packaged network definitions."""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """
        Load network definitions, caching them after the first read.

        Returns:
            Mapping of network name to its definition
        """
        if cls._networks_cache is None:
            resource = importlib.resources.files("ethbind").joinpath("networks.json")
            with resource.open("r", encoding="utf-8") as f:
                cls._networks_cache = json.load(f)
        return cls._networks_cache

    @classmethod
    def get_network(cls, network: str) -> Dict[str, Any]:
        """
        Get one network definition.

        Raises:
            ValueError: If the network is unknown; the message lists known networks
        """
        networks = cls.load_networks()
        if network not in networks:
            available = ", ".join(sorted(networks))
            raise ValueError(f"Unknown network '{network}'. Available networks: {available}")
        return networks[network]

    @classmethod
    def get_rpc_url(cls, network: str, override: Optional[str] = None) -> str:
        """
        Resolve the RPC URL of a network.

        Lookup order: ``override``, then ``<NETWORK>_RPC_URL`` from the
        environment, then the packaged definition.
        """
        if override:
            return override
        env_name = network.upper().replace("-", "_") + "_RPC_URL"
        env_value = os.environ.get(env_name)
        if env_value:
            return env_value
        return cls.get_network(network)["rpc"]

    @classmethod
    def get_chain_id(cls, network: str) -> int:
        return int(cls.get_network(network)["chainId"])

    @classmethod
    def get_contract_address(cls, network: str, contract: str) -> str:
        """
        Address of a named contract deployed on ``network``.

        Raises:
            ValueError: If the network has no such contract
        """
        contracts = cls.get_network(network).get("contracts", {})
        if contract not in contracts:
            raise ValueError(f"Network '{network}' has no '{contract}' contract")
        return contracts[contract]

    @classmethod
    def ethereum_config(cls, network: str, **overrides: Any) -> EthereumConfig:
        """EthereumConfig for a named network; environment variables still apply."""
        return EthereumConfig.from_env(
            url=cls.get_rpc_url(network, overrides.pop("url", None)),
            chain_id=overrides.pop("chain_id", None) or cls.get_chain_id(network),
            **overrides
        )
