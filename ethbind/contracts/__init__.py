"""
Packaged contract interface tables.

Each ``<name>.json`` file holds ``{"contractName": ..., "bytecode": ..., "abi": [...]}``;
``bytecode`` is absent for interfaces without a compiled contract behind them
(``erc20``, ``relay``, ``relay_registry``).
"""
import importlib.resources
import json
import logging
from functools import lru_cache
from typing import List, Optional

from ..contract import ContractInterface
from ..utils import HexLike

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def _load_table(name: str) -> dict:
    resource = importlib.resources.files(__name__).joinpath(f"{name}.json")
    if not resource.is_file():
        raise ValueError(f"Unknown contract table '{name}'. Available: {', '.join(available_interfaces())}")
    with resource.open("r", encoding="utf-8") as f:
        table = json.load(f)
    logger.debug(f"Loaded contract table {name}")
    return table


def available_interfaces() -> List[str]:
    """Names of the packaged tables."""
    return sorted(
        entry.name[:-len(".json")]
        for entry in importlib.resources.files(__name__).iterdir()
        if entry.name.endswith(".json")
    )


def load_interface(name: str, bytecode: Optional[HexLike] = None) -> ContractInterface:
    """
    Load a packaged contract interface.

    Args:
        name: Table name, e.g. ``"erc20"`` or ``"relay"``
        bytecode: Creation bytecode overriding the packaged one, if any

    Raises:
        ValueError: If no table has that name
    """
    table = _load_table(name)
    if bytecode is None:
        bytecode = table.get("bytecode")
    return ContractInterface.from_abi(table["abi"], bytecode=bytecode, name=table.get("contractName", name))
