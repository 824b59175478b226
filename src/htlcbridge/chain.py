"""Block height sources.

Time locks are absolute block heights, so every call needs the current
height of the host chain. ``manual`` keeps the height in process (tests,
local development); ``rpc`` asks an EVM JSON-RPC node.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from htlcbridge.config import get_settings

logger = logging.getLogger(__name__)


class HeightUnavailableError(Exception):
    """Raised when the current block height cannot be determined."""

    pass


class HeightSource(ABC):
    """Provider of the host chain's current block height."""

    name: str = "base"

    @abstractmethod
    async def current_height(self) -> int:
        """Get the current block height."""
        pass


class ManualHeightSource(HeightSource):
    """Height kept in memory and moved forward explicitly."""

    name = "manual"

    def __init__(self, height: int = 0):
        if height < 0:
            raise ValueError("Height cannot be negative")
        self._height = height

    async def current_height(self) -> int:
        return self._height

    def set_height(self, height: int) -> int:
        """Jump to a height. Heights never go backwards."""
        if height < self._height:
            raise ValueError(f"Height cannot decrease from {self._height} to {height}")
        self._height = height
        return self._height

    def advance(self, blocks: int = 1) -> int:
        """Mine ``blocks`` empty blocks."""
        if blocks < 0:
            raise ValueError("Cannot advance by a negative number of blocks")
        return self.set_height(self._height + blocks)


class RpcHeightSource(HeightSource):
    """Height read from an EVM JSON-RPC endpoint via eth_blockNumber."""

    name = "rpc"

    def __init__(self, rpc_url: str, timeout: float = 10.0):
        self.rpc_url = rpc_url
        self.timeout = timeout

    async def current_height(self) -> int:
        payload = {"jsonrpc": "2.0", "id": 1, "method": "eth_blockNumber", "params": []}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.rpc_url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.warning("Block height RPC failed: %s", e)
            raise HeightUnavailableError(f"RPC request to {self.rpc_url} failed: {e}") from e

        if "error" in data:
            logger.warning("Block height RPC error: %s", data["error"])
            raise HeightUnavailableError(f"RPC error: {data['error']}")

        try:
            return int(data["result"], 16)
        except (KeyError, TypeError, ValueError) as e:
            raise HeightUnavailableError(f"Malformed eth_blockNumber result: {data!r}") from e


_height_source: Optional[HeightSource] = None


def get_height_source() -> HeightSource:
    """Get the process-wide height source chosen by settings."""
    global _height_source
    if _height_source is None:
        settings = get_settings()
        if settings.height_source == "rpc":
            _height_source = RpcHeightSource(settings.rpc_url, timeout=settings.rpc_timeout)
        else:
            _height_source = ManualHeightSource(settings.initial_height)
        logger.info("Using %s block height source", _height_source.name)
    return _height_source


def reset_height_source() -> None:
    """Forget the cached height source (useful for testing)."""
    global _height_source
    _height_source = None
