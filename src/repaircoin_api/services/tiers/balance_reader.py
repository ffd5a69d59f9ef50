"""RCG balance reads over an EVM JSON-RPC endpoint."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from itertools import count
from typing import Any, Literal, Protocol

import httpx
from loguru import logger

from repaircoin_api.core.settings import settings


_BALANCE_OF_SELECTOR = "0x70a08231"
_TOTAL_SUPPLY_SELECTOR = "0x18160ddd"


@dataclass(frozen=True, slots=True)
class BalanceResult:
    """Tagged outcome of a balance read; ``balance`` is only set when ``status == "ok"``."""

    status: Literal["ok", "error"]
    balance: Decimal | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def success(cls, balance: Decimal) -> "BalanceResult":
        return cls(status="ok", balance=balance)

    @classmethod
    def failure(cls, error: str) -> "BalanceResult":
        return cls(status="error", error=error)


@dataclass(frozen=True, slots=True)
class ContractStats:
    contract_address: str | None
    total_supply: Decimal
    circulating_supply: Decimal


class RCGBalanceReader(Protocol):
    """Contract for reading governance token balances."""

    async def get_balance(self, address: str) -> BalanceResult:
        ...

    async def get_contract_stats(self) -> ContractStats:
        ...


class BalanceReadError(RuntimeError):
    """Raised when the JSON-RPC endpoint returns an error payload."""


class JsonRpcBalanceReader:
    """Reads ERC-20 balances with ``eth_call`` against a JSON-RPC endpoint."""

    def __init__(
        self,
        *,
        rpc_url: str | None = None,
        contract_address: str | None = None,
        decimals: int | None = None,
        timeout_seconds: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._rpc_url = rpc_url if rpc_url is not None else settings.rpc_url
        self._contract_address = contract_address if contract_address is not None else settings.rcg_contract_address
        self._decimals = decimals if decimals is not None else settings.rcg_token_decimals
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.rpc_timeout_seconds
        self._http_client = http_client
        self._request_ids = count(1)

    async def get_balance(self, address: str) -> BalanceResult:
        try:
            data = _BALANCE_OF_SELECTOR + _encode_address(address)
            raw = await self._eth_call(data)
        except (httpx.HTTPError, BalanceReadError, ValueError) as exc:
            logger.warning("RCG balance read failed", address=address, error=str(exc))
            return BalanceResult.failure(str(exc))
        return BalanceResult.success(self._to_tokens(raw))

    async def get_contract_stats(self) -> ContractStats:
        raw = await self._eth_call(_TOTAL_SUPPLY_SELECTOR)
        total_supply = self._to_tokens(raw)
        return ContractStats(
            contract_address=self._contract_address,
            total_supply=total_supply,
            circulating_supply=total_supply,
        )

    async def _eth_call(self, data: str) -> int:
        if not self._rpc_url or not self._contract_address:
            raise BalanceReadError("RPC endpoint or RCG contract address not configured")

        payload: dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": "eth_call",
            "params": [{"to": self._contract_address, "data": data}, "latest"],
        }

        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout)
            close_client = True

        try:
            response = await client.post(self._rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        finally:
            if close_client:
                await client.aclose()

        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise BalanceReadError(message or "JSON-RPC error")
        result = body.get("result")
        if not isinstance(result, str):
            raise BalanceReadError("JSON-RPC response missing result")
        return int(result, 16) if result not in ("0x", "") else 0

    def _to_tokens(self, raw: int) -> Decimal:
        return Decimal(raw).scaleb(-self._decimals)


def _encode_address(address: str) -> str:
    value = address.lower().removeprefix("0x")
    if len(value) != 40:
        raise ValueError(f"Invalid wallet address: {address}")
    int(value, 16)
    return value.rjust(64, "0")


__all__ = [
    "BalanceReadError",
    "BalanceResult",
    "ContractStats",
    "JsonRpcBalanceReader",
    "RCGBalanceReader",
]
