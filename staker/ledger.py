"""Chain API client for the endpoints the staker consumes."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

from .abi import Asset, EncodingError
from .validation import validate_url, ValidationError

if TYPE_CHECKING:
    from .signer import SignedTransaction


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class LedgerError(RuntimeError):
    """Raised when a chain API call fails."""


@dataclass(frozen=True)
class ChainReference:
    """Fields a transaction needs to be valid on a specific chain and fork."""

    chain_id: str
    ref_block_num: int
    ref_block_prefix: int

    @classmethod
    def from_block_id(cls, chain_id: str, block_id: str) -> "ChainReference":
        raw = bytes.fromhex(block_id)
        if len(raw) != 32:
            raise ValueError(f"block id must be 32 bytes: {block_id}")
        block_num = struct.unpack(">I", raw[:4])[0]
        prefix = struct.unpack("<I", raw[8:12])[0]
        return cls(chain_id=chain_id, ref_block_num=block_num & 0xFFFF, ref_block_prefix=prefix)


@dataclass(frozen=True)
class AccountResources:
    account: str
    cpu_weight: int
    net_weight: int


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:200]}"
    if not isinstance(body, dict):
        return f"HTTP {response.status_code}: {body}"
    error = body.get("error")
    if not isinstance(error, dict):
        error = {}
    details = [d.get("message") for d in error.get("details", []) if d.get("message")]
    what = error.get("what") or body.get("message") or "unknown error"
    if details:
        return f"HTTP {response.status_code}: {what} ({'; '.join(details)})"
    return f"HTTP {response.status_code}: {what}"


class LedgerClient:
    """Thin JSON client for ``/v1/chain/*``. Performs no retries."""

    def __init__(
        self,
        node_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        try:
            validate_url(node_url)
        except ValidationError as exc:
            raise LedgerError(str(exc)) from exc
        self.node_url = node_url.rstrip("/")
        self.client = httpx.Client(
            base_url=self.node_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "LedgerClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _post(self, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self.client.post(path, json=payload or {})
        except httpx.HTTPError as exc:
            raise LedgerError(f"{path} request failed: {exc}") from exc
        if response.is_error:
            raise LedgerError(f"{path} failed: {_error_message(response)}")
        try:
            return response.json()
        except ValueError as exc:
            raise LedgerError(f"{path} returned invalid JSON") from exc

    def get_chain_reference(self) -> ChainReference:
        info = self._post("/v1/chain/get_info")
        try:
            return ChainReference.from_block_id(info["chain_id"], info["head_block_id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise LedgerError(f"unexpected get_info response: {exc}") from exc

    def get_account(self, account: str) -> AccountResources:
        data = self._post("/v1/chain/get_account", {"account_name": account})
        try:
            return AccountResources(
                account=account,
                cpu_weight=int(data["cpu_weight"]),
                net_weight=int(data["net_weight"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise LedgerError(f"unexpected get_account response for {account}: {exc}") from exc

    def get_balance(
        self,
        account: str,
        symbol: str,
        precision: int,
        code: str = "eosio.token",
    ) -> int:
        """Return the liquid balance of ``symbol`` in integer units."""
        data = self._post(
            "/v1/chain/get_currency_balance",
            {"code": code, "account": account, "symbol": symbol},
        )
        if not isinstance(data, list):
            raise LedgerError(f"unexpected get_currency_balance response: {data}")
        if not data:
            return 0
        try:
            asset = Asset.from_string(data[0])
        except EncodingError as exc:
            raise LedgerError(str(exc)) from exc
        if asset.symbol != symbol or asset.precision != precision:
            raise LedgerError(
                f"balance {asset} does not match {symbol} with precision {precision}"
            )
        return asset.amount

    def push_transaction(self, signed: SignedTransaction) -> str:
        """Push a signed transaction and return its id."""
        data = self._post("/v1/chain/push_transaction", signed.to_request())
        tx_id = data.get("transaction_id") if isinstance(data, dict) else None
        if not tx_id:
            raise LedgerError("transaction pushed but no transaction id returned")
        logger.debug("pushed transaction %s", tx_id)
        return tx_id


