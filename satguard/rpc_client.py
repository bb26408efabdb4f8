"""Typed JSON-RPC client for Bitcoin Core nodes.

The raw wrappers map one-to-one onto node RPC methods. The capability methods
below them (``get_raw_transaction``, ``lock_unspent``, ``sign_wallet_transaction``,
``send_raw_transaction``, ``send_to_address``, ``get_change_address``) are the
narrow surface the send dispatcher depends on; tests substitute stubs with the
same method names.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Iterable, Optional

import requests
from requests import RequestException, Response

from .config import RPCConfig
from .fees import FeeRate
from .model import Amount, OutPoint

logger = logging.getLogger(__name__)


class RPCError(RuntimeError):
    """Raised when the node responds with an RPC error."""

    stage: str | None = None

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message


def format_rpc_hint(error_obj: dict[str, Any] | RPCError | None) -> str | None:
    """Return a human-friendly hint for common JSON-RPC errors seen while sending.

    Callers should still log the structured RPC error body; this complements
    those diagnostics with actionable guidance for CLI users.
    """

    if error_obj is None:
        return None

    code = None
    message = ""
    if isinstance(error_obj, RPCError):
        code = error_obj.code
        message = error_obj.message
    elif isinstance(error_obj, dict):
        code = error_obj.get("code")
        message = str(error_obj.get("message", ""))

    if code == -26 and "min relay fee not met" in message:
        return (
            "The node rejected the transaction because the fee is below its minrelaytxfee policy. "
            "Retry with a higher --fee-rate."
        )
    if code in {-4, -6} or "insufficient funds" in message.lower():
        return (
            "The wallet could not fund the transaction. Fund the wallet, or pass additional "
            "cardinal outputs with --utxo when using --coin-control."
        )
    if code == -13 or "wallet passphrase" in message.lower() or "wallet locked" in message.lower():
        return "The wallet is locked. Unlock it with walletpassphrase, then retry the command."
    if code == -8 and "invalid parameter, unknown transaction" in message.lower():
        return "One of the outputs to lock is not known to the wallet; check --utxo and --force-input values."
    if code == -25 or "missing inputs" in message.lower() or "bad-txns-inputs-missingorspent" in message:
        return "An input was already spent. Wait for the index to catch up and retry."
    if code == -5 and "invalid address" in message.lower():
        return "The destination address was rejected by the node; check that it matches the node's chain."
    return None


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    stage: str | None = None

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BitcoinRPCClient:
    """Typed JSON-RPC client for Bitcoin Core compatible nodes.

    Connection defaults can be overridden via ``SATGUARD_RPC_USER``,
    ``SATGUARD_RPC_PASSWORD``, ``SATGUARD_RPC_HOST``, ``SATGUARD_RPC_PORT``
    and ``SATGUARD_RPC_WALLET``, or an ``rpc:`` section in
    ``~/.satguard.yaml``.
    """

    def __init__(self, config: RPCConfig, *, timeout: float = 30) -> None:
        self.config = config
        self.timeout = timeout
        self._session = requests.Session()
        self._base_url = config.base_url
        self._wallet = config.wallet

    def call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "1.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self._url,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                auth=(self.config.user, self.config.password),
                timeout=self.timeout,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                "RPC connection failed. Ensure your node is reachable, authentication is valid, "
                "and SATGUARD_RPC_* variables (or ~/.satguard.yaml) point to the right host and port."
            ) from exc

        # Bitcoin Core reports JSON-RPC errors with HTTP 500 and a JSON body.
        try:
            result = response.json()
        except ValueError as exc:
            self._raise_for_status(response)
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if not isinstance(result, dict):
            raise RPCTransportError("RPC server returned an unexpected payload")
        if result.get("error"):
            error = result["error"]
            logger.debug("RPC %s failed: %s", method, error)
            raise RPCError(error.get("code", -1), error.get("message", "unknown"))
        self._raise_for_status(response)
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        if response.ok:
            return
        logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
        if response.status_code == 401:
            raise RPCTransportError(
                "Unauthorized (401). Ensure SATGUARD_RPC_USER (or your .satguard.yaml) contains valid credentials.",
                status_code=response.status_code,
            )
        raise RPCTransportError(
            "RPC server returned an HTTP error; check the URL, wallet name, and SATGUARD_RPC_* settings.",
            status_code=response.status_code,
        )

    @property
    def _url(self) -> str:
        if self._wallet:
            return f"{self._base_url}/wallet/{self._wallet}"
        return self._base_url

    # Convenience wrappers -------------------------------------------------

    def getblockcount(self) -> int:
        return int(self.call("getblockcount"))

    def getrawtransaction(self, txid: str, verbose: bool = False) -> Any:
        return self.call("getrawtransaction", [txid, verbose])

    def listunspent(self, minconf: int = 1, maxconf: int = 9999999) -> list[Dict[str, Any]]:
        return self.call("listunspent", [minconf, maxconf])

    def listlockunspent(self) -> list[Dict[str, Any]]:
        return self.call("listlockunspent")

    def lockunspent(self, unlock: bool, outputs: list[Dict[str, Any]]) -> bool:
        return bool(self.call("lockunspent", [unlock, outputs]))

    def getrawchangeaddress(self, address_type: str | None = None) -> str:
        params: list[Any] = []
        if address_type is not None:
            params.append(address_type)
        return self.call("getrawchangeaddress", params)

    def createrawtransaction(
        self, inputs: list[Dict[str, Any]], outputs: list[Dict[str, Any]]
    ) -> str:
        return self.call("createrawtransaction", [inputs, outputs])

    def fundrawtransaction(
        self, raw_tx: str, options: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        params: list[Any] = [raw_tx]
        if options is not None:
            params.append(options)
        return self.call("fundrawtransaction", params)

    def signrawtransactionwithwallet(self, raw_tx: str) -> Dict[str, Any]:
        return self.call("signrawtransactionwithwallet", [raw_tx])

    def sendrawtransaction(self, raw_tx: str) -> str:
        return self.call("sendrawtransaction", [raw_tx])

    # Send capabilities ----------------------------------------------------

    def get_raw_transaction(self, txid: str) -> Dict[str, Any]:
        """Return the decoded transaction for *txid*."""

        return self.getrawtransaction(txid, verbose=True)

    def lock_unspent(self, outputs: Iterable[OutPoint]) -> bool:
        return self.lockunspent(False, [outpoint.to_rpc() for outpoint in outputs])

    def sign_wallet_transaction(self, unsigned_hex: str) -> Dict[str, Any]:
        return self.signrawtransactionwithwallet(unsigned_hex)

    def send_raw_transaction(self, signed_hex: str) -> str:
        return self.sendrawtransaction(signed_hex)

    def send_to_address(self, address: str, amount: Amount, fee_rate: FeeRate) -> str:
        """Send *amount* to *address*, letting the wallet select coins and sign."""

        return self.call(
            "sendtoaddress",
            [
                address,                  #  1. address
                float(amount.to_btc()),   #  2. amount
                None,                     #  3. comment
                None,                     #  4. comment_to
                None,                     #  5. subtractfeefromamount
                None,                     #  6. replaceable
                None,                     #  7. conf_target
                None,                     #  8. estimate_mode
                None,                     #  9. avoid_reuse
                fee_rate.n(),             # 10. fee_rate
            ],
        )

    def get_change_address(self) -> str:
        return self.getrawchangeaddress("bech32m")


__all__ = ["BitcoinRPCClient", "RPCError", "RPCTransportError", "format_rpc_hint"]
