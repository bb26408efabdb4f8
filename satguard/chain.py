"""Chain data sources: wallet outputs, inscription locations, rune balances.

:class:`ChainData` is the capability the send dispatcher reads from.
:class:`OrdChainData` implements it by combining the node wallet (spendable
and locked outputs) with an ord server's JSON API (inscriptions, runes, and
index height). Nothing is cached between calls; every send reads a fresh
snapshot.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Protocol

import requests
from requests import RequestException

from .errors import IndexOutdated
from .model import (
    Amount,
    InscriptionId,
    InscriptionLocations,
    LockedOutputs,
    OutPoint,
    RunicOutputs,
    SatPoint,
    UnspentOutputs,
)

logger = logging.getLogger(__name__)


class ChainData(Protocol):
    """Read-only view of the wallet's outputs and what they carry."""

    def ensure_current(self) -> None:
        """Raise :class:`~satguard.errors.IndexOutdated` if the index lags the node."""

    def get_unspent_outputs(self) -> UnspentOutputs:
        ...

    def get_locked_outputs(self) -> LockedOutputs:
        ...

    def get_inscriptions(self, outputs: Iterable[OutPoint]) -> InscriptionLocations:
        ...

    def get_runic_outputs(self, outputs: Iterable[OutPoint]) -> RunicOutputs:
        ...

    def get_inscription_satpoint_by_id(self, inscription_id: InscriptionId) -> Optional[SatPoint]:
        ...


class OrdServerError(RuntimeError):
    """Raised when the ord server is unreachable or returns malformed data."""

    stage: str | None = None

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OrdServerClient:
    """Minimal client for the JSON endpoints of an ``ord server``."""

    def __init__(self, base_url: str, *, timeout: float = 30) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    def _get(self, path: str, *, allow_missing: bool = False) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug("ord GET %s", url)
        try:
            response = self._session.get(url, timeout=self.timeout)
        except RequestException as exc:
            logger.error("ord server unreachable: %s", exc, exc_info=logger.isEnabledFor(logging.DEBUG))
            raise OrdServerError(
                f"Could not reach the ord server at {self.base_url}; check --ord-url or SATGUARD_ORD_URL."
            ) from exc
        if allow_missing and response.status_code == 404:
            return None
        if not response.ok:
            logger.error("ord HTTP error %s from %s: %s", response.status_code, url, response.text)
            raise OrdServerError(
                f"ord server returned HTTP {response.status_code} for {path}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            logger.debug("ord JSON parse error: %s", response.text, exc_info=True)
            raise OrdServerError(f"ord server returned malformed JSON for {path}") from exc

    def block_height(self) -> int:
        return int(self._get("/blockheight"))

    def output(self, outpoint: OutPoint) -> Dict[str, Any]:
        payload = self._get(f"/output/{outpoint}")
        if not isinstance(payload, dict):
            raise OrdServerError(f"unexpected /output payload for {outpoint}")
        return payload

    def inscription(self, inscription_id: InscriptionId) -> Optional[Dict[str, Any]]:
        return self._get(f"/inscription/{inscription_id}", allow_missing=True)


class OrdChainData:
    """Chain data backed by a node wallet and an ord server."""

    def __init__(self, rpc_client, ord_client: OrdServerClient) -> None:
        self.rpc_client = rpc_client
        self.ord_client = ord_client

    def ensure_current(self) -> None:
        index_height = self.ord_client.block_height()
        node_height = self.rpc_client.getblockcount()
        if index_height < node_height:
            raise IndexOutdated(
                f"ord index is at height {index_height} but the node is at {node_height}; "
                "wait for the index to sync, or use --coin-control with --ignore-outdated-index"
            )
        logger.debug("ord index current at height %d", index_height)

    def get_unspent_outputs(self) -> UnspentOutputs:
        unspent: UnspentOutputs = {}
        for entry in self.rpc_client.listunspent(0):
            outpoint = OutPoint(str(entry["txid"]), int(entry["vout"]))
            unspent[outpoint] = Amount.from_btc(entry["amount"])
        return unspent

    def get_locked_outputs(self) -> LockedOutputs:
        return {
            OutPoint(str(entry["txid"]), int(entry["vout"]))
            for entry in self.rpc_client.listlockunspent() or []
        }

    def get_inscriptions(self, outputs: Iterable[OutPoint]) -> InscriptionLocations:
        inscriptions: InscriptionLocations = {}
        for outpoint in sorted(set(outputs)):
            for raw_id in self.ord_client.output(outpoint).get("inscriptions") or []:
                inscription_id = InscriptionId.parse(str(raw_id))
                satpoint = self.get_inscription_satpoint_by_id(inscription_id)
                if satpoint is None:
                    raise OrdServerError(
                        f"ord lists inscription {inscription_id} in {outpoint} but cannot locate it"
                    )
                inscriptions[satpoint] = inscription_id
        return inscriptions

    def get_runic_outputs(self, outputs: Iterable[OutPoint]) -> RunicOutputs:
        return {
            outpoint
            for outpoint in sorted(set(outputs))
            if self.ord_client.output(outpoint).get("runes")
        }

    def get_inscription_satpoint_by_id(self, inscription_id: InscriptionId) -> Optional[SatPoint]:
        payload = self.ord_client.inscription(inscription_id)
        if not payload:
            return None
        try:
            return SatPoint.parse(str(payload["satpoint"]))
        except (KeyError, ValueError) as exc:
            raise OrdServerError(f"ord returned no usable satpoint for {inscription_id}") from exc


__all__ = ["ChainData", "OrdChainData", "OrdServerClient", "OrdServerError"]
