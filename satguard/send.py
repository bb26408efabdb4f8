"""Send dispatcher: resolve a request, then transfer directly or build and broadcast.

A single :meth:`Sender.send` call moves through a short, strictly sequential
stage machine::

    START -> RESOLVING_TARGET -> DIRECT_TRANSFER -> DONE
    START -> RESOLVING_TARGET -> CONSTRUCTING_TRANSACTION -> SIGNING -> BROADCASTING -> DONE

and any stage may end in ``FAILED``. Cardinal amounts go to the node's
``sendtoaddress`` after inscription and rune outputs have been locked;
satpoints and inscriptions go through the transaction builder, then wallet
signing, then broadcast. Nothing is retried and locks taken along the way are
not released on failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, auto
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .chain import ChainData, OrdServerError
from .errors import (
    BroadcastFailed,
    InvalidRequest,
    SendError,
    SigningFailed,
    TransferFailed,
)
from .fees import FeeRate
from .guard import lock_protected_outputs
from .model import (
    AddressNetworkError,
    Amount,
    Chain,
    InscriptionLocations,
    LockedOutputs,
    OutPoint,
    Outgoing,
    RunicOutputs,
    SatPoint,
    UnspentOutputs,
)
from .resolver import check_options, resolve
from .rpc_client import RPCError, RPCTransportError, format_rpc_hint
from .tx_builder import ExactPostage, Postage, PostagePolicy, TransactionBuilder

logger = logging.getLogger(__name__)


class SendStage(Enum):
    """Lifecycle of a single send request."""

    START = auto()
    RESOLVING_TARGET = auto()
    DIRECT_TRANSFER = auto()
    CONSTRUCTING_TRANSACTION = auto()
    SIGNING = auto()
    BROADCASTING = auto()
    DONE = auto()
    FAILED = auto()


class WalletNode(Protocol):
    """Node RPC calls the dispatcher issues."""

    def get_raw_transaction(self, txid: str) -> Dict[str, Any]:
        ...

    def lock_unspent(self, outputs: Iterable[OutPoint]) -> bool:
        ...

    def sign_wallet_transaction(self, unsigned_hex: str) -> Dict[str, Any]:
        ...

    def send_raw_transaction(self, signed_hex: str) -> str:
        ...

    def send_to_address(self, address: str, amount: Amount, fee_rate: FeeRate) -> str:
        ...

    def get_change_address(self) -> str:
        ...


@dataclass
class SendRequest:
    """What the user asked to send, and how."""

    address: str
    outgoing: Outgoing
    fee_rate: FeeRate
    utxos: List[OutPoint] = field(default_factory=list)
    coin_control: bool = False
    postage: Optional[Amount] = None
    force_inputs: List[OutPoint] = field(default_factory=list)
    ignore_outdated_index: bool = False


@dataclass
class SendOutput:
    """Result of a completed send: the id of the transaction the node relayed."""

    transaction: str

    def to_dict(self) -> dict[str, str]:
        return {"transaction": self.transaction}


@dataclass
class _Snapshot:
    unspent_outputs: UnspentOutputs
    locked_outputs: LockedOutputs
    inscriptions: InscriptionLocations
    runic_outputs: RunicOutputs


class Sender:
    """Run send requests against a chain data source, a node, and a builder."""

    def __init__(
        self,
        chain: ChainData,
        node: WalletNode,
        builder: TransactionBuilder,
        *,
        network: Chain = Chain.MAINNET,
    ) -> None:
        self.chain = chain
        self.node = node
        self.builder = builder
        self.network = network
        self.stage = SendStage.START

    def _enter(self, stage: SendStage) -> None:
        logger.debug("send stage %s -> %s", self.stage.name, stage.name)
        self.stage = stage

    def send(self, request: SendRequest) -> SendOutput:
        self.stage = SendStage.START
        try:
            output = self._run(request)
        except SendError as exc:
            failed_in = self.stage
            if exc.stage is None:
                exc.stage = failed_in.name.lower()
            self._enter(SendStage.FAILED)
            logger.error("send failed during %s: %s", failed_in.name.lower(), exc)
            raise
        except (RPCError, RPCTransportError, OrdServerError) as exc:
            failed_in = self.stage
            exc.stage = failed_in.name.lower()
            self._enter(SendStage.FAILED)
            logger.error("send failed during %s: %s", failed_in.name.lower(), exc)
            raise
        except Exception:
            failed_in = self.stage
            self._enter(SendStage.FAILED)
            logger.error("send failed during %s", failed_in.name.lower())
            raise
        self._enter(SendStage.DONE)
        logger.info("Sent transaction %s", output.transaction)
        return output

    def _run(self, request: SendRequest) -> SendOutput:
        address = self._preflight(request)

        self._enter(SendStage.RESOLVING_TARGET)
        if not request.ignore_outdated_index:
            self.chain.ensure_current()
        snapshot = self._snapshot(request)
        target = resolve(
            request.outgoing,
            snapshot.inscriptions,
            snapshot.runic_outputs,
            self.chain,
            coin_control=request.coin_control,
            utxos=request.utxos,
        )

        if isinstance(target, Amount):
            return self._send_amount(address, target, request.fee_rate, snapshot)
        return self._send_satpoint(address, target, request, snapshot)

    def _preflight(self, request: SendRequest) -> str:
        """Checks that need no collaborator calls."""

        try:
            address = self.network.require_address(request.address)
        except AddressNetworkError as exc:
            raise InvalidRequest(str(exc)) from exc
        check_options(request.outgoing, coin_control=request.coin_control, utxos=request.utxos)
        if request.ignore_outdated_index and not request.coin_control:
            raise InvalidRequest(
                "--ignore-outdated-index only works in conjunction with --coin-control when sending"
            )
        return address

    def _snapshot(self, request: SendRequest) -> _Snapshot:
        unspent_outputs: UnspentOutputs = {} if request.coin_control else self.chain.get_unspent_outputs()
        for outpoint in request.utxos:
            if outpoint not in unspent_outputs:
                unspent_outputs[outpoint] = self._price_output(outpoint)

        outpoints = sorted(unspent_outputs)
        return _Snapshot(
            unspent_outputs=unspent_outputs,
            locked_outputs=self.chain.get_locked_outputs(),
            inscriptions=self.chain.get_inscriptions(outpoints),
            runic_outputs=self.chain.get_runic_outputs(outpoints),
        )

    def _price_output(self, outpoint: OutPoint) -> Amount:
        try:
            tx = self.node.get_raw_transaction(outpoint.txid)
        except RPCError as exc:
            raise InvalidRequest(f"could not look up output {outpoint}: {exc}{_hint_suffix(exc)}") from exc
        vouts = tx.get("vout", [])
        if outpoint.vout >= len(vouts):
            raise InvalidRequest(f"output {outpoint} does not exist")
        return Amount.from_btc(Decimal(str(vouts[outpoint.vout]["value"])))

    def _send_amount(
        self, address: str, amount: Amount, fee_rate: FeeRate, snapshot: _Snapshot
    ) -> SendOutput:
        self._enter(SendStage.DIRECT_TRANSFER)
        lock_protected_outputs(
            self.node, snapshot.unspent_outputs, snapshot.inscriptions, snapshot.runic_outputs
        )
        logger.info("Sending %s to %s at %s", amount, address, fee_rate)
        try:
            txid = self.node.send_to_address(address, amount, fee_rate)
        except RPCError as exc:
            raise TransferFailed(f"transfer failed: {exc}{_hint_suffix(exc)}") from exc
        return SendOutput(transaction=txid)

    def _send_satpoint(
        self, address: str, satpoint: SatPoint, request: SendRequest, snapshot: _Snapshot
    ) -> SendOutput:
        self._enter(SendStage.CONSTRUCTING_TRANSACTION)
        change = [self._change_address(), self._change_address()]
        postage: PostagePolicy = (
            ExactPostage(request.postage) if request.postage is not None else Postage()
        )
        unsigned_transaction = self.builder.build(
            satpoint,
            snapshot.inscriptions,
            snapshot.unspent_outputs,
            snapshot.locked_outputs,
            snapshot.runic_outputs,
            address,
            change,
            request.fee_rate,
            postage,
            list(request.force_inputs),
        )

        self._enter(SendStage.SIGNING)
        try:
            signed = self.node.sign_wallet_transaction(unsigned_transaction)
        except RPCError as exc:
            raise SigningFailed(f"signing failed: {exc}{_hint_suffix(exc)}") from exc
        if not signed.get("complete", True):
            raise SigningFailed("node failed to produce a complete signature set")

        self._enter(SendStage.BROADCASTING)
        try:
            txid = self.node.send_raw_transaction(signed["hex"])
        except RPCError as exc:
            raise BroadcastFailed(f"broadcast failed: {exc}{_hint_suffix(exc)}") from exc
        return SendOutput(transaction=txid)

    def _change_address(self) -> str:
        address = self.node.get_change_address()
        try:
            return self.network.require_address(address)
        except AddressNetworkError as exc:
            raise InvalidRequest(f"node returned change {exc}") from exc


def _hint_suffix(exc: RPCError) -> str:
    hint = format_rpc_hint(exc)
    return f"\nHint: {hint}" if hint else ""


__all__ = ["SendOutput", "SendRequest", "SendStage", "Sender", "WalletNode"]
