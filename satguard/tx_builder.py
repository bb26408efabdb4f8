"""Transaction construction for satpoint and inscription sends.

The dispatcher only depends on the :class:`TransactionBuilder` protocol. The
:class:`NodeFundedTransactionBuilder` shipped here spends the target output
explicitly and lets the node's ``fundrawtransaction`` add cardinal inputs for
the fee. Before funding it locks every other inscription- or rune-bearing
candidate, and temporarily locks wallet outputs outside the candidate set, so
the node can only pick outputs that were checked against the index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol, Sequence, Union

from .errors import SelectionFailed
from .fees import FeeRate
from .model import (
    Amount,
    InscriptionLocations,
    LockedOutputs,
    OutPoint,
    RunicOutputs,
    SatPoint,
    UnspentOutputs,
)
from .rpc_client import RPCError, format_rpc_hint

logger = logging.getLogger(__name__)

TARGET_POSTAGE = Amount(10_000)
MAX_POSTAGE = Amount(2 * TARGET_POSTAGE.sats)
DUST_LIMIT = Amount(330)


@dataclass(frozen=True)
class Postage:
    """Default postage: keep small outputs whole, trim large ones to the target."""


@dataclass(frozen=True)
class ExactPostage:
    """Pay exactly ``amount`` to the output carrying the inscription."""

    amount: Amount


PostagePolicy = Union[Postage, ExactPostage]


class TransactionBuilder(Protocol):
    def build(
        self,
        satpoint: SatPoint,
        inscriptions: InscriptionLocations,
        unspent_outputs: UnspentOutputs,
        locked_outputs: LockedOutputs,
        runic_outputs: RunicOutputs,
        destination: str,
        change: Sequence[str],
        fee_rate: FeeRate,
        postage: PostagePolicy,
        force_inputs: Sequence[OutPoint],
    ) -> str:
        """Return an unsigned transaction hex or raise :class:`SelectionFailed`."""


def postage_value(policy: PostagePolicy, available: Amount) -> Amount:
    """Value of the output that carries the inscription.

    ``available`` is what remains of the target output from the satpoint's
    offset onwards.
    """

    if isinstance(policy, ExactPostage):
        value = policy.amount
    elif available <= MAX_POSTAGE:
        value = available
    else:
        value = TARGET_POSTAGE
    if value < DUST_LIMIT:
        raise SelectionFailed(f"postage {value} is below the dust limit of {DUST_LIMIT}")
    return value


class NodeFundedTransactionBuilder:
    """Build inscription sends with the node's wallet doing fee funding."""

    def __init__(self, rpc) -> None:
        self.rpc = rpc

    def build(
        self,
        satpoint: SatPoint,
        inscriptions: InscriptionLocations,
        unspent_outputs: UnspentOutputs,
        locked_outputs: LockedOutputs,
        runic_outputs: RunicOutputs,
        destination: str,
        change: Sequence[str],
        fee_rate: FeeRate,
        postage: PostagePolicy,
        force_inputs: Sequence[OutPoint],
    ) -> str:
        target = satpoint.outpoint
        self._check_target(satpoint, inscriptions, unspent_outputs, locked_outputs, runic_outputs)

        available = Amount(unspent_outputs[target].sats - satpoint.offset)
        value = postage_value(postage, available)

        outputs: List[Dict[str, Any]] = []
        if satpoint.offset:
            if satpoint.offset < DUST_LIMIT.sats:
                raise SelectionFailed(
                    f"satpoint offset {satpoint.offset} would leave a leading change output below dust"
                )
            outputs.append({change[0]: float(Amount(satpoint.offset).to_btc())})
        outputs.append({destination: float(value.to_btc())})

        inputs = [target] + [outpoint for outpoint in dict.fromkeys(force_inputs) if outpoint != target]
        self._exclude_protected(
            inputs, inscriptions, unspent_outputs, locked_outputs, runic_outputs
        )
        excluded = self._exclude_non_candidates(inputs, unspent_outputs, locked_outputs)

        logger.info(
            "Building send of %s with postage %s (%d forced input(s))",
            satpoint,
            value,
            len(inputs) - 1,
        )
        try:
            raw_tx = self.rpc.createrawtransaction([o.to_rpc() for o in inputs], outputs)
            funded = self.rpc.fundrawtransaction(raw_tx, self._fund_options(change, outputs, fee_rate))
        except RPCError as exc:
            logger.error(
                "Wallet could not fund the send: %s", exc, exc_info=logger.isEnabledFor(logging.DEBUG)
            )
            hint = format_rpc_hint(exc)
            hint_suffix = f"\nHint: {hint}" if hint else ""
            raise SelectionFailed(f"could not fund transaction: {exc}{hint_suffix}") from exc
        finally:
            self._release(excluded)
        logger.debug("Funded transaction with fee %s", funded.get("fee"))
        return funded["hex"]

    @staticmethod
    def _check_target(
        satpoint: SatPoint,
        inscriptions: InscriptionLocations,
        unspent_outputs: UnspentOutputs,
        locked_outputs: LockedOutputs,
        runic_outputs: RunicOutputs,
    ) -> None:
        target = satpoint.outpoint
        if target not in unspent_outputs:
            raise SelectionFailed(f"outpoint {target} not in wallet")
        if target in locked_outputs:
            raise SelectionFailed(f"outpoint {target} is locked")
        if target in runic_outputs:
            raise SelectionFailed(f"outpoint {target} holds runes")
        if satpoint.offset >= unspent_outputs[target].sats:
            raise SelectionFailed(f"satpoint {satpoint} is beyond the end of its output")
        others = sorted(
            str(inscription_id)
            for location, inscription_id in inscriptions.items()
            if location.outpoint == target and location != satpoint
        )
        if others:
            raise SelectionFailed(
                f"cannot send {satpoint} without also sending inscription(s) {', '.join(others)}"
            )

    def _exclude_protected(
        self,
        inputs: Sequence[OutPoint],
        inscriptions: InscriptionLocations,
        unspent_outputs: UnspentOutputs,
        locked_outputs: LockedOutputs,
        runic_outputs: RunicOutputs,
    ) -> None:
        protected = {location.outpoint for location in inscriptions} | set(runic_outputs)
        to_lock = sorted(
            outpoint
            for outpoint in protected
            if outpoint in unspent_outputs
            and outpoint not in locked_outputs
            and outpoint not in inputs
        )
        if not to_lock:
            return
        logger.debug("Locking %d protected output(s) before funding", len(to_lock))
        try:
            locked = self.rpc.lockunspent(False, [outpoint.to_rpc() for outpoint in to_lock])
        except RPCError as exc:
            raise SelectionFailed(f"could not exclude protected outputs: {exc}") from exc
        if not locked:
            raise SelectionFailed("could not exclude protected outputs from funding")

    def _exclude_non_candidates(
        self,
        inputs: Sequence[OutPoint],
        unspent_outputs: UnspentOutputs,
        locked_outputs: LockedOutputs,
    ) -> List[OutPoint]:
        """Lock wallet outputs the caller did not offer as candidates.

        These were never checked for inscriptions or runes. The locks last only
        until funding returns; see :meth:`_release`.
        """

        try:
            wallet = {
                OutPoint(entry["txid"], int(entry["vout"])) for entry in self.rpc.listunspent(0)
            }
        except RPCError as exc:
            raise SelectionFailed(f"could not list wallet outputs: {exc}") from exc
        to_lock = sorted(
            outpoint
            for outpoint in wallet
            if outpoint not in unspent_outputs
            and outpoint not in locked_outputs
            and outpoint not in inputs
        )
        if not to_lock:
            return []
        logger.debug("Excluding %d non-candidate wallet output(s) from funding", len(to_lock))
        try:
            locked = self.rpc.lockunspent(False, [outpoint.to_rpc() for outpoint in to_lock])
        except RPCError as exc:
            raise SelectionFailed(f"could not exclude non-candidate outputs: {exc}") from exc
        if not locked:
            raise SelectionFailed("could not exclude non-candidate outputs from funding")
        return to_lock

    def _release(self, outpoints: Sequence[OutPoint]) -> None:
        if not outpoints:
            return
        try:
            self.rpc.lockunspent(True, [outpoint.to_rpc() for outpoint in outpoints])
        except RPCError as exc:
            logger.warning(
                "Could not unlock %d output(s) excluded from funding; unlock them with lockunspent: %s",
                len(outpoints),
                exc,
            )

    @staticmethod
    def _fund_options(
        change: Sequence[str], outputs: Sequence[Dict[str, Any]], fee_rate: FeeRate
    ) -> Dict[str, Any]:
        return {
            "changeAddress": change[1],
            "changePosition": len(outputs),
            "fee_rate": fee_rate.n(),
            "add_inputs": True,
            "include_unsafe": False,
        }


__all__ = [
    "DUST_LIMIT",
    "ExactPostage",
    "MAX_POSTAGE",
    "NodeFundedTransactionBuilder",
    "Postage",
    "PostagePolicy",
    "TARGET_POSTAGE",
    "TransactionBuilder",
    "postage_value",
]
