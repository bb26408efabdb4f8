"""Resolve a send target into a satpoint or a plain cardinal amount."""

from __future__ import annotations

import logging
from typing import Sequence, Union

from .errors import InvalidRequest, InvalidTarget, NotFound
from .model import (
    Amount,
    InscriptionId,
    InscriptionLocations,
    OutPoint,
    Outgoing,
    RunicOutputs,
    SatPoint,
)

logger = logging.getLogger(__name__)

ResolvedTarget = Union[SatPoint, Amount]


def check_options(outgoing: Outgoing, *, coin_control: bool, utxos: Sequence[OutPoint]) -> None:
    """Reject option combinations that only make sense for satpoint targets."""

    if not isinstance(outgoing, Amount):
        return
    if coin_control or utxos:
        raise InvalidRequest("--coin-control and --utxo don't work when sending cardinals")
    if not outgoing.sats:
        raise InvalidRequest("cannot send a zero amount")


def resolve(
    outgoing: Outgoing,
    inscriptions: InscriptionLocations,
    runic_outputs: RunicOutputs,
    chain,
    *,
    coin_control: bool = False,
    utxos: Sequence[OutPoint] = (),
) -> ResolvedTarget:
    """Return the satpoint to build around, or the amount to send directly.

    ``chain`` only needs ``get_inscription_satpoint_by_id``; it is consulted
    for inscription ids and nothing else.
    """

    if isinstance(outgoing, SatPoint):
        if outgoing in inscriptions:
            raise InvalidTarget("inscriptions must be sent by inscription ID")
        if outgoing.outpoint in runic_outputs:
            raise InvalidTarget("runic outpoints may not be sent by satpoint")
        return outgoing

    if isinstance(outgoing, InscriptionId):
        satpoint = chain.get_inscription_satpoint_by_id(outgoing)
        if satpoint is None:
            raise NotFound(f"Inscription {outgoing} not found")
        logger.debug("Resolved inscription %s to satpoint %s", outgoing, satpoint)
        return satpoint

    if isinstance(outgoing, Amount):
        check_options(outgoing, coin_control=coin_control, utxos=utxos)
        return outgoing

    raise TypeError(f"unsupported send target: {outgoing!r}")
