"""Keep inscription- and rune-bearing outputs out of cardinal sends."""

from __future__ import annotations

import logging
from typing import Set

from .errors import LockFailed
from .model import InscriptionLocations, OutPoint, RunicOutputs, UnspentOutputs
from .rpc_client import RPCError, format_rpc_hint

logger = logging.getLogger(__name__)


def protected_outputs(
    unspent_outputs: UnspentOutputs,
    inscriptions: InscriptionLocations,
    runic_outputs: RunicOutputs,
) -> Set[OutPoint]:
    """Outputs the node must not pick when funding a cardinal send."""

    inscribed = {satpoint.outpoint for satpoint in inscriptions}
    return {outpoint for outpoint in unspent_outputs if outpoint in inscribed} | set(runic_outputs)


def lock_protected_outputs(
    node,
    unspent_outputs: UnspentOutputs,
    inscriptions: InscriptionLocations,
    runic_outputs: RunicOutputs,
) -> Set[OutPoint]:
    """Ask the node to lock every protected output before it selects coins.

    Locks are left in place whether or not the send later succeeds.
    """

    protected = protected_outputs(unspent_outputs, inscriptions, runic_outputs)
    logger.info("Locking %d inscription/rune output(s)", len(protected))
    try:
        locked = node.lock_unspent(sorted(protected))
    except RPCError as exc:
        hint = format_rpc_hint(exc)
        hint_suffix = f"\nHint: {hint}" if hint else ""
        raise LockFailed(f"failed to lock UTXOs: {exc}{hint_suffix}") from exc
    if not locked:
        raise LockFailed("failed to lock UTXOs")
    return protected
