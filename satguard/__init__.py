"""satguard: inscription- and rune-aware sends from a Bitcoin Core wallet."""

from .errors import (
    BroadcastFailed,
    IndexOutdated,
    InvalidRequest,
    InvalidTarget,
    LockFailed,
    NotFound,
    SelectionFailed,
    SendError,
    SigningFailed,
    TransferFailed,
)
from .fees import FeeRate
from .model import (
    Amount,
    Chain,
    InscriptionId,
    OutPoint,
    Outgoing,
    SatPoint,
    parse_outgoing,
)
from .send import SendOutput, SendRequest, SendStage, Sender

__all__ = [
    "Amount",
    "Chain",
    "FeeRate",
    "InscriptionId",
    "OutPoint",
    "Outgoing",
    "SatPoint",
    "parse_outgoing",
    "SendOutput",
    "SendRequest",
    "SendStage",
    "Sender",
    "SendError",
    "InvalidRequest",
    "InvalidTarget",
    "NotFound",
    "IndexOutdated",
    "LockFailed",
    "SelectionFailed",
    "SigningFailed",
    "TransferFailed",
    "BroadcastFailed",
]
