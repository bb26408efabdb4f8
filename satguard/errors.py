"""Exceptions raised while resolving and dispatching a send request."""

from __future__ import annotations


class SendError(RuntimeError):
    """Base class for send failures.

    ``stage`` names the dispatcher stage that was active when the error was
    raised; it is filled in by :class:`satguard.send.Sender` on the way out.
    """

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage


class InvalidRequest(SendError):
    """Mutually exclusive options were supplied together."""


class InvalidTarget(SendError):
    """A satpoint target points at an inscription or a rune-bearing output."""


class NotFound(SendError):
    """An inscription id does not resolve to a known satpoint."""


class IndexOutdated(SendError):
    """The chain index lags behind the node."""


class LockFailed(SendError):
    """The node refused to lock protected outputs."""


class TransferFailed(SendError):
    """The node's wallet refused a direct cardinal transfer."""


class SelectionFailed(SendError):
    """The transaction builder could not assemble a valid transaction."""


class SigningFailed(SendError):
    """The node refused to sign the transaction."""


class BroadcastFailed(SendError):
    """The node refused to relay the transaction."""


__all__ = [
    "SendError",
    "InvalidRequest",
    "InvalidTarget",
    "NotFound",
    "IndexOutdated",
    "LockFailed",
    "TransferFailed",
    "SelectionFailed",
    "SigningFailed",
    "BroadcastFailed",
]
