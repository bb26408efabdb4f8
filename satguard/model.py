"""Domain models for satguard send requests.

Outputs, satpoints and inscription identifiers are small frozen value types
so they can be used as dictionary keys and set members. The ``Outgoing`` union
describes what the user asked to send; callers dispatch on it with
``isinstance`` checks rather than subclass hooks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Set, Union

SATS_PER_BTC = 100_000_000

_TXID_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_SATPOINT_RE = re.compile(r"^[0-9a-fA-F]{64}:\d+:\d+$")
_INSCRIPTION_ID_RE = re.compile(r"^[0-9a-fA-F]{64}i\d+$")
_AMOUNT_RE = re.compile(r"^(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>[a-zA-Z]+)$")

_DENOMINATIONS: Dict[str, Decimal] = {
    "btc": Decimal(SATS_PER_BTC),
    "cbtc": Decimal(SATS_PER_BTC) / 100,
    "mbtc": Decimal(SATS_PER_BTC) / 1000,
    "ubtc": Decimal(100),
    "bit": Decimal(100),
    "bits": Decimal(100),
    "sat": Decimal(1),
    "sats": Decimal(1),
    "satoshi": Decimal(1),
    "satoshis": Decimal(1),
}


def _parse_txid(raw: str) -> str:
    if not _TXID_RE.match(raw):
        raise ValueError(f"invalid txid: {raw}")
    return raw.lower()


@dataclass(frozen=True, order=True)
class OutPoint:
    """Reference to a transaction output (``txid:vout``)."""

    txid: str
    vout: int

    @classmethod
    def parse(cls, raw: str) -> "OutPoint":
        txid, sep, vout = raw.strip().partition(":")
        if not sep or not vout.isdigit():
            raise ValueError(f"invalid outpoint: {raw}")
        return cls(_parse_txid(txid), int(vout))

    def to_rpc(self) -> dict[str, object]:
        return {"txid": self.txid, "vout": self.vout}

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True, order=True)
class SatPoint:
    """A byte offset within a specific output, pinning an inscription."""

    outpoint: OutPoint
    offset: int

    @classmethod
    def parse(cls, raw: str) -> "SatPoint":
        if not _SATPOINT_RE.match(raw.strip()):
            raise ValueError(f"invalid satpoint: {raw}")
        outpoint, _, offset = raw.strip().rpartition(":")
        return cls(OutPoint.parse(outpoint), int(offset))

    def __str__(self) -> str:
        return f"{self.outpoint}:{self.offset}"


@dataclass(frozen=True, order=True)
class InscriptionId:
    """Identifier of an inscription: reveal txid plus index (``<txid>i<n>``)."""

    txid: str
    index: int = 0

    @classmethod
    def parse(cls, raw: str) -> "InscriptionId":
        if not _INSCRIPTION_ID_RE.match(raw.strip()):
            raise ValueError(f"invalid inscription id: {raw}")
        txid, _, index = raw.strip().partition("i")
        return cls(_parse_txid(txid), int(index))

    def __str__(self) -> str:
        return f"{self.txid}i{self.index}"


@dataclass(frozen=True, order=True)
class Amount:
    """A whole number of satoshis."""

    sats: int

    def __post_init__(self) -> None:
        if self.sats < 0:
            raise ValueError(f"amount may not be negative: {self.sats}")

    @classmethod
    def from_btc(cls, value: Decimal | float | str) -> "Amount":
        sats = Decimal(str(value)) * SATS_PER_BTC
        if sats != sats.to_integral_value():
            raise ValueError(f"amount {value} BTC is not a whole number of sats")
        return cls(int(sats))

    @classmethod
    def parse(cls, raw: str) -> "Amount":
        """Parse ``"<number> <denomination>"``, e.g. ``"1.5 btc"`` or ``"10000 sat"``."""

        match = _AMOUNT_RE.match(raw.strip())
        if not match:
            raise ValueError(f"invalid amount: {raw}")
        unit = match.group("unit").lower()
        if unit not in _DENOMINATIONS:
            raise ValueError(f"unknown denomination: {match.group('unit')}")
        try:
            sats = Decimal(match.group("value")) * _DENOMINATIONS[unit]
        except InvalidOperation as exc:  # pragma: no cover - regex guards input
            raise ValueError(f"invalid amount: {raw}") from exc
        if sats != sats.to_integral_value():
            raise ValueError(f"amount {raw} is not a whole number of sats")
        return cls(int(sats))

    def to_btc(self) -> Decimal:
        return (Decimal(self.sats) / SATS_PER_BTC).quantize(Decimal("0.00000001"))

    def __str__(self) -> str:
        return f"{self.sats} sat"


Outgoing = Union[SatPoint, InscriptionId, Amount]

UnspentOutputs = Dict[OutPoint, Amount]
InscriptionLocations = Dict[SatPoint, InscriptionId]
RunicOutputs = Set[OutPoint]
LockedOutputs = Set[OutPoint]


def parse_outgoing(raw: str) -> Outgoing:
    """Classify a user-supplied send target."""

    text = raw.strip()
    if _SATPOINT_RE.match(text):
        return SatPoint.parse(text)
    if _INSCRIPTION_ID_RE.match(text):
        return InscriptionId.parse(text)
    try:
        return Amount.parse(text)
    except ValueError:
        pass
    raise ValueError(
        f"could not parse {raw!r} as a satpoint, inscription id, or amount with denomination"
    )


class AddressNetworkError(ValueError):
    """Raised when an address does not belong to the configured chain."""


class Chain(Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"

    @classmethod
    def parse(cls, raw: str) -> "Chain":
        normalized = raw.strip().lower()
        aliases = {"main": "mainnet", "bitcoin": "mainnet", "test": "testnet"}
        try:
            return cls(aliases.get(normalized, normalized))
        except ValueError as exc:
            raise ValueError(f"unknown chain: {raw}") from exc

    @property
    def default_rpc_port(self) -> int:
        return {
            Chain.MAINNET: 8332,
            Chain.TESTNET: 18332,
            Chain.SIGNET: 38332,
            Chain.REGTEST: 18443,
        }[self]

    @property
    def bech32_hrp(self) -> str:
        if self is Chain.MAINNET:
            return "bc"
        if self is Chain.REGTEST:
            return "bcrt"
        return "tb"

    @property
    def base58_prefixes(self) -> tuple[str, ...]:
        if self is Chain.MAINNET:
            return ("1", "3")
        return ("m", "n", "2")

    def address_is_valid(self, address: str) -> bool:
        """Return ``True`` when *address* is encoded for this chain.

        Only the human readable part (bech32) or leading version character
        (base58) is inspected; checksum validation is left to the node.
        """

        lowered = address.strip().lower()
        if "1" in lowered:
            hrp = lowered.rsplit("1", 1)[0]
            if hrp in {"bc", "tb", "bcrt"}:
                return hrp == self.bech32_hrp
        return address.strip().startswith(self.base58_prefixes)

    def require_address(self, address: str) -> str:
        if not self.address_is_valid(address):
            raise AddressNetworkError(f"address {address} is not valid for {self.value}")
        return address.strip()
