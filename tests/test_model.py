from __future__ import annotations

from decimal import Decimal

import pytest

from satguard.model import (
    AddressNetworkError,
    Amount,
    Chain,
    InscriptionId,
    OutPoint,
    SatPoint,
    parse_outgoing,
)

TXID = "0123456789abcdef" * 4


def test_parse_outgoing_satpoint() -> None:
    outgoing = parse_outgoing(f"{TXID}:1:250")

    assert outgoing == SatPoint(OutPoint(TXID, 1), 250)
    assert str(outgoing) == f"{TXID}:1:250"


def test_parse_outgoing_inscription_id() -> None:
    outgoing = parse_outgoing(f"{TXID}i3")

    assert outgoing == InscriptionId(TXID, 3)
    assert str(outgoing) == f"{TXID}i3"


@pytest.mark.parametrize(
    "raw,sats",
    [
        ("1 btc", 100_000_000),
        ("0.0005 BTC", 50_000),
        ("10000 sat", 10_000),
        ("1sats", 1),
        ("2 mbtc", 200_000),
        ("3 bits", 300),
    ],
)
def test_parse_outgoing_amount(raw: str, sats: int) -> None:
    assert parse_outgoing(raw) == Amount(sats)


@pytest.mark.parametrize("raw", ["", "12", "1.5 sat", "1 doge", f"{TXID}:x:0", f"{TXID[:-1]}i0"])
def test_parse_outgoing_rejects_garbage(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_outgoing(raw)


def test_txids_are_normalized_to_lowercase() -> None:
    assert OutPoint.parse(f"{TXID.upper()}:0") == OutPoint(TXID, 0)


def test_outpoint_rpc_shape() -> None:
    assert OutPoint(TXID, 7).to_rpc() == {"txid": TXID, "vout": 7}


def test_amount_btc_conversion() -> None:
    assert Amount(50_000).to_btc() == Decimal("0.00050000")
    assert Amount.from_btc("0.0005") == Amount(50_000)
    assert Amount.from_btc(0.1) == Amount(10_000_000)
    with pytest.raises(ValueError):
        Amount.from_btc("0.000000001")
    with pytest.raises(ValueError):
        Amount(-1)


def test_amounts_are_ordered() -> None:
    assert Amount(330) < Amount(10_000) <= Amount(10_000)


@pytest.mark.parametrize(
    "chain,address",
    [
        (Chain.MAINNET, "bc1qar0srrr7xfkvy5l643lydnw9re59gtzzwf5mdq"),
        (Chain.MAINNET, "1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2"),
        (Chain.MAINNET, "3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy"),
        (Chain.TESTNET, "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"),
        (Chain.SIGNET, "mipcBbFg9gMiCh81Kj8tqqdgoZub1ZJRfn"),
        (Chain.REGTEST, "bcrt1qs758ursh4q9z627kt3pp5yysm78ddny6txaqgw"),
    ],
)
def test_address_matches_chain(chain: Chain, address: str) -> None:
    assert chain.require_address(address) == address


@pytest.mark.parametrize(
    "chain,address",
    [
        (Chain.MAINNET, "tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx"),
        (Chain.TESTNET, "bc1qar0srrr7xfkvy5l643lydnw9re59gtzzwf5mdq"),
        (Chain.TESTNET, "bcrt1qs758ursh4q9z627kt3pp5yysm78ddny6txaqgw"),
        (Chain.REGTEST, "1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2"),
    ],
)
def test_address_on_other_chain_is_rejected(chain: Chain, address: str) -> None:
    with pytest.raises(AddressNetworkError):
        chain.require_address(address)


def test_chain_parse_aliases() -> None:
    assert Chain.parse("main") is Chain.MAINNET
    assert Chain.parse("Regtest") is Chain.REGTEST
    assert Chain.REGTEST.default_rpc_port == 18443
    with pytest.raises(ValueError):
        Chain.parse("dogecoin")
