import json

import pytest
import requests

from satguard.config import RPCConfig
from satguard.fees import FeeRate
from satguard.model import Amount, OutPoint
from satguard.rpc_client import BitcoinRPCClient, RPCError, RPCTransportError, format_rpc_hint


class FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.url = "http://127.0.0.1:8332/wallet/ord"

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


@pytest.fixture()
def client() -> BitcoinRPCClient:
    return BitcoinRPCClient(RPCConfig(user="u", password="p", wallet="ord"))


def _capture(monkeypatch, client, response):
    posted: list[dict] = []

    def fake_post(url, data, headers, auth, timeout):
        posted.append({"url": url, "payload": json.loads(data), "auth": auth})
        return response

    monkeypatch.setattr(client._session, "post", fake_post)
    return posted


def test_send_to_address_passes_amount_in_btc_and_fee_rate_last(monkeypatch, client) -> None:
    posted = _capture(monkeypatch, client, FakeResponse(200, {"result": "txid", "error": None}))

    assert client.send_to_address("bc1qdest", Amount(50_000), FeeRate(7)) == "txid"

    call = posted[0]
    assert call["url"] == "http://127.0.0.1:8332/wallet/ord"
    assert call["auth"] == ("u", "p")
    assert call["payload"]["method"] == "sendtoaddress"
    params = call["payload"]["params"]
    assert params[0] == "bc1qdest"
    assert params[1] == 0.0005
    assert params[2:9] == [None] * 7
    assert params[9] == 7


def test_lock_unspent_sends_outpoint_objects(monkeypatch, client) -> None:
    posted = _capture(monkeypatch, client, FakeResponse(200, {"result": True, "error": None}))
    outpoint = OutPoint("ab" * 32, 3)

    assert client.lock_unspent([outpoint]) is True
    assert posted[0]["payload"]["params"] == [False, [{"txid": "ab" * 32, "vout": 3}]]


def test_rpc_error_body_on_http_500_is_raised_as_rpc_error(monkeypatch, client) -> None:
    body = {"result": None, "error": {"code": -26, "message": "min relay fee not met"}}
    _capture(monkeypatch, client, FakeResponse(500, body))

    with pytest.raises(RPCError) as excinfo:
        client.send_raw_transaction("deadbeef")

    assert excinfo.value.code == -26
    hint = format_rpc_hint(excinfo.value)
    assert hint is not None and "--fee-rate" in hint


def test_unauthorized_is_a_transport_error(monkeypatch, client) -> None:
    _capture(monkeypatch, client, FakeResponse(401, None, text=""))

    with pytest.raises(RPCTransportError) as excinfo:
        client.getblockcount()

    assert excinfo.value.status_code == 401


def test_connection_failure_is_a_transport_error(monkeypatch, client) -> None:
    def refuse(*_args, **_kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(client._session, "post", refuse)

    with pytest.raises(RPCTransportError) as excinfo:
        client.getblockcount()

    assert "RPC connection failed" in str(excinfo.value)


@pytest.mark.parametrize(
    "error,expected",
    [
        ({"code": -6, "message": "Insufficient funds"}, "could not fund"),
        ({"code": -13, "message": "Please enter the wallet passphrase"}, "wallet is locked"),
        ({"code": -25, "message": "bad-txns-inputs-missingorspent"}, "already spent"),
        ({"code": -5, "message": "Invalid address"}, "destination address"),
        ({"code": -1, "message": "something else"}, None),
    ],
)
def test_format_rpc_hint(error, expected) -> None:
    hint = format_rpc_hint(error)
    if expected is None:
        assert hint is None
    else:
        assert expected in hint


def test_format_rpc_hint_accepts_none() -> None:
    assert format_rpc_hint(None) is None
