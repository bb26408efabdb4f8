from __future__ import annotations

import pytest
import requests

from satguard.chain import OrdChainData, OrdServerClient, OrdServerError
from satguard.errors import IndexOutdated
from satguard.model import Amount, InscriptionId, OutPoint, SatPoint

PLAIN = OutPoint("11" * 32, 0)
INSCRIBED = OutPoint("22" * 32, 1)
RUNIC = OutPoint("33" * 32, 0)
INSCRIPTION = InscriptionId("44" * 32, 0)


class FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class StubOrd:
    def __init__(self, height: int = 100) -> None:
        self.height = height
        self.outputs = {
            PLAIN: {"value": 50_000, "inscriptions": [], "runes": {}},
            INSCRIBED: {"value": 10_000, "inscriptions": [str(INSCRIPTION)], "runes": {}},
            RUNIC: {"value": 546, "inscriptions": [], "runes": {"UNCOMMON•GOODS": {"amount": 1}}},
        }
        self.inscriptions = {INSCRIPTION: {"satpoint": f"{INSCRIBED}:0"}}

    def block_height(self) -> int:
        return self.height

    def output(self, outpoint):
        return self.outputs[outpoint]

    def inscription(self, inscription_id):
        return self.inscriptions.get(inscription_id)


class StubRPC:
    def __init__(self, height: int = 100) -> None:
        self.height = height

    def getblockcount(self) -> int:
        return self.height

    def listunspent(self, minconf):
        assert minconf == 0
        return [
            {"txid": PLAIN.txid, "vout": PLAIN.vout, "amount": 0.0005},
            {"txid": INSCRIBED.txid, "vout": INSCRIBED.vout, "amount": 0.0001},
        ]

    def listlockunspent(self):
        return [{"txid": RUNIC.txid, "vout": RUNIC.vout}]


def test_unspent_and_locked_outputs_come_from_the_wallet() -> None:
    chain = OrdChainData(StubRPC(), StubOrd())

    assert chain.get_unspent_outputs() == {PLAIN: Amount(50_000), INSCRIBED: Amount(10_000)}
    assert chain.get_locked_outputs() == {RUNIC}


def test_inscriptions_are_located_by_satpoint() -> None:
    chain = OrdChainData(StubRPC(), StubOrd())

    assert chain.get_inscriptions([PLAIN, INSCRIBED, RUNIC]) == {SatPoint(INSCRIBED, 0): INSCRIPTION}


def test_runic_outputs_are_detected() -> None:
    chain = OrdChainData(StubRPC(), StubOrd())

    assert chain.get_runic_outputs([PLAIN, INSCRIBED, RUNIC]) == {RUNIC}


def test_unknown_inscription_id_resolves_to_none() -> None:
    chain = OrdChainData(StubRPC(), StubOrd())

    assert chain.get_inscription_satpoint_by_id(InscriptionId("55" * 32, 0)) is None


def test_listed_but_unlocatable_inscription_is_an_error() -> None:
    ord_client = StubOrd()
    ord_client.inscriptions = {}
    chain = OrdChainData(StubRPC(), ord_client)

    with pytest.raises(OrdServerError):
        chain.get_inscriptions([INSCRIBED])


def test_lagging_index_is_reported() -> None:
    chain = OrdChainData(StubRPC(height=105), StubOrd(height=100))

    with pytest.raises(IndexOutdated) as excinfo:
        chain.ensure_current()

    assert "100" in str(excinfo.value) and "105" in str(excinfo.value)
    OrdChainData(StubRPC(height=100), StubOrd(height=100)).ensure_current()


def test_ord_client_requests_json(monkeypatch: pytest.MonkeyPatch) -> None:
    client = OrdServerClient("http://ord.local/")
    seen: list[str] = []

    def fake_get(url, timeout):
        seen.append(url)
        if url.endswith("/blockheight"):
            return FakeResponse(200, 840000)
        if "/inscription/" in url:
            return FakeResponse(404, text="not found")
        return FakeResponse(200, {"inscriptions": [], "runes": {}})

    monkeypatch.setattr(client._session, "get", fake_get)

    assert client._session.headers["Accept"] == "application/json"
    assert client.block_height() == 840000
    assert client.output(PLAIN) == {"inscriptions": [], "runes": {}}
    assert client.inscription(INSCRIPTION) is None
    assert seen == [
        "http://ord.local/blockheight",
        f"http://ord.local/output/{PLAIN}",
        f"http://ord.local/inscription/{INSCRIPTION}",
    ]


def test_ord_client_wraps_transport_and_http_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    client = OrdServerClient("http://ord.local")

    def unreachable(url, timeout):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(client._session, "get", unreachable)
    with pytest.raises(OrdServerError):
        client.block_height()

    monkeypatch.setattr(client._session, "get", lambda url, timeout: FakeResponse(500, text="boom"))
    with pytest.raises(OrdServerError) as excinfo:
        client.output(PLAIN)
    assert excinfo.value.status_code == 500

    monkeypatch.setattr(client._session, "get", lambda url, timeout: FakeResponse(200, text="<html>"))
    with pytest.raises(OrdServerError):
        client.output(PLAIN)
