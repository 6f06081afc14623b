from dataclasses import replace
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import ABANDON, MPT_ID, FakeClient, FakeSession, err, ok
from provisioner import keys
from provisioner.app import app
from provisioner.service import OemService
from provisioner.session import LedgerSession


@pytest.fixture
def client():
    # Lifespan is not entered; each test installs its own service.
    return TestClient(app)


def _install(settings, session_factory):
    app.state.service = OemService(settings, session_factory=session_factory)


def _ledger(settings, **handlers):
    return lambda signer, s: LedgerSession.open(signer, s, client=FakeClient(**handlers))


def _wallets_body(oem, n=10, tokens=5):
    exported = oem.export()
    return {
        "number_of_wallets": n,
        "tokens_per_wallet": tokens,
        "oem": {"public_key": exported["public_key"], "private_key": exported["private_key"]},
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_oem(client, settings):
    _install(settings, _ledger(settings))
    r = client.post("/oem/create-oem")
    assert r.status_code == 200
    body = r.json()
    assert len(body["mnemonic"].split()) == 12
    assert keys.derive(body["mnemonic"]).address == body["address"]
    assert body["private_key"].startswith("ED")


def test_login_oem(client, settings):
    _install(settings, _ledger(settings))
    r = client.post("/oem/login-oem", json={"mnemonic": ABANDON})
    assert r.status_code == 200
    assert r.json()["address"] == keys.derive(ABANDON).address


def test_login_with_bad_mnemonic(client, settings):
    _install(settings, _ledger(settings))
    r = client.post("/oem/login-oem", json={"mnemonic": "abandon abandon"})
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidMnemonic"


def test_create_consumable_wallets(client, settings, oem):
    sessions = []

    def factory(signer, s):
        sessions.append(FakeSession(signer, s))
        return sessions[-1]

    _install(settings, factory)
    r = client.post("/oem/create-consumable-wallets", json=_wallets_body(oem))
    assert r.status_code == 200
    body = r.json()
    assert body["wallets"] == 10
    assert len(set(body["mnemonics"])) == 10
    assert body["groups"] == 2
    assert len(body["tx_hashes"]) == 6
    assert sessions[0].signer == oem


def test_partial_distribution_is_502_with_mnemonics(client, settings, oem):
    outcomes = ["tesSUCCESS"] * 4 + ["tecINSUFFICIENT_FUNDS"]
    _install(settings, lambda signer, s: FakeSession(signer, s, outcomes))
    r = client.post("/oem/create-consumable-wallets", json=_wallets_body(oem))
    assert r.status_code == 502
    body = r.json()
    assert body["failed_group"] == 1
    assert len(body["mnemonics"]) == 7
    assert "tecINSUFFICIENT_FUNDS" in body["detail"]


def test_unreachable_ledger_mid_distribution_is_502_with_mnemonics(client, settings, oem):
    outcomes = ["tesSUCCESS"] * 4 + ["rpc_down"]
    _install(settings, lambda signer, s: FakeSession(signer, s, outcomes))
    r = client.post("/oem/create-consumable-wallets", json=_wallets_body(oem))
    assert r.status_code == 502
    body = r.json()
    assert body["failed_group"] == 1
    assert len(body["mnemonics"]) == 7
    assert "outcome unknown" in body["detail"]


@pytest.mark.parametrize("n, tokens", [(0, 5), (3, 0), (-1, 1)])
def test_bad_quantities_are_400(client, settings, oem, n, tokens):
    _install(settings, lambda signer, s: FakeSession(signer, s))
    r = client.post("/oem/create-consumable-wallets", json=_wallets_body(oem, n, tokens))
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidQuantity"


def test_mismatched_oem_keys_are_400(client, settings, oem):
    _install(settings, lambda signer, s: FakeSession(signer, s))
    body = _wallets_body(oem)
    body["oem"]["public_key"] = keys.new_wallet()[1].public_key
    r = client.post("/oem/create-consumable-wallets", json=body)
    assert r.status_code == 400


def test_distribution_without_treasury_is_503(client, settings, oem):
    bare = replace(settings, treasury_address="")
    _install(bare, lambda signer, s: FakeSession(signer, s))
    r = client.post("/oem/create-consumable-wallets", json=_wallets_body(oem))
    assert r.status_code == 503


def test_wallet_balance(client, settings):
    _install(settings, _ledger(settings, account_info=lambda req: ok({"account_data": {"Balance": "25000000"}})))
    pub = keys.derive(ABANDON).public_key
    r = client.get(f"/oem/wallet-balance/{pub}")
    assert r.status_code == 200
    assert Decimal(r.json()["balance"]) == 25


def test_wallet_balance_unfunded(client, settings):
    _install(settings, _ledger(settings, account_info=lambda req: err("actNotFound")))
    r = client.get(f"/oem/wallet-balance/{keys.derive(ABANDON).public_key}")
    assert Decimal(r.json()["balance"]) == 0


def test_wallet_balance_malformed_key(client, settings):
    _install(settings, _ledger(settings))
    assert client.get("/oem/wallet-balance/nope").status_code == 400


def test_token_data(client, settings):
    _install(settings, _ledger(
        settings,
        account_objects=lambda req: ok({"account_objects": [
            {"LedgerEntryType": "MPToken", "MPTokenIssuanceID": MPT_ID, "MPTAmount": "5000"},
        ]}),
        ledger_entry=lambda req: ok({"node": {}}),
    ))
    r = client.get(f"/oem/token-data/{keys.derive(ABANDON).address}")
    assert r.status_code == 200
    assert r.json() == {
        "mpt_issuance_id": MPT_ID,
        "name": None,
        "symbol": None,
        "metadata_uri": None,
        "balance": "5000",
    }


def test_token_data_no_assets_is_404(client, settings):
    _install(settings, _ledger(settings, account_objects=lambda req: ok({"account_objects": []})))
    r = client.get(f"/oem/token-data/{keys.derive(ABANDON).address}")
    assert r.status_code == 404
