from decimal import Decimal

import pytest

from provisioner.config import Settings, cfg
from provisioner.errors import ConfigError


def test_packaged_defaults():
    s = Settings.load(env={"RPC_URL": "http://rippled:5005"})
    assert s.rpc_url == "http://rippled:5005"
    assert s.batch_size == 7
    assert s.max_batch_transactions == 8
    assert s.unit_rate == Decimal("0.0000001")
    assert s.token_multiplier == 1000
    assert s.gas_funding_drops == 1_000_000


def test_rpc_url_is_required():
    with pytest.raises(ConfigError):
        Settings.load(config={}, env={})


def test_env_overrides_file():
    config = {"ledger": {"rpc_url": "http://file:5005", "treasury_address": "rFile"}}
    env = {"RPC_URL": "http://env:5005", "BATCH_SIZE": "3", "MPT_ISSUANCE_ID": "00AB"}
    s = Settings.load(config=config, env=env)
    assert s.rpc_url == "http://env:5005"
    assert s.batch_size == 3
    assert s.treasury_address == "rFile"
    assert s.mpt_issuance_id == "00AB"


def test_rejects_non_positive_batch_size():
    with pytest.raises(ConfigError):
        Settings.load(config=cfg, env={"RPC_URL": "http://x", "BATCH_SIZE": "0"})


def test_require_distribution_names_missing_settings():
    s = Settings(rpc_url="http://x", treasury_address="rT")
    with pytest.raises(ConfigError, match="mpt_issuance_id"):
        s.require_distribution()
