import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

import provisioner.constants as C
from provisioner.errors import ConfigError

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"

cfg = tomllib.loads(Path(config_file).read_text())


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime settings for the provisioning engine.

    Values come from config.toml with environment overrides. Only the RPC
    endpoint is mandatory at load time; the treasury address and MPT
    issuance are checked by the components that need them.
    """

    rpc_url: str
    treasury_address: str = ""
    mpt_issuance_id: str = ""
    max_batch_transactions: int = C.MAX_BATCH_TRANSACTIONS
    batch_size: int = C.BATCH_SIZE
    unit_rate: Decimal = C.UNIT_RATE
    token_multiplier: int = C.TOKEN_MULTIPLIER
    gas_funding_drops: int = C.GAS_FUNDING_DROPS
    retry_attempts: int = C.RETRY_ATTEMPTS
    retry_base_delay: float = C.RETRY_BASE_DELAY
    retry_max_delay: float = C.RETRY_MAX_DELAY
    rpc_timeout: float = C.RPC_TIMEOUT
    submit_timeout: float = C.SUBMIT_TIMEOUT

    @classmethod
    def load(cls, config: Mapping[str, Any] | None = None, env: Mapping[str, str] | None = None) -> "Settings":
        config = cfg if config is None else config
        env = os.environ if env is None else env

        ledger = config.get("ledger", {})
        dist = config.get("distribution", {})
        retry = config.get("retry", {})
        to = config.get("timeout", {})

        rpc_url = env.get("RPC_URL") or ledger.get("rpc_url")
        if not rpc_url:
            raise ConfigError("RPC_URL is not set")

        settings = cls(
            rpc_url=rpc_url,
            treasury_address=env.get("TREASURY_ADDRESS") or ledger.get("treasury_address", ""),
            mpt_issuance_id=env.get("MPT_ISSUANCE_ID") or ledger.get("mpt_issuance_id", ""),
            max_batch_transactions=int(ledger.get("max_batch_transactions", C.MAX_BATCH_TRANSACTIONS)),
            batch_size=int(env.get("BATCH_SIZE") or dist.get("batch_size", C.BATCH_SIZE)),
            unit_rate=Decimal(str(dist.get("unit_rate", C.UNIT_RATE))),
            token_multiplier=int(dist.get("token_multiplier", C.TOKEN_MULTIPLIER)),
            gas_funding_drops=int(dist.get("gas_funding_drops", C.GAS_FUNDING_DROPS)),
            retry_attempts=int(retry.get("attempts", C.RETRY_ATTEMPTS)),
            retry_base_delay=float(retry.get("base_delay", C.RETRY_BASE_DELAY)),
            retry_max_delay=float(retry.get("max_delay", C.RETRY_MAX_DELAY)),
            rpc_timeout=float(to.get("rpc", C.RPC_TIMEOUT)),
            submit_timeout=float(to.get("submit", C.SUBMIT_TIMEOUT)),
        )
        if settings.batch_size < 1:
            raise ConfigError(f"batch_size must be positive, got {settings.batch_size}")
        return settings

    def require_distribution(self) -> None:
        missing = [name for name in ("treasury_address", "mpt_issuance_id") if not getattr(self, name)]
        if missing:
            raise ConfigError(f"Distribution needs {', '.join(missing)} configured")
