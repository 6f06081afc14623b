import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from provisioner.config import Settings
from provisioner.errors import (
    ConfigError,
    InvalidMnemonic,
    InvalidQuantity,
    MalformedPublicKey,
    NoAssetsFound,
    ProvisionerError,
    SubmissionFailed,
)
from provisioner.keys import Signer
from provisioner.logging_config import setup_logging
from provisioner.models import DistributionResult
from provisioner.service import OemService

setup_logging()
log = logging.getLogger("provisioner.app")

PROBE_TIMEOUT = 3.0
STARTUP_TIMEOUT = 60


async def _probe_rippled(url: str, max_retries: int = 30, retry_delay: float = 2.0) -> None:
    """Probe the rippled RPC endpoint with retries until it responds.

    Args:
        url: RPC endpoint URL
        max_retries: Maximum number of retry attempts
        retry_delay: Seconds to wait between retries
    """
    payload = {"method": "server_info", "params": [{}]}

    for attempt in range(1, max_retries + 1):
        try:
            async with httpx.AsyncClient(timeout=PROBE_TIMEOUT) as http:
                r = await http.post(url, json=payload)
                r.raise_for_status()
                log.info(f"RPC endpoint responding (attempt {attempt}/{max_retries})")
                return
        except httpx.HTTPError as e:
            if attempt < max_retries:
                log.info(f"RPC not ready yet (attempt {attempt}/{max_retries}): {e.__class__.__name__} - retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                log.error(f"RPC failed after {max_retries} attempts")
                raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings.load()
    async with asyncio.timeout(STARTUP_TIMEOUT):
        log.info(f"Probing RPC endpoint {settings.rpc_url}...")
        await _probe_rippled(settings.rpc_url)

    app.state.service = OemService(settings)
    log.info(f"Ready (batch size {settings.batch_size}, treasury {settings.treasury_address or 'unset'})")
    yield
    log.info("Shutdown complete")


app = FastAPI(
    title="OEM Provisioner",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "OEM", "description": "Provision OEM wallets and distribute tokens"},
    ],
)

r_oem = APIRouter(prefix="/oem", tags=["OEM"])


class SignerPayload(BaseModel):
    public_key: str
    private_key: str


class LoginReq(BaseModel):
    mnemonic: str


class CreateWalletsReq(BaseModel):
    number_of_wallets: int
    tokens_per_wallet: int
    oem: SignerPayload


# ===== Error mapping =====

STATUS = {
    InvalidMnemonic: 400,
    InvalidQuantity: 400,
    MalformedPublicKey: 400,
    NoAssetsFound: 404,
    SubmissionFailed: 502,
    ConfigError: 503,
}


@app.exception_handler(ProvisionerError)
async def provisioner_error(request: Request, exc: ProvisionerError) -> JSONResponse:
    status = next((code for cls, code in STATUS.items() if isinstance(exc, cls)), 500)
    log.warning("%s %s -> %s: %s", request.method, request.url.path, status, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), "error": exc.__class__.__name__})


def _distribution_body(result: DistributionResult) -> dict:
    return {
        "mnemonics": result.mnemonics,
        "wallets": len(result.mnemonics),
        "groups": result.groups,
        "tx_hashes": [h for g in result.confirmations for h in g.tx_hashes],
    }


# ===== Routes =====

@app.get("/health")
def health():
    return {"status": "ok"}


@r_oem.get("/wallet-balance/{pubkey}")
async def wallet_balance(pubkey: str):
    svc: OemService = app.state.service
    balance = await svc.get_wallet_balance(pubkey)
    return {"public_key": pubkey, "balance": str(balance)}


@r_oem.post("/create-oem")
async def create_oem():
    """New OEM wallet. The mnemonic and keys are returned once and never stored."""
    svc: OemService = app.state.service
    wallet = svc.create_oem_wallet()
    return {"mnemonic": wallet.mnemonic, **wallet.signer.export()}


@r_oem.post("/create-consumable-wallets")
async def create_consumable_wallets(req: CreateWalletsReq):
    svc: OemService = app.state.service
    signer = Signer.from_keys(req.oem.public_key, req.oem.private_key)
    result = await svc.create_consumable_wallets(req.number_of_wallets, signer, req.tokens_per_wallet)

    body = _distribution_body(result)
    if result.error is not None:
        # Wallets from landed groups are live on the ledger; hand them back.
        body |= {"detail": str(result.error), "failed_group": result.failed_group}
        return JSONResponse(status_code=502, content=body)
    return body


@r_oem.post("/login-oem")
async def login_oem(req: LoginReq):
    svc: OemService = app.state.service
    return svc.login_oem(req.mnemonic).export()


@r_oem.get("/token-data/{wallet_address}")
async def token_data(wallet_address: str, mpt_issuance_id: str | None = None):
    svc: OemService = app.state.service
    data = await svc.get_token_data(wallet_address, mpt_issuance_id)
    return {
        "mpt_issuance_id": data.mpt_issuance_id,
        "name": data.name,
        "symbol": data.symbol,
        "metadata_uri": data.metadata_uri,
        "balance": str(data.balance),
    }


app.include_router(r_oem)
