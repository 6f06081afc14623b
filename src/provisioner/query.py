import json
import logging
import re
from decimal import Decimal
from typing import Any

from xrpl.core.addresscodec import is_valid_classic_address, is_valid_xaddress, xaddress_to_classic_address
from xrpl.core.keypairs import derive_classic_address
from xrpl.utils import drops_to_xrp

from provisioner.errors import AccountNotFound, ConfigError, MalformedPublicKey, NoAssetsFound
from provisioner.models import TokenData
from provisioner.session import LedgerSession

log = logging.getLogger("provisioner.query")

# 33-byte compressed secp256k1 (02/03) or ed25519 (ED) public key
_PUBLIC_KEY = re.compile(r"^(ED|02|03)[0-9A-F]{64}$", re.IGNORECASE)

MPTOKEN = "MPToken"


def to_address(key: str) -> str:
    """Classic address for a classic address, an X-address or a hex public key."""
    key = (key or "").strip()
    if is_valid_classic_address(key):
        return key
    if is_valid_xaddress(key):
        return xaddress_to_classic_address(key)[0]
    if not _PUBLIC_KEY.match(key):
        raise MalformedPublicKey(f"Not a public key or address: {key!r}")
    return derive_classic_address(key.upper())


def decode_metadata(blob: str | None) -> dict[str, Any]:
    """MPTokenMetadata is hex encoded; JSON inside is a convention, not a rule."""
    if not blob:
        return {}
    try:
        data = json.loads(bytes.fromhex(blob).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        log.debug("MPTokenMetadata is not hex JSON, ignoring")
        return {}
    return data if isinstance(data, dict) else {}


def _first(meta: dict[str, Any], *keys: str) -> str | None:
    for k in keys:
        v = meta.get(k)
        if isinstance(v, list):
            v = v[0] if v else None
            if isinstance(v, dict):
                v = v.get("uri") or v.get("u")
        if v:
            return str(v)
    return None


class QueryService:
    """Read-only lookups. Nothing here signs or submits."""

    def __init__(self, session: LedgerSession):
        self.session = session

    async def get_balance(self, public_key_or_address: str) -> Decimal:
        """Native balance in XRP; an account that was never funded holds 0."""
        address = to_address(public_key_or_address)
        try:
            data = await self.session.account_info(address)
        except AccountNotFound:
            log.debug(f"{address} not funded, balance 0")
            return Decimal(0)
        return drops_to_xrp(str(data["Balance"]))

    async def list_assets(self, wallet_address: str) -> list[dict[str, Any]]:
        address = to_address(wallet_address)
        try:
            objects = await self.session.account_objects(address)
        except AccountNotFound:
            return []
        return [
            {
                "mpt_issuance_id": obj["MPTokenIssuanceID"],
                "amount": int(obj.get("MPTAmount", "0")),
            }
            for obj in objects
            if obj.get("LedgerEntryType") == MPTOKEN
        ]

    async def get_token_data(self, wallet_address: str, mpt_issuance_id: str | None = None) -> TokenData:
        mpt_id = mpt_issuance_id or self.session.mpt_issuance_id
        if not mpt_id:
            raise ConfigError("No MPT issuance id given or configured")
        address = to_address(wallet_address)

        assets = await self.list_assets(address)
        held = next((a for a in assets if a["mpt_issuance_id"].upper() == mpt_id.upper()), None)
        if held is None:
            raise NoAssetsFound(address, mpt_id if assets else None)

        issuance = await self.session.ledger_entry(mpt_issuance=mpt_id) or {}
        meta = decode_metadata(issuance.get("MPTokenMetadata"))
        scale = int(issuance.get("AssetScale", 0))

        return TokenData(
            mpt_issuance_id=held["mpt_issuance_id"],
            name=_first(meta, "name", "n"),
            symbol=_first(meta, "ticker", "t"),
            metadata_uri=_first(meta, "uri", "icon", "i", "us"),
            balance=Decimal(held["amount"]).scaleb(-scale),
        )
