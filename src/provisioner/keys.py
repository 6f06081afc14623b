"""Deterministic wallet derivation from BIP-39 mnemonics.

A mnemonic is stretched to its 64-byte BIP-39 seed and the first 32 bytes
become an ed25519 secret. The resulting key pair is wrapped in an
`xrpl.wallet.Wallet` so the ledger helpers can sign with it.

Never log the mnemonic or the private key.
"""

import logging

from mnemonic import Mnemonic
from nacl.encoding import HexEncoder
from nacl.signing import SigningKey
from xrpl.core import keypairs
from xrpl.wallet import Wallet

from provisioner.errors import InvalidMnemonic, MalformedPublicKey

log = logging.getLogger("provisioner.keys")

ED25519_PREFIX = "ED"
SEED_BYTES = 32

_mnemo = Mnemonic("english")


class Signer:
    """Capability to authorize ledger operations for one key pair.

    Downstream code signs through this object; raw key material is only
    handed out by `export()` so the caller can keep it client-side.
    """

    __slots__ = ("_wallet",)

    def __init__(self, wallet: Wallet):
        self._wallet = wallet

    @property
    def address(self) -> str:
        return self._wallet.address

    @property
    def public_key(self) -> str:
        return self._wallet.public_key

    @property
    def _signing_wallet(self) -> Wallet:
        # Package-internal: xrpl-py signing helpers need the Wallet itself.
        return self._wallet

    def sign(self, message: bytes) -> str:
        return keypairs.sign(message, self._wallet.private_key)

    def export(self) -> dict[str, str]:
        return {
            "address": self.address,
            "public_key": self.public_key,
            "private_key": self._wallet.private_key,
        }

    @classmethod
    def from_keys(cls, public_key: str, private_key: str) -> "Signer":
        """Rebuild a signer from an exported ed25519 key pair."""
        if not (public_key.upper().startswith(ED25519_PREFIX) and private_key.upper().startswith(ED25519_PREFIX)):
            raise MalformedPublicKey("Only ed25519 key pairs are supported")
        try:
            secret = bytes.fromhex(private_key[len(ED25519_PREFIX):])
            expected = _public_key_for(secret)
        except ValueError as e:
            raise MalformedPublicKey(f"Bad private key: {e}") from e
        if expected != public_key.upper():
            raise MalformedPublicKey("Public key does not match private key")
        return cls(Wallet(public_key=expected, private_key=private_key.upper()))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Signer):
            return NotImplemented
        return self.public_key == other.public_key

    def __hash__(self) -> int:
        return hash(self.public_key)

    def __repr__(self) -> str:
        return f"Signer(address={self.address!r})"


def _public_key_for(secret: bytes) -> str:
    if len(secret) != SEED_BYTES:
        raise ValueError(f"expected {SEED_BYTES} byte secret, got {len(secret)}")
    verify_key = SigningKey(secret).verify_key
    return ED25519_PREFIX + verify_key.encode(encoder=HexEncoder).decode().upper()


def normalize(mnemonic: str) -> str:
    return " ".join(mnemonic.split())


def generate_mnemonic(strength: int = 128) -> str:
    """Fresh English mnemonic; 128 bits gives 12 words, 256 gives 24."""
    return _mnemo.generate(strength=strength)


def derive(mnemonic: str) -> Signer:
    """Derive the signer for a mnemonic. Same phrase, same signer."""
    phrase = normalize(mnemonic or "")
    if not _mnemo.check(phrase):
        raise InvalidMnemonic("Mnemonic has a bad word count, unknown word or checksum")

    seed = Mnemonic.to_seed(phrase)
    secret = seed[:SEED_BYTES]
    public_key = _public_key_for(secret)
    private_key = ED25519_PREFIX + secret.hex().upper()
    return Signer(Wallet(public_key=public_key, private_key=private_key))


def new_wallet(strength: int = 128) -> tuple[str, Signer]:
    mnemonic = generate_mnemonic(strength)
    signer = derive(mnemonic)
    log.debug("Derived wallet %s", signer.address)
    return mnemonic, signer
