"""Transaction signing for secp256k1 (``K1``) keys."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import base58
from ecdsa import SECP256k1, SigningKey, VerifyingKey
from ecdsa.util import sigdecode_string, sigencode_string_canonize

from .abi import EncodingError
from .transaction import UnsignedTransaction


logger = logging.getLogger(__name__)

WIF_VERSION = 0x80
KEY_TYPE = b"K1"
EMPTY_CFD_DIGEST = b"\x00" * 32


class SigningError(RuntimeError):
    """Raised when a key is unusable or signing fails."""


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def ripemd160(data: bytes) -> bytes:
    h = hashlib.new("ripemd160")
    h.update(data)
    return h.digest()


def _k1_checksum(data: bytes) -> bytes:
    return ripemd160(data + KEY_TYPE)[:4]


def decode_private_key(key: str) -> bytes:
    """Return the 32 byte secret of a WIF or ``PVT_K1_`` key."""
    if not isinstance(key, str) or not key:
        raise SigningError("private key must be a non-empty string")
    try:
        if key.startswith("PVT_K1_"):
            raw = base58.b58decode(key[len("PVT_K1_"):])
            secret, checksum = raw[:-4], raw[-4:]
            valid = checksum == _k1_checksum(secret)
        else:
            raw = base58.b58decode(key)
            body, checksum = raw[:-4], raw[-4:]
            valid = body[:1] == bytes([WIF_VERSION]) and checksum == sha256(sha256(body))[:4]
            secret = body[1:]
    except ValueError as exc:
        raise SigningError(f"Invalid private key encoding: {exc}") from exc
    if not valid or len(secret) != 32:
        raise SigningError("Invalid private key: bad checksum or length")
    return secret


def format_public_key(compressed: bytes, legacy: bool = False) -> str:
    if legacy:
        return "EOS" + base58.b58encode(compressed + ripemd160(compressed)[:4]).decode("ascii")
    return "PUB_K1_" + base58.b58encode(compressed + _k1_checksum(compressed)).decode("ascii")


def format_signature(compact: bytes) -> str:
    return "SIG_K1_" + base58.b58encode(compact + _k1_checksum(compact)).decode("ascii")


def parse_signature(signature: str) -> bytes:
    """Inverse of :func:`format_signature`, returns the 65 byte compact form."""
    if not signature.startswith("SIG_K1_"):
        raise SigningError(f"unsupported signature format: {signature[:10]}")
    raw = base58.b58decode(signature[len("SIG_K1_"):])
    compact, checksum = raw[:-4], raw[-4:]
    if len(compact) != 65 or checksum != _k1_checksum(compact):
        raise SigningError("signature checksum mismatch")
    return compact


def is_canonical(compact: bytes) -> bool:
    """The chain rejects signatures whose r or s would need a DER sign byte."""
    return (
        not compact[1] & 0x80
        and not (compact[1] == 0 and not compact[2] & 0x80)
        and not compact[33] & 0x80
        and not (compact[33] == 0 and not compact[34] & 0x80)
    )


def signing_digest(chain_id: str, packed_trx: bytes) -> bytes:
    try:
        chain = bytes.fromhex(chain_id)
    except ValueError as exc:
        raise SigningError(f"invalid chain id: {chain_id}") from exc
    if len(chain) != 32:
        raise SigningError(f"chain id must be 32 bytes: {chain_id}")
    return sha256(chain + packed_trx + EMPTY_CFD_DIGEST)


@dataclass(frozen=True)
class SignedTransaction:
    packed_trx: bytes
    signatures: Tuple[str, ...]
    expiration: int

    @property
    def transaction_id(self) -> str:
        return sha256(self.packed_trx).hex()

    def to_request(self) -> Dict[str, object]:
        return {
            "signatures": list(self.signatures),
            "compression": "none",
            "packed_context_free_data": "",
            "packed_trx": self.packed_trx.hex(),
        }


class _Key:
    def __init__(self, secret: bytes):
        self.signing_key = SigningKey.from_string(secret, curve=SECP256k1)
        self.public_key = self.signing_key.get_verifying_key().to_string("compressed")

    def _recovery_id(self, signature: bytes, digest: bytes) -> int:
        candidates = VerifyingKey.from_public_key_recovery_with_digest(
            signature,
            digest,
            SECP256k1,
            hashfunc=hashlib.sha256,
            sigdecode=sigdecode_string,
        )
        for recovery_id, candidate in enumerate(candidates):
            if candidate.to_string("compressed") == self.public_key:
                return recovery_id
        raise SigningError("could not derive recovery id for signature")

    def sign_compact(self, digest: bytes) -> bytes:
        nonce = 0
        while True:
            signature = self.signing_key.sign_digest_deterministic(
                digest,
                hashfunc=hashlib.sha256,
                sigencode=sigencode_string_canonize,
                extra_entropy=nonce.to_bytes(32, "big") if nonce else b"",
            )
            # 27 + 4: recovery header for a compressed public key
            compact = bytes([31 + self._recovery_id(signature, digest)]) + signature
            if is_canonical(compact):
                return compact
            nonce += 1


class TransactionSigner:
    """Sign delegation transactions with one or more private keys."""

    def __init__(self, keys: Sequence[str]):
        if isinstance(keys, str):
            keys = [keys]
        if not keys:
            raise SigningError("at least one private key is required")
        self._keys = [_Key(decode_private_key(key)) for key in keys]

    @property
    def public_keys(self) -> List[str]:
        return [format_public_key(key.public_key) for key in self._keys]

    def sign(self, unsigned: UnsignedTransaction, chain_id: str) -> SignedTransaction:
        """Pack ``unsigned`` and sign it with every key, in key order."""
        try:
            packed = unsigned.pack()
        except EncodingError:
            raise
        except (ValueError, TypeError) as exc:
            raise EncodingError(f"Failed to pack transaction: {exc}") from exc
        digest = signing_digest(chain_id, packed)
        signatures = tuple(format_signature(key.sign_compact(digest)) for key in self._keys)
        logger.debug("signed transaction %s with %d key(s)", sha256(packed).hex(), len(signatures))
        return SignedTransaction(
            packed_trx=packed,
            signatures=signatures,
            expiration=unsigned.expiration,
        )
