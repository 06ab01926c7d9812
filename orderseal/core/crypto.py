"""
orderseal/core/crypto.py

Cryptographic layer.

Two key types live here, with two different jobs:

    MakerKeyManager     secp256k1 (eth-account). Signs order fingerprints with
                        the personal-message prefix and recovers signers from
                        (v, r, s). Addresses are EIP-55 checksum strings.

    Ed25519KeyManager   Ed25519 (cryptography). Signs event journal entries.

Key contracts:
    MakerKeyManager.address             : @property → checksum address
    MakerKeyManager.sign(digest)        : 32-byte digest → Signature
    MakerKeyManager.recover(...)        : @staticmethod → address or None, never raises
    MakerKeyManager.verify_detached(...): @staticmethod → bool, never raises
    Ed25519KeyManager.public_key_hex    : @property → 64-char lowercase hex
    Ed25519KeyManager.sign(data)        : bytes → base64url str, no padding
    Ed25519KeyManager.verify_detached   : @staticmethod → bool, never raises
"""

import base64
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import is_address, to_checksum_address

from orderseal.core.models import Signature


class MakerKeyManager:
    """
    secp256k1 key manager for order makers.

    Public surface:
        MakerKeyManager.generate()                       → new random key
        MakerKeyManager.from_private_key(hex_or_bytes)   → load raw key
        MakerKeyManager.from_file(path)                  → load hex key file
        MakerKeyManager.recover(digest, signature)       → @staticmethod
        MakerKeyManager.verify_detached(digest, sig, a)  → @staticmethod

        key.address                 (@property) → checksum address
        key.sign(digest: bytes)                 → Signature
        key.save(path)                          → write hex key file
    """

    def __init__(self, account) -> None:
        self._account = account
        self._address: str = to_checksum_address(account.address)

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "MakerKeyManager":
        """Generate a new random secp256k1 key."""
        return cls(Account.create())

    @classmethod
    def from_private_key(cls, private_key) -> "MakerKeyManager":
        """
        Load from a raw 32-byte key (bytes or 0x-prefixed hex).
        Raises ValueError if the key is malformed.
        """
        try:
            return cls(Account.from_key(private_key))
        except Exception as exc:
            raise ValueError(f"Invalid secp256k1 private key: {exc}") from exc

    @classmethod
    def from_file(cls, path: Path) -> "MakerKeyManager":
        """
        Load a hex-encoded private key from a text file.
        Raises FileNotFoundError if path does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        return cls.from_private_key(path.read_text(encoding="utf-8").strip())

    # ── Identity ──────────────────────────────────────────────

    @property
    def address(self) -> str:
        """EIP-55 checksum address of this key. A @property."""
        return self._address

    # ── Signing ───────────────────────────────────────────────

    def sign(self, digest: bytes) -> Signature:
        """
        Sign a 32-byte digest (an order fingerprint).

        The digest is wrapped with the "\\x19Ethereum Signed Message:\\n32"
        prefix before signing, so v is 27 or 28.
        """
        if len(digest) != 32:
            raise ValueError(f"Digest must be 32 bytes, got {len(digest)}")
        signed = self._account.sign_message(encode_defunct(primitive=digest))
        return Signature(
            v=signed.v,
            r="0x" + signed.r.to_bytes(32, "big").hex(),
            s="0x" + signed.s.to_bytes(32, "big").hex(),
        )

    # ── Recovery (static) ─────────────────────────────────────

    @staticmethod
    def recover(digest: bytes, signature: Signature) -> Optional[str]:
        """
        Recover the checksum address that produced `signature` over `digest`.

        Returns None for ANY failure: bad v, r or s out of range,
        malformed hex. Never raises.
        """
        try:
            vrs = (signature.v, int(signature.r, 16), int(signature.s, 16))
            recovered = Account.recover_message(
                encode_defunct(primitive=digest), vrs=vrs
            )
            return to_checksum_address(recovered)
        except Exception:
            return None

    @staticmethod
    def verify_detached(digest: bytes, signature: Signature, address: str) -> bool:
        """
        True iff `signature` over `digest` recovers exactly `address`.
        False for ANY failure. Never raises.
        """
        if not address or not is_address(address):
            return False
        recovered = MakerKeyManager.recover(digest, signature)
        return recovered is not None and recovered == to_checksum_address(address)

    # ── Persistence ───────────────────────────────────────────

    def save(self, path: Path) -> None:
        """
        Write the private key to disk as 0x-prefixed hex.
        Raises RuntimeError on write failure.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            path.write_text("0x" + bytes(self._account.key).hex() + "\n", encoding="utf-8")
        except Exception as exc:
            raise RuntimeError(f"Failed to save key to {path}: {exc}") from exc

    def __repr__(self) -> str:
        return f"MakerKeyManager(address={self._address})"


class Ed25519KeyManager:
    """
    Ed25519 key manager for journal entries.

        Ed25519KeyManager.generate()
        Ed25519KeyManager.from_file(path)                  → load PEM private key
        Ed25519KeyManager.verify_detached(data, sig, hex)  → @staticmethod

        key.public_key_hex  (@property)
        key.sign(data)      → base64url str (no padding)
        key.save(path)      → write PEM private key
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key: Ed25519PrivateKey = private_key
        self._public_key:  Ed25519PublicKey  = private_key.public_key()
        self._public_key_hex: str = (
            self._public_key
            .public_bytes(Encoding.Raw, PublicFormat.Raw)
            .hex()
        )

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        """Generate a new random Ed25519 key pair."""
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_file(cls, path: Path) -> "Ed25519KeyManager":
        """
        Load an Ed25519 private key from a PEM file.
        Raises FileNotFoundError if path does not exist.
        Raises ValueError if the file is not a valid Ed25519 PEM key.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        try:
            private_key = load_pem_private_key(path.read_bytes(), password=None)
        except Exception as exc:
            raise ValueError(
                f"Failed to load Ed25519 key from {path}: {exc}"
            ) from exc
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(
                f"Key file {path} does not contain an Ed25519 private key"
            )
        return cls(private_key)

    @property
    def public_key_hex(self) -> str:
        """64-character lowercase hex of the raw public key. A @property."""
        return self._public_key_hex

    def sign(self, data: bytes) -> str:
        """Sign data. Returns base64url string, no '=' padding."""
        raw_sig = self._private_key.sign(data)
        return base64.urlsafe_b64encode(raw_sig).rstrip(b"=").decode("ascii")

    @staticmethod
    def verify_detached(
        data:           bytes,
        signature_b64:  str,
        public_key_hex: str,
    ) -> bool:
        """
        Verify an Ed25519 signature using ONLY a public key hex string.

        Returns False for ANY failure: wrong key, bad encoding, wrong length,
        corrupted signature. Never raises.
        """
        try:
            if not isinstance(public_key_hex, str) or len(public_key_hex) != 64:
                return False

            pub = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))

            padding    = 4 - len(signature_b64) % 4
            padded_sig = signature_b64 + "=" * (padding % 4)
            raw_sig    = base64.urlsafe_b64decode(padded_sig)

            if len(raw_sig) != 64:
                return False

            pub.verify(raw_sig, data)
            return True

        except Exception:
            return False

    def save(self, path: Path) -> None:
        """
        Write the private key to disk as a PEM file.
        Raises RuntimeError on write failure.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            pem = self._private_key.private_bytes(
                encoding=             Encoding.PEM,
                format=               PrivateFormat.PKCS8,
                encryption_algorithm= NoEncryption(),
            )
            path.write_bytes(pem)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to save Ed25519 key to {path}: {exc}"
            ) from exc

    def __repr__(self) -> str:
        return (
            f"Ed25519KeyManager(public_key_hex={self._public_key_hex[:16]}...)"
        )
